"""Tests for the command line entry point."""

import pytest

from sigverify.__main__ import build_parser, main

TRACE = """4
100 200 0 1 900 500 300
{x} 210 10 1 900 500 350
120 {y} 20 1 900 500 400
130 230 30 0 900 500 300
"""


@pytest.fixture
def dataset(tmp_path):
    directory = tmp_path / "task2"
    directory.mkdir()
    for user in (1, 2):
        for sample in (1, 2, 3, 21, 22):
            shift = 40 * sample if sample > 20 else sample
            (directory / f"U{user}S{sample}.txt").write_text(TRACE.format(x=110 + shift, y=220 - shift * user))
    return directory


class TestCli:
    """Tests for python -m sigverify."""

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.dataset == "svc2004-task2"
        assert args.classifier == "minmax"

    def test_missing_directory(self, tmp_path):
        assert main(["--data-dir", str(tmp_path / "nope"), "--n-jobs", "1"]) == 1

    @pytest.mark.parametrize("classifier", ["single", "minmax", "statistics"])
    def test_run(self, dataset, tmp_path, classifier, capsys):
        predictions = tmp_path / "predictions.txt"
        benchmark = tmp_path / "benchmark.csv"
        results = tmp_path / "results.csv"
        code = main([
            "--dataset", "svc2004-task2", "--data-dir", str(dataset), "--classifier", classifier,
            "--n-jobs", "1", "--predictions", str(predictions), "--benchmark", str(benchmark),
            "--results", str(results),
        ])
        assert code == 0
        assert predictions.exists()
        assert len(benchmark.read_text().splitlines()) == 1001
        assert "Final Results" in capsys.readouterr().out

    def test_cloud_requires_address(self, dataset, monkeypatch):
        monkeypatch.setattr("sigverify.__main__.STYLUS_API", "")
        monkeypatch.setattr("sigverify.__main__.FINGER_API", "")
        assert main(["--data-dir", str(dataset), "--classifier", "cloud", "--n-jobs", "1"]) == 1
