"""Tests for the SVC2004 reader."""

from unittest.mock import patch

import pytest

from sigverify.loaders import download_svc2004, load_svc2004_task1, load_svc2004_task2
from sigverify.signature import InputDevice, Origin

TASK2_TRACE = """3
100 200 0 1 900 500 300
110 210 10 1 900 500 350
120 220 20 0 900 500 0
"""

TASK1_TRACE = """2
100 200 0 1
110 210 10 0
"""


@pytest.fixture
def task2_dir(tmp_path):
    (tmp_path / "U1S1.TXT").write_text(TASK2_TRACE)
    (tmp_path / "U1S21.txt").write_text(TASK2_TRACE)
    (tmp_path / "U2S3.txt").write_text(TASK2_TRACE)
    (tmp_path / "readme.md").write_text("ignored")
    return tmp_path


class TestLoaders:
    """Tests for load_svc2004_task1/2."""

    def test_task2(self, task2_dir):
        database = load_svc2004_task2(task2_dir)
        assert len(database) == 3
        genuine = database["U1S1"]
        assert genuine.input_device == InputDevice.STYLUS
        assert genuine.signer_id == "U1"
        assert genuine.origin == Origin.GENUINE
        assert genuine.x.tolist() == [100.0, 110.0, 120.0]
        assert genuine.t.tolist() == [0, 10, 20]
        assert genuine.pressure.tolist() == [300.0, 350.0, 0.0]
        assert database["U1S21"].origin == Origin.FORGED
        assert set(database.signers()) == {"U1", "U2"}

    def test_task1(self, tmp_path):
        (tmp_path / "U3S2.txt").write_text(TASK1_TRACE)
        database = load_svc2004_task1(tmp_path)
        signature = database["U3S2"]
        assert signature.input_device == InputDevice.FINGER
        assert signature.pressure is None
        assert signature.y.tolist() == [200.0, 210.0]

    def test_empty_file_is_skipped(self, tmp_path):
        (tmp_path / "U1S1.txt").write_text("0\n")
        (tmp_path / "U1S2.txt").write_text(TASK1_TRACE)
        assert len(load_svc2004_task1(tmp_path)) == 1

    def test_download_skips_existing_directory(self, tmp_path):
        with patch("sigverify.loaders.requests.get") as get:
            assert download_svc2004(1, str(tmp_path)) == str(tmp_path)
        get.assert_not_called()
