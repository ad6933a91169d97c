"""Tests for the remote scoring client."""

from unittest.mock import MagicMock

import numpy as np
import pytest
import requests

from sigverify.cloud import FINGER_SKIP_COLUMNS, CloudClassifier, CloudScorer, comparison_features
from sigverify.errors import CloudScoringError, InvalidTrainingSetSize


def _response(body):
    response = MagicMock()
    response.json.return_value = body
    return response


def _session(*bodies):
    """A mocked requests session answering each POST with the next body."""
    session = MagicMock()
    session.post.side_effect = [_response(body) for body in bodies]
    return session


class TestComparisonFeatures:
    """Tests for comparison_features."""

    def test_columns(self, make_signature):
        reference = make_signature("r", [0.0, 1.0, 2.0])
        questioned = make_signature("q", [0.0, 1.0, 2.0, 3.0])
        row = comparison_features(reference, questioned)
        assert list(row) == [
            "stdevX1", "stdevY1", "stdevP1", "count1", "duration1",
            "stdevX2", "stdevY2", "stdevP2", "count2", "duration2",
            "diffDTW", "diffX", "diffY", "diffP", "diffCount", "diffDuration",
        ]
        assert row["count1"] == 3.0
        assert row["count2"] == 4.0
        assert row["diffCount"] == pytest.approx(1.0 / 3)
        assert row["diffDuration"] == pytest.approx(0.5)
        assert row["diffDTW"] == pytest.approx(1.0)

    def test_finger_skip_columns(self):
        assert FINGER_SKIP_COLUMNS == {"stdevP1", "stdevP2", "diffP"}


class TestCloudScorer:
    """Tests for CloudScorer batching and failure handling."""

    def test_predict(self):
        session = _session({"result": [0, 1]})
        scorer = CloudScorer("http://scorer.test/score", "secret", session=session)
        assert scorer.predict([[1.0], [2.0]]) == [0, 1]

        _, kwargs = session.post.call_args
        assert kwargs["json"] == {"data": [[1.0], [2.0]]}
        assert kwargs["headers"] == {"Authorization": "Bearer secret"}

    def test_string_encoded_body(self):
        scorer = CloudScorer("http://scorer.test", "k", session=_session('{"result": [1]}'))
        assert scorer.predict([[1.0]]) == [1]

    def test_batches(self):
        session = _session({"result": [0, 0]}, {"result": [1, 1]}, {"result": [0]})
        scorer = CloudScorer("http://scorer.test", "k", batch_size=2, session=session)
        assert scorer.predict([[float(i)] for i in range(5)]) == [0, 0, 1, 1, 0]
        assert session.post.call_count == 3

    def test_failed_batch(self):
        session = MagicMock()
        session.post.side_effect = [requests.ConnectionError("down"), _response({"result": [1]})]
        scorer = CloudScorer("http://scorer.test", "k", batch_size=2, session=session)
        assert scorer.predict([[0.0], [1.0], [2.0]]) == [-1, -1, 1]

    def test_http_error(self):
        response = _response({"result": [1]})
        response.raise_for_status.side_effect = requests.HTTPError("500")
        session = MagicMock()
        session.post.return_value = response
        scorer = CloudScorer("http://scorer.test", "k", session=session)
        assert scorer.predict([[0.0]]) == [-1]

    def test_wrong_prediction_count(self):
        scorer = CloudScorer("http://scorer.test", "k", session=_session({"result": [1]}))
        assert scorer.predict([[0.0], [1.0]]) == [-1, -1]

    def test_requires_address(self):
        with pytest.raises(ValueError):
            CloudScorer("", "k")


class TestCloudClassifier:
    """Tests for CloudClassifier."""

    def test_score_is_complement_of_prediction(self, make_signature):
        scorer = MagicMock()
        scorer.predict.return_value = [0]
        classifier = CloudClassifier(scorer)
        model = classifier.train([make_signature("r", np.zeros(3))])
        assert classifier.test(model, make_signature("q", np.zeros(3))) == 1.0

    def test_skip_columns(self, make_signature):
        scorer = MagicMock()
        scorer.predict.return_value = [1]
        classifier = CloudClassifier(scorer, skip_columns=FINGER_SKIP_COLUMNS)
        model = classifier.train([make_signature("r", np.zeros(3))])
        assert classifier.test(model, make_signature("q", np.zeros(3))) == 0.0
        (rows,), _ = scorer.predict.call_args
        assert len(rows[0]) == 13

    @pytest.mark.parametrize("prediction", [-1, 2, 0.5, "1"])
    def test_failed_prediction(self, make_signature, prediction):
        scorer = MagicMock()
        scorer.predict.return_value = [prediction]
        classifier = CloudClassifier(scorer)
        model = classifier.train([make_signature("r", np.zeros(3))])
        with pytest.raises(CloudScoringError):
            classifier.test(model, make_signature("q", np.zeros(3)))

    def test_requires_one_signature(self):
        with pytest.raises(InvalidTrainingSetSize):
            CloudClassifier(MagicMock()).train([])
