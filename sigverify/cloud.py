"""Remote scoring of comparisons by a hosted model.

Each comparison is reduced to a flat row of global features and DTW
distance, rows are posted in batches and the service answers with one
integer prediction per row (0 = genuine, 1 = forged).
"""

import json
import logging
import time

import requests

from sigverify.config import CLOUD_BATCH_SIZE, CLOUD_TIMEOUT
from sigverify.distance import DtwDistance
from sigverify.errors import CloudScoringError, InvalidTrainingSetSize
from sigverify.features import global_features, relative_difference
from sigverify.reporting import DistanceEvent, emit
from sigverify.signature import default_channels

logger = logging.getLogger(__name__)

GLOBAL_COLUMNS = ("stdevX", "stdevY", "stdevP", "count", "duration")
DIFF_COLUMNS = ("diffX", "diffY", "diffP", "diffCount", "diffDuration")

FINGER_SKIP_COLUMNS = frozenset({"stdevP1", "stdevP2", "diffP"})
PREDICTION_LABELS = (0, 1)


def is_label(prediction):
    return prediction in PREDICTION_LABELS


def comparison_features(reference, questioned, distance=None, channels=None):
    """Named feature row describing one reference/questioned pair."""
    distance = distance or DtwDistance()
    channels = tuple(channels) if channels else default_channels(reference.input_device)
    r, q = global_features(reference), global_features(questioned)

    row = {}
    for name in GLOBAL_COLUMNS:
        row[f"{name}1"] = r[name]
    for name in GLOBAL_COLUMNS:
        row[f"{name}2"] = q[name]
    row["diffDTW"] = distance(reference.features(channels), questioned.features(channels))
    for diff_name, name in zip(DIFF_COLUMNS, GLOBAL_COLUMNS):
        row[diff_name] = relative_difference(r[name], q[name])
    return row


def _parse_result(body):
    # some deployments wrap the JSON payload in a JSON string
    if isinstance(body, str):
        body = json.loads(body)
    return [int(v) for v in body["result"]]


class CloudScorer:
    def __init__(self, api_address, api_key, batch_size=CLOUD_BATCH_SIZE, timeout=CLOUD_TIMEOUT, session=None):
        if not api_address:
            raise ValueError("A scoring service address is required")
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive (got {batch_size})")
        self.api_address = api_address
        self.api_key = api_key
        self.batch_size = batch_size
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, batch):
        response = self.session.post(
            self.api_address,
            json={"data": batch},
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        predictions = _parse_result(response.json())
        if len(predictions) != len(batch):
            raise ValueError(f"Expected {len(batch)} predictions, got {len(predictions)}")
        return predictions

    def predict(self, rows):
        """One prediction per row; -1 for every row of a batch that failed."""
        rows = list(rows)
        predictions = []
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            t0 = time.time()
            try:
                predictions.extend(self._post(batch))
            except (requests.RequestException, ValueError, KeyError) as e:
                logger.warning("Scoring batch %d-%d failed: %s", start, start + len(batch), e)
                predictions.extend([-1] * len(batch))
                continue
            logger.info("Scored batch of %d rows in %.2fs", len(batch), time.time() - t0)
        return predictions


class CloudClassifier:
    """1-v-1 classifier delegating the decision to a :class:`CloudScorer`."""

    def __init__(self, scorer, channels=None, skip_columns=(), distance=None, sink=None):
        self.scorer = scorer
        self.channels = tuple(channels) if channels else None
        self.skip_columns = frozenset(skip_columns)
        self.distance = distance or DtwDistance()
        self.sink = sink

    def train(self, signatures, signer_id=None):
        signatures = list(signatures or [])
        if len(signatures) != 1:
            raise InvalidTrainingSetSize(1, len(signatures))
        return signatures[0]

    def row(self, reference, questioned):
        features = comparison_features(reference, questioned, self.distance, self.channels)
        emit(self.sink, DistanceEvent(reference.signer_id, questioned.signer_id,
                                      reference.id, questioned.id, features["diffDTW"]))
        return [v for k, v in features.items() if k not in self.skip_columns]

    def test(self, model, signature):
        prediction = self.scorer.predict([self.row(model, signature)])[0]
        if not is_label(prediction):
            raise CloudScoringError(f"No prediction for {model.id} vs {signature.id} (got {prediction!r})")
        return 1.0 - prediction
