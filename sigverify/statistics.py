"""Distance statistics learned from labelled training comparisons.

The statistics are keyed by class, input device and feature, saved as a
semicolon separated table and reloaded bit-exactly, so a benchmark can skip
the expensive training pass.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from sigverify.classifiers import freeze, linear_score
from sigverify.config import EXPECTABLE_DIFFERENCE, STATISTICS_WEIGHTS
from sigverify.distance import DtwDistance
from sigverify.errors import DimensionMismatch, InvalidTrainingSetSize
from sigverify.features import channel_stdev, duration, relative_difference
from sigverify.reporting import ClassificationDetails, DistanceEvent, emit
from sigverify.signature import InputDevice, default_channels

logger = logging.getLogger(__name__)

GENUINE = "Genuine"
FORGED = "Forged"
LABELS = {0: GENUINE, 1: FORGED}


@dataclass(frozen=True)
class DistanceStatistics:
    min: float
    max: float
    average: float
    median: float
    stdev: float

    @classmethod
    def from_values(cls, values):
        values = np.asarray(values, dtype=np.float64)
        if values.size == 0:
            raise ValueError("Cannot compute statistics of an empty list")
        return cls(
            min=float(values.min()),
            max=float(values.max()),
            average=float(values.mean()),
            median=float(np.median(values)),
            stdev=float(values.std()),
        )


@dataclass(frozen=True)
class StatisticsKey:
    label: str
    device: Optional[InputDevice] = None
    feature: str = "dtw"

    def __post_init__(self):
        if self.label not in (GENUINE, FORGED):
            raise ValueError(f"Unknown label {self.label!r}")
        if "_" in self.feature or ";" in self.feature:
            raise ValueError(f"Feature name {self.feature!r} may not contain '_' or ';'")

    @property
    def description(self):
        parts = [self.label]
        if self.device is not None:
            parts.append(self.device.value)
        parts.append(self.feature)
        return "_".join(parts)

    @classmethod
    def parse(cls, description):
        parts = description.split("_")
        if len(parts) == 2:
            return cls(parts[0], None, parts[1])
        if len(parts) == 3:
            return cls(parts[0], InputDevice(parts[1]), parts[2])
        raise ValueError(f"Malformed statistics description {description!r}")


class TrainingStatistics:
    def __init__(self, records=None):
        self.records = dict(records or {})

    def __len__(self):
        return len(self.records)

    def __eq__(self, other):
        return isinstance(other, TrainingStatistics) and self.records == other.records

    def items(self):
        return self.records.items()

    @property
    def grouped_by_device(self):
        return any(key.device is not None for key in self.records)

    def get(self, label, device=None, feature="dtw"):
        key = StatisticsKey(label, device if self.grouped_by_device else None, feature)
        try:
            return self.records[key]
        except KeyError:
            raise KeyError(f"No training statistics for {key.description}") from None

    def genuine(self, device=None, feature="dtw"):
        return self.get(GENUINE, device, feature)

    def forged(self, device=None, feature="dtw"):
        return self.get(FORGED, device, feature)


def collect_training_statistics(comparisons, database, distance=None, channels=None, group_by_device=False):
    """DTW distance of every training comparison, summarised per class (and device).

    Returns the statistics and the raw (distance, expected_label, device) rows.
    """
    distance = distance or DtwDistance()
    rows = []
    for c in comparisons:
        reference, questioned = database[c.reference_id], database[c.questioned_id]
        if reference.input_device != questioned.input_device:
            logger.warning("Stylus-finger comparison detected: %s vs %s", reference.id, questioned.id)
            continue
        ch = tuple(channels) if channels else default_channels(reference.input_device)
        d = distance(reference.features(ch), questioned.features(ch))
        rows.append((d, c.expected_label, reference.input_device))

    devices = sorted({device for _, _, device in rows}, key=lambda d: d.value) if group_by_device else [None]
    records = {}
    for device in devices:
        for label, name in LABELS.items():
            values = [d for d, l, dev in rows if l == label and (device is None or dev == device)]
            if not values:
                logger.warning("No %s training comparisons%s", name.lower(),
                               f" for {device.value}" if device else "")
                continue
            records[StatisticsKey(name, device)] = DistanceStatistics.from_values(values)
            logger.info("%s statistics from %d comparisons", StatisticsKey(name, device).description, len(values))
    return TrainingStatistics(records), rows


def save_training_statistics(statistics, path):
    with open(path, "w", encoding="ascii") as f:
        for key, stat in statistics.items():
            values = (stat.min, stat.max, stat.average, stat.median, stat.stdev)
            f.write(";".join([key.description] + [repr(v) for v in values]) + "\n")


def load_training_statistics(path):
    records = {}
    with open(path, "r", encoding="ascii") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            parts = line.split(";")
            if len(parts) != 6:
                raise ValueError(f"{path}:{line_no}: expected 6 fields, got {len(parts)}")
            values = [float(v) for v in parts[1:]]
            records[StatisticsKey.parse(parts[0])] = DistanceStatistics(*values)
    return TrainingStatistics(records)


# -- Classifier --
@dataclass(frozen=True, eq=False)
class StatisticsModel:
    signer_id: Optional[str]
    signature_id: str
    input_device: InputDevice
    channels: tuple
    features: np.ndarray
    duration: float
    stdev_x: float
    stdev_y: float


def feature_decision(reference_value, questioned_value, expectable_difference=EXPECTABLE_DIFFERENCE):
    """1 for identical values, falling linearly to 0 at the expectable relative difference."""
    diff = relative_difference(reference_value, questioned_value)
    if diff > expectable_difference:
        return 0.0
    return 1.0 - diff / expectable_difference


class StatisticsClassifier:
    """1-v-1 classifier scoring the DTW distance against population statistics.

    With ``only_dtw=False`` the DTW decision is blended with duration and
    coordinate spread decisions.
    """

    def __init__(self, statistics, only_dtw=True, expectable_difference=EXPECTABLE_DIFFERENCE,
                 channels=None, distance=None, sink=None):
        self.statistics = statistics
        self.only_dtw = only_dtw
        self.expectable_difference = expectable_difference
        self.channels = tuple(channels) if channels else None
        self.distance = distance or DtwDistance()
        self.sink = sink

    def train(self, signatures, signer_id=None):
        signatures = list(signatures or [])
        if len(signatures) != 1:
            raise InvalidTrainingSetSize(1, len(signatures))
        signature = signatures[0]
        channels = self.channels or default_channels(signature.input_device)
        return StatisticsModel(
            signer_id=signer_id if signer_id is not None else signature.signer_id,
            signature_id=signature.id,
            input_device=signature.input_device,
            channels=channels,
            features=freeze(signature.features(channels)),
            duration=duration(signature),
            stdev_x=channel_stdev(signature, "x"),
            stdev_y=channel_stdev(signature, "y"),
        )

    def test(self, model, signature):
        if self.statistics.grouped_by_device and signature.input_device != model.input_device:
            raise DimensionMismatch(len(model.channels), len(default_channels(signature.input_device)))

        d = self.distance(model.features, signature.features(model.channels))
        genuine = self.statistics.genuine(model.input_device).min
        forged = self.statistics.forged(model.input_device).median
        emit(self.sink, DistanceEvent(model.signer_id, signature.signer_id, model.signature_id, signature.id, d))
        emit(self.sink, ClassificationDetails(model.signer_id, signature.id, d, genuine, forged))

        dtw_decision = linear_score(d, genuine, forged)
        if self.only_dtw:
            return dtw_decision

        e = self.expectable_difference
        decisions = {
            "dtw": dtw_decision,
            "duration": feature_decision(model.duration, duration(signature), e),
            "stdev_x": feature_decision(model.stdev_x, channel_stdev(signature, "x"), e),
            "stdev_y": feature_decision(model.stdev_y, channel_stdev(signature, "y"), e),
        }
        total = sum(STATISTICS_WEIGHTS.values())
        return sum(STATISTICS_WEIGHTS[name] * value for name, value in decisions.items()) / total
