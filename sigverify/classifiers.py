"""DTW based verifier strategies.

Every classifier has the same two-step shape: ``train(signatures)`` builds an
immutable per-signer model, ``test(model, signature)`` returns the probability
that the questioned signature is genuine, in [0, 1].
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import numpy as np

from sigverify.config import (
    MINMAX_COUNT_MAX_FACTOR, MINMAX_COUNT_MIN_FACTOR, MINMAX_FORGERY_SPREAD,
    MINMAX_GENUINE_DIVISOR, NEIGHBOR_SCALE,
)
from sigverify.distance import DistanceMatrix, DtwDistance, compute_distance_matrix
from sigverify.errors import (
    EmptyTrainingSet, InvalidThresholdOrdering, InvalidTrainingSetSize, NoDistinctReferencePairs,
)
from sigverify.preprocessing import IDENTITY
from sigverify.reporting import ClassificationDetails, DistanceEvent, emit
from sigverify.signature import default_channels

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    def train(self, signatures, signer_id=None): ...

    def test(self, model, signature): ...


# -- Models --
def freeze(values):
    values = np.array(values, dtype=np.float64)
    values.setflags(write=False)
    return values


@dataclass(frozen=True, eq=False)
class SingleReferenceModel:
    signer_id: Optional[str]
    signature_id: str
    channels: Tuple[str, ...]
    features: np.ndarray
    genuine_threshold: float
    inconclusive_threshold: float
    forgery_threshold: float


@dataclass(frozen=True, eq=False)
class MinMaxModel:
    signer_id: Optional[str]
    channels: Tuple[str, ...]
    references: Tuple[Tuple[str, np.ndarray], ...]
    genuine_threshold: float
    forgery_threshold: float
    # Diagnostic bounds, not consulted by MinMaxClassifier.test
    count_min_threshold: float
    count_max_threshold: float
    reference_distances: DistanceMatrix


@dataclass(frozen=True, eq=False)
class NeighborsModel:
    signer_id: Optional[str]
    channels: Tuple[str, ...]
    references: Tuple[Tuple[str, np.ndarray], ...]
    genuine_threshold: float
    forgery_threshold: float
    average_distance: float
    reference_distances: DistanceMatrix


# -- Scoring policies --
def single_reference_score(distance, genuine, inconclusive, forgery):
    """Piecewise linear score, 1 below `genuine`, 0.5 at `inconclusive`, 0 above `forgery`."""
    if distance < genuine:
        return 1.0
    if distance > forgery:
        return 0.0
    if distance < inconclusive:
        return 0.5 + (inconclusive - distance) / (inconclusive - genuine) / 2
    return (forgery - distance) / (forgery - inconclusive) / 2


def linear_score(distance, genuine, forgery):
    """1 below `genuine`, 0 above `forgery`, linear in between."""
    if distance < genuine:
        return 1.0
    if distance > forgery:
        return 0.0
    if forgery <= genuine:
        # empty band, distance sits exactly on both thresholds
        return 1.0
    return (forgery - distance) / (forgery - genuine)


# -- Shared helpers --
def _resolve_channels(channels, signatures):
    if channels:
        return tuple(channels)
    return default_channels(signatures[0].input_device)


def _signer_of(signatures, signer_id):
    return signer_id if signer_id is not None else signatures[0].signer_id


def _reference_matrix(signatures, channels, distance, signer_id, sink, n_jobs):
    references = tuple((s.id, freeze(s.features(channels))) for s in signatures)
    matrix = compute_distance_matrix(
        [ref_id for ref_id, _ in references],
        [values for _, values in references],
        distance,
        n_jobs=n_jobs,
    )
    matrix.values.setflags(write=False)
    for first, second, d in matrix.pairs():
        emit(sink, DistanceEvent(signer_id, signer_id, first, second, d))
    return references, matrix


def _average_distance(model, signature, distance, sink):
    questioned = signature.features(model.channels)
    distances = []
    for reference_id, values in model.references:
        if (reference_id, signature.id) in model.reference_distances:
            d = model.reference_distances[(reference_id, signature.id)]
        else:
            d = distance(values, questioned)
        distances.append(d)
        emit(sink, DistanceEvent(model.signer_id, signature.signer_id, reference_id, signature.id, d))
    return float(np.mean(distances))


# -- Classifiers --
class SingleReferenceClassifier:
    """1-v-1 classifier with fixed, externally supplied distance thresholds."""

    def __init__(self, genuine_threshold, inconclusive_threshold=None, forgery_threshold=None,
                 channels=None, distance=None, sink=None):
        if forgery_threshold is None:
            # two-threshold form: (genuine, forgery)
            if inconclusive_threshold is None:
                raise TypeError("A forgery threshold is required")
            forgery_threshold = inconclusive_threshold
            inconclusive_threshold = genuine_threshold + (forgery_threshold - genuine_threshold) / 2
        if not (genuine_threshold < inconclusive_threshold < forgery_threshold):
            raise InvalidThresholdOrdering(genuine_threshold, inconclusive_threshold, forgery_threshold)
        self.genuine_threshold = float(genuine_threshold)
        self.inconclusive_threshold = float(inconclusive_threshold)
        self.forgery_threshold = float(forgery_threshold)
        self.channels = tuple(channels) if channels else None
        self.distance = distance or DtwDistance()
        self.sink = sink

    def train(self, signatures, signer_id=None):
        signatures = list(signatures or [])
        if len(signatures) != 1:
            raise InvalidTrainingSetSize(1, len(signatures))
        signature = signatures[0]
        channels = _resolve_channels(self.channels, signatures)
        return SingleReferenceModel(
            signer_id=_signer_of(signatures, signer_id),
            signature_id=signature.id,
            channels=channels,
            features=freeze(signature.features(channels)),
            genuine_threshold=self.genuine_threshold,
            inconclusive_threshold=self.inconclusive_threshold,
            forgery_threshold=self.forgery_threshold,
        )

    def test(self, model, signature):
        d = self.distance(model.features, signature.features(model.channels))
        emit(self.sink, DistanceEvent(model.signer_id, signature.signer_id, model.signature_id, signature.id, d))
        emit(self.sink, ClassificationDetails(
            model.signer_id, signature.id, d, model.genuine_threshold, model.forgery_threshold,
        ))
        return single_reference_score(
            d, model.genuine_threshold, model.inconclusive_threshold, model.forgery_threshold,
        )


class MinMaxClassifier:
    """Thresholds derived from the spread of the signer's own references."""

    def __init__(self, channels=None, distance=None, sink=None, n_jobs=1):
        self.channels = tuple(channels) if channels else None
        self.distance = distance or DtwDistance()
        self.sink = sink
        self.n_jobs = n_jobs

    def train(self, signatures, signer_id=None):
        signatures = list(signatures or [])
        if not signatures:
            raise EmptyTrainingSet()
        signer_id = _signer_of(signatures, signer_id)
        channels = _resolve_channels(self.channels, signatures)
        references, matrix = _reference_matrix(signatures, channels, self.distance, signer_id, self.sink, self.n_jobs)

        distances = matrix.nonzero_values()
        if distances.size == 0:
            raise NoDistinctReferencePairs(signer_id)
        lo, hi = float(distances.min()), float(distances.max())
        logger.debug("MinMax %s: %d references, min=%.4f max=%.4f", signer_id, len(references), lo, hi)

        return MinMaxModel(
            signer_id=signer_id,
            channels=channels,
            references=references,
            genuine_threshold=lo / MINMAX_GENUINE_DIVISOR,
            forgery_threshold=hi + (hi - lo) * MINMAX_FORGERY_SPREAD,
            count_min_threshold=lo * MINMAX_COUNT_MIN_FACTOR,
            count_max_threshold=hi * MINMAX_COUNT_MAX_FACTOR,
            reference_distances=matrix,
        )

    def test(self, model, signature):
        avg = _average_distance(model, signature, self.distance, self.sink)
        emit(self.sink, ClassificationDetails(
            model.signer_id, signature.id, avg, model.genuine_threshold, model.forgery_threshold,
        ))
        return linear_score(avg, model.genuine_threshold, model.forgery_threshold)


class NeighborsClassifier:
    """Classifier for a primary reference enriched with its nearest neighbours."""

    def __init__(self, scale=NEIGHBOR_SCALE, channels=None, distance=None, sink=None, n_jobs=1):
        if scale <= 0:
            raise ValueError(f"scale must be positive (got {scale})")
        self.scale = float(scale)
        self.channels = tuple(channels) if channels else None
        self.distance = distance or DtwDistance()
        self.sink = sink
        self.n_jobs = n_jobs

    def train(self, signatures, signer_id=None):
        signatures = list(signatures or [])
        if not signatures:
            raise EmptyTrainingSet()
        signer_id = _signer_of(signatures, signer_id)
        channels = _resolve_channels(self.channels, signatures)
        references, matrix = _reference_matrix(signatures, channels, self.distance, signer_id, self.sink, self.n_jobs)

        distances = matrix.nonzero_values()
        if distances.size == 0:
            raise NoDistinctReferencePairs(signer_id)
        avg = float(distances.mean())
        logger.debug("Neighbors %s: %d references, average=%.4f", signer_id, len(references), avg)

        return NeighborsModel(
            signer_id=signer_id,
            channels=channels,
            references=references,
            genuine_threshold=float(distances.min()),
            forgery_threshold=self.scale * avg,
            average_distance=avg,
            reference_distances=matrix,
        )

    def test(self, model, signature):
        avg = _average_distance(model, signature, self.distance, self.sink)
        emit(self.sink, ClassificationDetails(
            model.signer_id, signature.id, avg, model.genuine_threshold, model.forgery_threshold,
        ))
        return linear_score(avg, model.genuine_threshold, model.forgery_threshold)


class Verifier:
    """A classifier bound to a preprocessing pipeline and, once trained, a model."""

    def __init__(self, classifier, pipeline=None):
        self.classifier = classifier
        self.pipeline = pipeline or IDENTITY
        self.model = None

    def train(self, signatures, signer_id=None):
        prepared = [self.pipeline.transform(s) for s in signatures]
        self.model = self.classifier.train(prepared, signer_id=signer_id)
        return self.model

    def test(self, signature):
        if self.model is None:
            raise RuntimeError("Verifier has not been trained")
        return self.classifier.test(self.model, self.pipeline.transform(signature))

    def verify(self, signature, threshold=0.5):
        return self.test(signature) >= threshold
