"""Comparisons between a reference and a questioned signature, and their scoring."""

import csv
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Optional

from joblib import Parallel, delayed

from sigverify.config import (
    FORGERY_COMPARISON_COUNT, GENUINE_COMPARISON_COUNT, N_JOBS, RANDOM_COMPARISON_COUNT,
)
from sigverify.errors import MissingDistanceEntry, VerificationError
from sigverify.features import global_features
from sigverify.signature import InputDevice, Origin

logger = logging.getLogger(__name__)

GENUINE = "Genuine"
FORGED = "Forged"
RANDOM = "Random"

BASE_HEADERS = [
    "Reference file", "Reference signer", "Reference input",
    "Questioned file", "Questioned signer", "Questioned input",
    "Questioned origin", "Prediction", "Expected prediction",
]


@dataclass(eq=False)
class Comparison:
    """One reference/questioned pair.

    `score` is the probability that the questioned signature is genuine.
    `prediction` is its complement, on the same scale as `expected_label`
    (0 = genuine, 1 = forged or random impostor).
    """
    reference_id: str
    questioned_id: str
    expected_label: int = 0
    origin: Optional[str] = None
    reference_signer: Optional[str] = None
    questioned_signer: Optional[str] = None
    reference_device: Optional[InputDevice] = None
    questioned_device: Optional[InputDevice] = None
    score: Optional[float] = None
    error: Optional[str] = None
    metadata: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.expected_label not in (0, 1):
            raise ValueError(f"expected_label must be 0 or 1, got {self.expected_label}")
        if self.origin is None:
            self.origin = GENUINE if self.expected_label == 0 else FORGED

    @classmethod
    def from_signatures(cls, reference, questioned):
        if reference.signer_id != questioned.signer_id:
            origin = RANDOM
        elif questioned.origin == Origin.FORGED:
            origin = FORGED
        else:
            origin = GENUINE
        return cls(
            reference_id=reference.id,
            questioned_id=questioned.id,
            expected_label=0 if origin == GENUINE else 1,
            origin=origin,
            reference_signer=reference.signer_id,
            questioned_signer=questioned.signer_id,
            reference_device=reference.input_device,
            questioned_device=questioned.input_device,
        )

    @property
    def prediction(self):
        if self.score is None:
            return None
        return 1.0 - self.score

    def add(self, name, value):
        self.metadata[name] = value


class ComparisonSet:
    def __init__(self, comparisons=()):
        self._items = list(comparisons)

    def __iter__(self):
        return iter(self._items)

    def __len__(self):
        return len(self._items)

    def __getitem__(self, index):
        return self._items[index]

    def append(self, comparison):
        self._items.append(comparison)

    @property
    def genuine_count(self):
        return sum(1 for c in self._items if c.expected_label == 0)

    @property
    def forgery_count(self):
        return sum(1 for c in self._items if c.expected_label == 1)

    def scored(self):
        return [c for c in self._items if c.score is not None]

    def failed(self):
        return [c for c in self._items if c.error is not None]

    def reference_ids(self):
        """Distinct reference ids in first-seen order."""
        return list(dict.fromkeys(c.reference_id for c in self._items))

    def headers(self):
        extra = []
        for comparison in self._items:
            for name in comparison.metadata:
                if name not in extra:
                    extra.append(name)
        return BASE_HEADERS + extra

    def rows(self):
        extra = self.headers()[len(BASE_HEADERS):]
        for c in self._items:
            yield [
                c.reference_id, c.reference_signer, c.reference_device.value if c.reference_device else "",
                c.questioned_id, c.questioned_signer, c.questioned_device.value if c.questioned_device else "",
                c.origin, "" if c.prediction is None else c.prediction, c.expected_label,
            ] + [c.metadata.get(name, "") for name in extra]


# -- Loading and generation --
def load_comparisons(path, database):
    """Read `reference questioned` id pairs, one per line."""
    comparisons = ComparisonSet()
    with open(path, "r") as f:
        for line_no, line in enumerate(f, 1):
            parts = line.split()
            if not parts:
                continue
            if len(parts) != 2:
                raise ValueError(f"{path}:{line_no}: expected 2 signature ids, got {len(parts)}")
            comparisons.append(Comparison.from_signatures(database[parts[0]], database[parts[1]]))
    return comparisons


def _limit_randomly(items, count, rng):
    while len(items) > count:
        del items[rng.randrange(len(items))]


def generate_comparisons(database, device=None, genuine_count=GENUINE_COMPARISON_COUNT,
                         forgery_count=FORGERY_COMPARISON_COUNT, random_count=RANDOM_COMPARISON_COUNT,
                         rng=None):
    """Genuine-genuine, genuine-forgery and genuine-random impostor pairs for every signer."""
    rng = rng or random.Random()
    if device is not None:
        database = database.filter(device)
    signers = {k: v for k, v in database.signers().items() if v}
    all_signatures = [s for group in signers.values() for s in group]
    logger.info("Generating comparisons from %d signatures of %d signers", len(all_signatures), len(signers))

    seen = set()
    comparisons = ComparisonSet()

    def add(reference, questioned):
        key = (reference.id, questioned.id)
        if key not in seen:
            seen.add(key)
            comparisons.append(Comparison.from_signatures(reference, questioned))

    step = len(all_signatures) // random_count if random_count else 0
    for signer_id, signatures in signers.items():
        genuine = [s for s in signatures if s.origin == Origin.GENUINE]
        forged = [s for s in signatures if s.origin == Origin.FORGED]
        _limit_randomly(genuine, genuine_count, rng)
        _limit_randomly(forged, forgery_count, rng)
        if not random_count:
            impostors = []
        elif step:
            impostors = [all_signatures[i * step + rng.randrange(step)] for i in range(random_count)]
        else:
            impostors = list(all_signatures)

        for i in range(len(genuine)):
            for j in range(i + 1, len(genuine)):
                add(genuine[i], genuine[j])
        for reference in genuine:
            for questioned in forged:
                add(reference, questioned)
        for reference in genuine:
            for questioned in impostors:
                if questioned.signer_id != signer_id:
                    add(reference, questioned)

    logger.info("Generated %d comparisons", len(comparisons))
    return comparisons


# -- Scoring --
def _score(comparison, verifiers, database):
    try:
        verifier = verifiers[comparison.reference_id]
        comparison.score = float(verifier.test(database[comparison.questioned_id]))
        comparison.error = None
        return True
    except (VerificationError, KeyError, ValueError) as e:
        comparison.score = None
        comparison.error = f"{type(e).__name__}: {e}"
        logger.warning("Comparison %s vs %s failed: %s",
                       comparison.reference_id, comparison.questioned_id, comparison.error)
        return False


def score_comparisons(comparisons, verifiers, database, n_jobs=N_JOBS, key_of=None):
    """Score every comparison with the verifier trained for its reference.

    Each comparison writes only its own fields, failures are recorded on the
    comparison and do not stop the batch. Comparisons with the same
    ``key_of(c)`` (by default the reference and questioned ids) are scored
    once and share the result. Returns the failed comparisons.
    """
    key_of = key_of or (lambda c: (c.reference_id, c.questioned_id))
    shared = {}
    for c in comparisons:
        shared.setdefault(key_of(c), []).append(c)
    leaders = [members[0] for members in shared.values()]
    logger.debug("Scoring %d distinct comparisons of %d", len(leaders), len(comparisons))

    Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_score)(c, verifiers, database) for c in leaders
    )
    for leader, *followers in shared.values():
        for c in followers:
            c.score, c.error = leader.score, leader.error

    failed = [c for c in comparisons if c.error is not None]
    if failed:
        logger.warning("%d of %d comparisons could not be scored", len(failed), len(comparisons))
    return failed


# -- Diagnostics --
def attach_distances(comparisons, sink):
    """Copy the reference-to-questioned distance from `sink` onto each comparison."""
    distances = sink.distances()
    for c in comparisons:
        try:
            c.add("Distance", distances[(c.reference_id, c.questioned_id)])
        except KeyError:
            raise MissingDistanceEntry(c.reference_id, c.questioned_id) from None


def attach_details(comparisons, sink, signer_of=None):
    """Copy decision distance and thresholds of the owning model onto each comparison."""
    signer_of = signer_of or (lambda c: c.reference_signer)
    details = sink.details()
    for c in comparisons:
        record = details.get((signer_of(c), c.questioned_id))
        if record is None:
            raise MissingDistanceEntry(signer_of(c), c.questioned_id)
        c.add("Distance", record.distance)
        c.add("Genuine threshold", record.genuine_threshold)
        c.add("Forgery threshold", record.forgery_threshold)


def attach_global_features(comparisons, database):
    for c in comparisons:
        for prefix, signature_id in (("r_", c.reference_id), ("q_", c.questioned_id)):
            for name, value in global_features(database[signature_id]).items():
                c.add(prefix + name, value)


# -- Export --
def save_predictions(comparisons, path):
    with open(path, "w", encoding="ascii") as f:
        for c in comparisons:
            f.write("nan\n" if c.prediction is None else f"{c.prediction:.3f}\n")


def save_table(headers, rows, path, delimiter=";"):
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, delimiter=delimiter)
        writer.writerow(headers)
        writer.writerows(rows)


def save_comparisons(comparisons, path):
    save_table(comparisons.headers(), comparisons.rows(), path)
