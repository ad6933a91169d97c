"""Threshold sweep over scored comparisons: FAR/FRR/AER curves and the EER."""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from joblib import Parallel, delayed
from sklearn.metrics import roc_curve

from sigverify.comparisons import save_table
from sigverify.config import BENCHMARK_STEPS, N_JOBS
from sigverify.errors import DegenerateBenchmark

logger = logging.getLogger(__name__)


@dataclass
class ThresholdBucket:
    threshold: float
    genuine_count: int
    forgery_count: int
    false_acceptance: int = 0
    false_rejection: int = 0

    @property
    def far(self):
        if self.forgery_count == 0:
            return float("nan")
        return self.false_acceptance / self.forgery_count

    @property
    def frr(self):
        if self.genuine_count == 0:
            return float("nan")
        return self.false_rejection / self.genuine_count

    @property
    def aer(self):
        return (self.far + self.frr) / 2

    def __str__(self):
        return (f"Threshold={self.threshold:.3f} FAR={self.far:.4f} "
                f"FRR={self.frr:.4f} AER={self.aer:.4f}")


@dataclass
class BenchmarkReport:
    buckets: List[ThresholdBucket]
    eer: Optional[ThresholdBucket]
    roc_eer: Optional[float]
    genuine_count: int
    forgery_count: int


def _bucket(threshold, labels, predictions, genuine_count, forgery_count):
    return ThresholdBucket(
        threshold=threshold,
        genuine_count=genuine_count,
        forgery_count=forgery_count,
        false_acceptance=int(np.count_nonzero((labels == 1) & (predictions < threshold))),
        false_rejection=int(np.count_nonzero((labels == 0) & (predictions >= threshold))),
    )


def get_benchmark_results(comparisons, steps=BENCHMARK_STEPS, n_jobs=N_JOBS):
    """One bucket per threshold i/steps, i in [0, steps), sorted by threshold.

    A forged comparison predicted below the threshold is a false acceptance,
    a genuine one predicted at or above it is a false rejection. Unscored
    comparisons are left out.
    """
    if steps < 1:
        raise ValueError(f"steps must be positive (got {steps})")
    scored = [c for c in comparisons if c.score is not None]
    labels = np.array([c.expected_label for c in scored], dtype=np.int64)
    predictions = np.array([c.prediction for c in scored], dtype=np.float64)
    genuine_count = int(np.count_nonzero(labels == 0))
    forgery_count = int(np.count_nonzero(labels == 1))

    buckets = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_bucket)(i / steps, labels, predictions, genuine_count, forgery_count)
        for i in range(steps)
    )
    return sorted(buckets, key=lambda b: b.threshold)


def find_eer(buckets):
    """The bucket where FAR and FRR are closest, first one on ties."""
    best, best_gap = None, math.inf
    for bucket in buckets:
        gap = abs(bucket.far - bucket.frr)
        if math.isnan(gap):
            continue
        if gap < best_gap:
            best, best_gap = bucket, gap
    if best is None:
        raise DegenerateBenchmark("Every threshold has an undefined FAR or FRR; one class is missing")
    return best


def calculate_eer(genu, forg):
    """ROC based EER of genuine-probability scores, and the score threshold it occurs at."""
    scores = list(genu) + list(forg)
    labels = [1] * len(genu) + [0] * len(forg)
    fpr, tpr, th = roc_curve(labels, scores)
    fnr = 1 - tpr
    i = np.argmin(np.abs(fpr - fnr))
    return float(fpr[i]), float(th[i])


def evaluate(comparisons, steps=BENCHMARK_STEPS, n_jobs=N_JOBS):
    buckets = get_benchmark_results(comparisons, steps, n_jobs)
    genuine_count = buckets[0].genuine_count if buckets else 0
    forgery_count = buckets[0].forgery_count if buckets else 0

    try:
        eer = find_eer(buckets)
    except DegenerateBenchmark as e:
        logger.warning("No EER for this benchmark: %s (%d genuine, %d forged)", e, genuine_count, forgery_count)
        eer = None

    roc_eer = None
    if genuine_count and forgery_count:
        genu = [c.score for c in comparisons if c.score is not None and c.expected_label == 0]
        forg = [c.score for c in comparisons if c.score is not None and c.expected_label == 1]
        roc_eer, _ = calculate_eer(genu, forg)

    if eer is not None:
        logger.info("EER: %s", eer)
    return BenchmarkReport(buckets, eer, roc_eer, genuine_count, forgery_count)


def save_benchmark_results(buckets, path):
    headers = ["Threshold", "FalseRejection", "GenuineCount", "FRR", "FalseAcceptance", "ForgeryCount", "FAR", "AER"]
    rows = ([b.threshold, b.false_rejection, b.genuine_count, b.frr,
             b.false_acceptance, b.forgery_count, b.far, b.aer] for b in buckets)
    save_table(headers, rows, path)
