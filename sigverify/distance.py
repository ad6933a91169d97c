"""Elastic (DTW) distance between multivariate traces and pairwise distance matrices."""

import logging

import numpy as np
from joblib import Parallel, delayed
from numba import njit

from sigverify.config import DTW_METRIC, DTW_METRICS
from sigverify.errors import DimensionMismatch, MissingDistanceEntry

logger = logging.getLogger(__name__)


# -- DTW kernel --
@njit(nogil=True)
def _dtw(A, B, absolute):
    n, K = A.shape
    m = B.shape[0]
    D = np.full((n + 1, m + 1), np.inf)
    D[0, 0] = 0.0
    for i in range(1, n + 1):
        for j in range(1, m + 1):
            cost = 0.0
            for k in range(K):
                diff = A[i - 1, k] - B[j - 1, k]
                if absolute:
                    cost += abs(diff)
                else:
                    cost += diff * diff
            D[i, j] = cost + min(D[i - 1, j], D[i, j - 1], D[i - 1, j - 1])
    return D[n, m]


def _as_sequence(values):
    values = np.ascontiguousarray(values, dtype=np.float64)
    if values.ndim == 1:
        values = values.reshape(-1, 1)
    if values.ndim != 2:
        raise ValueError(f"Expected a (steps, channels) array, got shape {values.shape}")
    if values.shape[0] == 0:
        raise ValueError("Empty sequence provided.")
    return values


def dtw_distance(a, b, metric=DTW_METRIC):
    """Minimum cost of a monotonic alignment between `a` and `b`.

    `a` is (n, c), `b` is (m, c). The per-step cost is the sum of squared
    (``metric="squared"``) or absolute (``metric="absolute"``) channel
    differences. Channel weighting is the caller's business.
    """
    if metric not in DTW_METRICS:
        raise ValueError(f"Unknown DTW metric {metric!r}, expected one of {DTW_METRICS}")
    A, B = _as_sequence(a), _as_sequence(b)
    if A.shape[1] != B.shape[1]:
        raise DimensionMismatch(A.shape[1], B.shape[1])
    return float(_dtw(A, B, metric == "absolute"))


class DtwDistance:
    def __init__(self, metric=DTW_METRIC):
        if metric not in DTW_METRICS:
            raise ValueError(f"Unknown DTW metric {metric!r}, expected one of {DTW_METRICS}")
        self.metric = metric

    def __call__(self, a, b):
        return dtw_distance(a, b, self.metric)

    def __repr__(self):
        return f"DtwDistance(metric={self.metric!r})"


# -- Pairwise distances --
class DistanceMatrix:
    """Symmetric distance matrix over signature ids with a zero diagonal.

    Ids are mapped to stable integer positions; values are stored densely.
    """

    def __init__(self, ids, values):
        self.ids = list(ids)
        self.values = np.asarray(values, dtype=np.float64)
        self._index = {signature_id: i for i, signature_id in enumerate(self.ids)}
        if len(self._index) != len(self.ids):
            raise ValueError("Distance matrix ids must be unique")
        if self.values.shape != (len(self.ids), len(self.ids)):
            raise ValueError(f"Expected a {len(self.ids)}x{len(self.ids)} matrix, got {self.values.shape}")

    def __len__(self):
        return len(self.ids)

    def __getitem__(self, pair):
        first, second = pair
        try:
            return float(self.values[self._index[first], self._index[second]])
        except KeyError:
            raise MissingDistanceEntry(first, second) from None

    def __contains__(self, pair):
        first, second = pair
        return first in self._index and second in self._index

    def index(self, signature_id):
        return self._index[signature_id]

    def row(self, signature_id):
        try:
            return self.values[self._index[signature_id]]
        except KeyError:
            raise MissingDistanceEntry(signature_id, None) from None

    def upper_triangle(self):
        return self.values[np.triu_indices(len(self.ids), k=1)]

    def pairs(self):
        """Yield (id_i, id_j, distance) for every unordered pair i < j."""
        rows, cols = np.triu_indices(len(self.ids), k=1)
        for i, j in zip(rows, cols):
            yield self.ids[i], self.ids[j], float(self.values[i, j])

    def nonzero_values(self):
        values = self.upper_triangle()
        return values[values != 0]

    def to_table(self):
        headers = [""] + self.ids
        rows = [[signature_id] + [float(v) for v in self.values[i]] for i, signature_id in enumerate(self.ids)]
        return headers, rows


def _row_distances(i, features, distance):
    # row i owns every pair (i, j) with j > i
    return i, [distance(features[i], features[j]) for j in range(i + 1, len(features))]


def compute_distance_matrix(ids, features, distance=None, n_jobs=1):
    """Evaluate `distance` once per unordered pair and mirror the results.

    Rows run in a joblib thread pool; every pair is assigned to exactly one
    row up front so no task ever writes a cell owned by another.
    """
    ids = list(ids)
    if len(ids) != len(features):
        raise ValueError(f"{len(ids)} ids given for {len(features)} feature vectors")
    distance = distance or DtwDistance()
    n = len(ids)

    rows = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_row_distances)(i, features, distance) for i in range(n)
    )

    values = np.zeros((n, n), dtype=np.float64)
    for i, row in rows:
        values[i, i + 1:] = row
        values[i + 1:, i] = row
    return DistanceMatrix(ids, values)
