"""All-pairs nearest neighbour search over reference signatures.

Neighbourhoods are not symmetric: every signature gets its own list of the
``k`` closest other signatures.
"""

import logging
import time
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from sigverify.config import N_JOBS, NEIGHBOR_COUNT
from sigverify.distance import DtwDistance, compute_distance_matrix
from sigverify.signature import default_channels

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Neighborhood:
    primary_id: str
    neighbor_ids: Tuple[str, ...]
    neighbor_distances: Tuple[float, ...]


def nearest(matrix, k=NEIGHBOR_COUNT):
    """The `k` smallest off-diagonal entries of every row, ties by original order."""
    hoods = []
    for i, primary_id in enumerate(matrix.ids):
        row = matrix.values[i]
        order = [j for j in np.argsort(row, kind="stable") if j != i][:k]
        hoods.append(Neighborhood(
            primary_id=primary_id,
            neighbor_ids=tuple(matrix.ids[j] for j in order),
            neighbor_distances=tuple(float(row[j]) for j in order),
        ))
    return hoods


def find_neighborhoods(signatures, k=NEIGHBOR_COUNT, channels=None, distance=None, n_jobs=N_JOBS):
    """Compute the full distance matrix of `signatures` and each one's neighbourhood."""
    signatures = list(signatures)
    if not signatures:
        raise ValueError("No signatures to search")
    channels = tuple(channels) if channels else default_channels(signatures[0].input_device)
    distance = distance or DtwDistance()

    start = time.time()
    features = [s.features(channels) for s in signatures]
    matrix = compute_distance_matrix([s.id for s in signatures], features, distance, n_jobs=n_jobs)
    logger.info("Computed %d pairwise distances in %.2fs",
                len(signatures) * (len(signatures) - 1) // 2, time.time() - start)

    return matrix, nearest(matrix, k)


def save_neighborhoods(neighborhoods, path):
    with open(path, "w", encoding="ascii") as f:
        for hood in neighborhoods:
            parts = [hood.primary_id, *hood.neighbor_ids, *(repr(d) for d in hood.neighbor_distances)]
            f.write(" ".join(parts) + "\n")


def load_neighborhoods(path):
    hoods = []
    with open(path, "r", encoding="ascii") as f:
        for line_no, line in enumerate(f, 1):
            parts = line.split()
            if not parts:
                continue
            if len(parts) % 2 != 1:
                raise ValueError(f"{path}:{line_no}: expected an id followed by k ids and k distances")
            k = (len(parts) - 1) // 2
            hoods.append(Neighborhood(
                primary_id=parts[0],
                neighbor_ids=tuple(parts[1:1 + k]),
                neighbor_distances=tuple(float(d) for d in parts[1 + k:]),
            ))
    return hoods


def group_signers(neighborhoods, database):
    """Training sets for NeighborsClassifier: primary signature first, then its neighbours.

    A signature may appear in several groups.
    """
    return {
        hood.primary_id: [database[hood.primary_id], *(database[n] for n in hood.neighbor_ids)]
        for hood in neighborhoods
    }
