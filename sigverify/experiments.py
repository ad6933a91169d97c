"""End-to-end runs: train one verifier per reference group, score, evaluate."""

import logging
import os
import random
import time

from joblib import Parallel, delayed

from sigverify.benchmark import evaluate
from sigverify.classifiers import MinMaxClassifier, NeighborsClassifier, SingleReferenceClassifier, Verifier
from sigverify.cloud import FINGER_SKIP_COLUMNS, CloudClassifier, is_label
from sigverify.comparisons import ComparisonSet, attach_details, score_comparisons
from sigverify.config import BENCHMARK_STEPS, N_JOBS, NEIGHBOR_COUNT, NEIGHBOR_SCALE, SINGLE_REFERENCE_THRESHOLDS
from sigverify.errors import CloudScoringError, VerificationError
from sigverify.neighbors import find_neighborhoods, group_signers, load_neighborhoods, save_neighborhoods
from sigverify.signature import InputDevice
from sigverify.statistics import StatisticsClassifier

logger = logging.getLogger(__name__)


def _train_one(key, signatures, classifier, pipeline):
    verifier = Verifier(classifier, pipeline)
    try:
        verifier.train(signatures, signer_id=key)
    except (VerificationError, ValueError) as e:
        logger.warning("Training %s on %d signature(s) failed: %s", key, len(signatures), e)
        return key, None, f"{type(e).__name__}: {e}"
    return key, verifier, None


def train_verifiers(groups, classifier, pipeline=None, n_jobs=N_JOBS):
    """Train one verifier per training group.

    Returns ``(verifiers, failures)`` keyed like `groups`. A group that fails
    to train is left out of `verifiers` and does not affect the others.
    """
    start = time.time()
    results = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_train_one)(key, signatures, classifier, pipeline) for key, signatures in groups.items()
    )
    verifiers = {key: v for key, v, _ in results if v is not None}
    failures = {key: err for key, _, err in results if err is not None}
    logger.info("Trained %d verifiers in %.2fs (%d failed)", len(verifiers), time.time() - start, len(failures))
    return verifiers, failures


def split_by_signer(comparisons, fraction=0.5, rng=None):
    """Split comparisons into two sets with disjoint reference signers."""
    rng = rng or random.Random()
    signers = sorted({c.reference_signer for c in comparisons}, key=str)
    rng.shuffle(signers)
    first = set(signers[:int(round(len(signers) * fraction))])
    train = ComparisonSet(c for c in comparisons if c.reference_signer in first)
    test = ComparisonSet(c for c in comparisons if c.reference_signer not in first)
    return train, test


def _run(name, comparisons, database, groups, group_of, classifier, sink, steps, n_jobs):
    start = time.time()
    logger.info("%s: %d comparisons, %d training groups", name, len(comparisons), len(groups))
    verifiers, _ = train_verifiers(groups, classifier, n_jobs=n_jobs)

    by_reference = {}
    for reference_id in comparisons.reference_ids():
        key = group_of(reference_id)
        if key in verifiers:
            by_reference[reference_id] = verifiers[key]
    score_comparisons(comparisons, by_reference, database, n_jobs=n_jobs,
                      key_of=lambda c: (group_of(c.reference_id), c.questioned_id))

    if sink is not None:
        attach_details(comparisons.scored(), sink, signer_of=lambda c: group_of(c.reference_id))
    report = evaluate(comparisons, steps, n_jobs)
    logger.info("%s completed in %.2fs", name, time.time() - start)
    return report


def _single_groups(comparisons, database):
    return {rid: [database[rid]] for rid in comparisons.reference_ids()}


def solve_single_reference(comparisons, database, thresholds=SINGLE_REFERENCE_THRESHOLDS,
                           sink=None, steps=BENCHMARK_STEPS, n_jobs=N_JOBS):
    classifier = SingleReferenceClassifier(*thresholds, sink=sink)
    return _run("SingleReference", comparisons, database, _single_groups(comparisons, database),
                lambda rid: rid, classifier, sink, steps, n_jobs)


def solve_min_max(comparisons, database, sink=None, steps=BENCHMARK_STEPS, n_jobs=N_JOBS):
    """Every signer's references (per input device) train one shared MinMax model."""
    def group_of(reference_id):
        signature = database[reference_id]
        return f"{signature.signer_id}:{signature.input_device.value}"

    groups = {}
    for rid in comparisons.reference_ids():
        groups.setdefault(group_of(rid), []).append(database[rid])
    return _run("MinMax", comparisons, database, groups, group_of,
                MinMaxClassifier(sink=sink), sink, steps, n_jobs)


def solve_neighbors(comparisons, database, k=NEIGHBOR_COUNT, scale=NEIGHBOR_SCALE, neighbors_path=None,
                    sink=None, steps=BENCHMARK_STEPS, n_jobs=N_JOBS):
    """Each reference trains with its `k` nearest other references.

    When `neighbors_path` names an existing file the neighbourhoods are read
    from it, otherwise they are computed (per input device) and saved there.
    """
    references = [database[rid] for rid in comparisons.reference_ids()]
    if neighbors_path is not None and os.path.exists(neighbors_path):
        hoods = load_neighborhoods(neighbors_path)
        logger.info("Loaded %d neighbourhoods from %s", len(hoods), neighbors_path)
    else:
        hoods = []
        for device in InputDevice:
            same_device = [s for s in references if s.input_device == device]
            if len(same_device) > 1:
                _, device_hoods = find_neighborhoods(same_device, k, n_jobs=n_jobs)
                hoods.extend(device_hoods)
            elif same_device:
                logger.warning("Only one %s reference, no neighbourhood for %s",
                               device.value, ", ".join(s.id for s in same_device))
        if neighbors_path is not None:
            save_neighborhoods(hoods, neighbors_path)

    groups = group_signers(hoods, database)
    return _run("Neighbors", comparisons, database, groups, lambda rid: rid,
                NeighborsClassifier(scale, sink=sink), sink, steps, n_jobs)


def solve_statistics(comparisons, database, statistics, only_dtw=True, sink=None,
                     steps=BENCHMARK_STEPS, n_jobs=N_JOBS):
    classifier = StatisticsClassifier(statistics, only_dtw=only_dtw, sink=sink)
    return _run("Statistics", comparisons, database, _single_groups(comparisons, database),
                lambda rid: rid, classifier, sink, steps, n_jobs)


def solve_cloud(comparisons, database, scorers, sink=None, steps=BENCHMARK_STEPS, n_jobs=N_JOBS):
    """Score comparisons remotely, batching every comparison of a device into one request stream.

    `scorers` maps an InputDevice to its CloudScorer.
    """
    start = time.time()
    pending = {}
    for c in comparisons:
        reference, questioned = database[c.reference_id], database[c.questioned_id]
        device = reference.input_device
        if device not in scorers:
            c.score, c.error = None, f"No scoring service for {device.value} input"
            continue
        skip = FINGER_SKIP_COLUMNS if device == InputDevice.FINGER else ()
        classifier = CloudClassifier(scorers[device], skip_columns=skip, sink=sink)
        try:
            row = classifier.row(reference, questioned)
        except (VerificationError, ValueError) as e:
            c.score, c.error = None, f"{type(e).__name__}: {e}"
            logger.warning("Comparison %s vs %s failed: %s", c.reference_id, c.questioned_id, c.error)
            continue
        pending.setdefault(device, []).append((c, row))

    for device, items in pending.items():
        predictions = scorers[device].predict([row for _, row in items])
        for (c, _), prediction in zip(items, predictions):
            if not is_label(prediction):
                c.score = None
                c.error = f"{CloudScoringError.__name__}: no prediction returned (got {prediction!r})"
            else:
                c.score, c.error = 1.0 - prediction, None

    report = evaluate(comparisons, steps, n_jobs)
    logger.info("Cloud completed in %.2fs", time.time() - start)
    return report
