"""Command line benchmark: ``python -m sigverify --dataset svc2004-task2 --classifier minmax``."""

import argparse
import os
import random
import sys
import time

from sigverify.benchmark import save_benchmark_results
from sigverify.cloud import CloudScorer
from sigverify.comparisons import (
    attach_global_features, generate_comparisons, load_comparisons, save_comparisons, save_predictions,
)
from sigverify.config import API_KEY, FINGER_API, N_JOBS, STYLUS_API
from sigverify.experiments import (
    solve_cloud, solve_min_max, solve_neighbors, solve_single_reference, solve_statistics, split_by_signer,
)
from sigverify.loaders import LOADERS, download_svc2004
from sigverify.logging_config import setup_logging
from sigverify.preprocessing import pipeline_for
from sigverify.reporting import ReportSink
from sigverify.signature import InputDevice
from sigverify.statistics import (
    collect_training_statistics, load_training_statistics, save_training_statistics,
)

CLASSIFIERS = ("single", "minmax", "neighbors", "statistics", "cloud")


def build_parser():
    parser = argparse.ArgumentParser(prog="sigverify", description="Online signature verification benchmark")
    parser.add_argument("--dataset", choices=sorted(LOADERS), default="svc2004-task2")
    parser.add_argument("--data-dir", help="Dataset directory (default: svc2004_task<N>)")
    parser.add_argument("--download", action="store_true", help="Download the dataset if it is missing")
    parser.add_argument("--classifier", choices=CLASSIFIERS, default="minmax")
    parser.add_argument("--comparisons", help="File of 'reference questioned' id pairs; generated if omitted")
    parser.add_argument("--statistics-file", help="Training statistics, read if present, written otherwise")
    parser.add_argument("--neighbors-file", help="Neighbourhoods, read if present, written otherwise")
    parser.add_argument("--predictions", help="Write one prediction per comparison")
    parser.add_argument("--results", help="Write the comparison table")
    parser.add_argument("--benchmark", help="Write the per-threshold FAR/FRR table")
    parser.add_argument("--full-statistics", action="store_true",
                        help="Blend DTW with duration and spread decisions")
    parser.add_argument("--n-jobs", type=int, default=N_JOBS)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--log-level", default=None)
    return parser


def _statistics(args, comparisons, database):
    if args.statistics_file and os.path.exists(args.statistics_file):
        return load_training_statistics(args.statistics_file), comparisons
    train, test = split_by_signer(comparisons, rng=random.Random(args.seed))
    statistics, _ = collect_training_statistics(train, database)
    if args.statistics_file:
        save_training_statistics(statistics, args.statistics_file)
    return statistics, test


def main(argv=None):
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_level)
    overall_start = time.time()

    task, loader = LOADERS[args.dataset]
    data_dir = args.data_dir or f"svc2004_task{task}"
    if args.download:
        download_svc2004(task, data_dir)
    if not os.path.isdir(data_dir):
        logger.error("Dataset directory %s not found (use --download)", data_dir)
        return 1

    database = loader(data_dir)
    database.preprocess(pipeline_for)
    if args.comparisons:
        comparisons = load_comparisons(args.comparisons, database)
    else:
        comparisons = generate_comparisons(database, rng=random.Random(args.seed))

    sink = ReportSink()
    common = dict(sink=sink, n_jobs=args.n_jobs)
    if args.classifier == "single":
        report = solve_single_reference(comparisons, database, **common)
    elif args.classifier == "minmax":
        report = solve_min_max(comparisons, database, **common)
    elif args.classifier == "neighbors":
        report = solve_neighbors(comparisons, database, neighbors_path=args.neighbors_file, **common)
    elif args.classifier == "statistics":
        statistics, comparisons = _statistics(args, comparisons, database)
        report = solve_statistics(comparisons, database, statistics, only_dtw=not args.full_statistics, **common)
    else:
        scorers = {}
        if STYLUS_API:
            scorers[InputDevice.STYLUS] = CloudScorer(STYLUS_API, API_KEY)
        if FINGER_API:
            scorers[InputDevice.FINGER] = CloudScorer(FINGER_API, API_KEY)
        if not scorers:
            logger.error("Set SIGVERIFY_STYLUS_API and/or SIGVERIFY_FINGER_API to use the cloud classifier")
            return 1
        report = solve_cloud(comparisons, database, scorers, **common)

    if args.predictions:
        save_predictions(comparisons, args.predictions)
    if args.results:
        attach_global_features(comparisons, database)
        save_comparisons(comparisons, args.results)
    if args.benchmark:
        save_benchmark_results(report.buckets, args.benchmark)

    print("\n=== Final Results ===")
    print(f"{args.dataset} / {args.classifier}: {report.genuine_count} genuine, {report.forgery_count} forged")
    if report.eer is not None:
        print(f"EER={report.eer.aer:.4f} ({report.eer})")
    if report.roc_eer is not None:
        print(f"ROC EER={report.roc_eer:.4f}")
    print(f"Total evaluation time: {time.time() - overall_start:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
