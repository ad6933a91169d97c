"""Online signature verification with DTW based classifiers and FAR/FRR benchmarking."""

from sigverify.benchmark import BenchmarkReport, ThresholdBucket, evaluate, find_eer, get_benchmark_results
from sigverify.classifiers import (
    MinMaxClassifier, NeighborsClassifier, SingleReferenceClassifier, Verifier,
)
from sigverify.comparisons import Comparison, ComparisonSet, generate_comparisons, load_comparisons
from sigverify.distance import DistanceMatrix, DtwDistance, compute_distance_matrix, dtw_distance
from sigverify.errors import (
    CloudScoringError, DegenerateBenchmark, DimensionMismatch, EmptyTrainingSet, InvalidThresholdOrdering,
    InvalidTrainingSetSize, MissingDistanceEntry, NoDistinctReferencePairs, VerificationError,
)
from sigverify.neighbors import Neighborhood, find_neighborhoods
from sigverify.signature import Database, InputDevice, Origin, Signature
from sigverify.statistics import StatisticsClassifier, TrainingStatistics

__version__ = "0.1.0"
