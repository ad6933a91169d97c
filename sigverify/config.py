"""Configuration for the signature verification engine.

Every tunable constant lives here. A handful of them can be overridden with
environment variables so batch runs can be configured without code changes.
"""

import os


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {value!r})") from None


# ============================================================================
# PARALLELISM
# ============================================================================

# Worker count for joblib; -1 uses all cores, 1 runs everything on the caller thread
N_JOBS = _env_int("SIGVERIFY_N_JOBS", -1)

# ============================================================================
# LOGGING
# ============================================================================

LOG_LEVEL = os.environ.get("SIGVERIFY_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# ============================================================================
# DISTANCE
# ============================================================================

DTW_METRIC = "squared"  # "squared" or "absolute" per-step cost
DTW_METRICS = ("squared", "absolute")

# ============================================================================
# CLASSIFIERS
# ============================================================================

# Fixed thresholds of the single reference classifier (genuine, inconclusive, forgery)
SINGLE_REFERENCE_THRESHOLDS = (40.0, 50.0, 60.0)

# MinMax: genuine = min / divisor, forgery = max + spread * (max - min)
MINMAX_GENUINE_DIVISOR = 10.0
MINMAX_FORGERY_SPREAD = 10.0
MINMAX_COUNT_MIN_FACTOR = 0.8
MINMAX_COUNT_MAX_FACTOR = 1.5

# Neighbors: forgery = scale * average distance of the neighbourhood
NEIGHBOR_COUNT = 3
NEIGHBOR_SCALE = 5.0

# Statistics classifier: largest relative difference of a global feature still accepted
EXPECTABLE_DIFFERENCE = 0.25
STATISTICS_WEIGHTS = {"dtw": 5.0, "duration": 2.0, "stdev_x": 1.0, "stdev_y": 1.0}

# ============================================================================
# COMPARISON GENERATION
# ============================================================================

GENUINE_COMPARISON_COUNT = 20
FORGERY_COMPARISON_COUNT = 20
RANDOM_COMPARISON_COUNT = 40

# ============================================================================
# BENCHMARK
# ============================================================================

BENCHMARK_STEPS = 1000

# ============================================================================
# CLOUD SCORER
# ============================================================================

CLOUD_BATCH_SIZE = 1000
CLOUD_TIMEOUT = 60.0
STYLUS_API = os.environ.get("SIGVERIFY_STYLUS_API", "")
FINGER_API = os.environ.get("SIGVERIFY_FINGER_API", "")
API_KEY = os.environ.get("SIGVERIFY_API_KEY", "")

# ============================================================================
# VALIDATION
# ============================================================================


def validate_config():
    """Validate configuration consistency."""
    errors = []

    if N_JOBS == 0:
        errors.append("N_JOBS must be non-zero (got 0)")

    if DTW_METRIC not in DTW_METRICS:
        errors.append(f"DTW_METRIC must be one of {DTW_METRICS} (got {DTW_METRIC!r})")

    genuine, inconclusive, forgery = SINGLE_REFERENCE_THRESHOLDS
    if not (genuine < inconclusive < forgery):
        errors.append(f"SINGLE_REFERENCE_THRESHOLDS must be strictly increasing (got {SINGLE_REFERENCE_THRESHOLDS})")

    if MINMAX_GENUINE_DIVISOR <= 0:
        errors.append(f"MINMAX_GENUINE_DIVISOR must be positive (got {MINMAX_GENUINE_DIVISOR})")

    if NEIGHBOR_COUNT < 1:
        errors.append(f"NEIGHBOR_COUNT must be at least 1 (got {NEIGHBOR_COUNT})")

    if NEIGHBOR_SCALE <= 0:
        errors.append(f"NEIGHBOR_SCALE must be positive (got {NEIGHBOR_SCALE})")

    if not (0.0 < EXPECTABLE_DIFFERENCE <= 1.0):
        errors.append(f"EXPECTABLE_DIFFERENCE must be in (0.0, 1.0] (got {EXPECTABLE_DIFFERENCE})")

    if BENCHMARK_STEPS < 1:
        errors.append(f"BENCHMARK_STEPS must be positive (got {BENCHMARK_STEPS})")

    if CLOUD_BATCH_SIZE < 1:
        errors.append(f"CLOUD_BATCH_SIZE must be positive (got {CLOUD_BATCH_SIZE})")

    if errors:
        raise ValueError("Configuration validation failed:\n" + "\n".join(errors))


# Run validation on import
validate_config()
