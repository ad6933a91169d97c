"""Global (whole-trace) features used next to the DTW distance."""

import numpy as np


def duration(signature):
    return float(signature.t[-1] - signature.t[0])


def point_count(signature):
    return len(signature)


def channel_stdev(signature, channel):
    """Population standard deviation of a channel, 0 for channels the trace does not carry."""
    values = signature.channel(channel)
    if values is None:
        return 0.0
    return float(np.std(values))


def relative_difference(reference_value, questioned_value):
    if reference_value == 0:
        return 0.0 if questioned_value == 0 else float("inf")
    return abs(reference_value - questioned_value) / abs(reference_value)


def global_features(signature):
    return {
        "stdevX": channel_stdev(signature, "x"),
        "stdevY": channel_stdev(signature, "y"),
        "stdevP": channel_stdev(signature, "pressure"),
        "count": float(point_count(signature)),
        "duration": duration(signature),
    }
