"""Exceptions raised by the verification engine."""


class VerificationError(Exception):
    """Base class for all verification errors."""


class DimensionMismatch(VerificationError, ValueError):
    """Two traces with a different channel count were compared."""

    def __init__(self, left_channels, right_channels):
        self.left_channels = left_channels
        self.right_channels = right_channels
        super().__init__(f"Channel count mismatch: {left_channels} != {right_channels}")


class InvalidTrainingSetSize(VerificationError, ValueError):
    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} training signature(s), got {actual}")


class EmptyTrainingSet(VerificationError, ValueError):
    def __init__(self):
        super().__init__("At least one training signature is required")


class InvalidThresholdOrdering(VerificationError, ValueError):
    def __init__(self, genuine, inconclusive, forgery):
        super().__init__(
            f"Thresholds must satisfy genuine < inconclusive < forgery "
            f"(got {genuine}, {inconclusive}, {forgery})"
        )


class NoDistinctReferencePairs(VerificationError):
    """All reference signatures are at zero distance from each other."""

    def __init__(self, signer_id):
        self.signer_id = signer_id
        super().__init__(f"No reference pair with a non-zero distance for signer {signer_id!r}")


class MissingDistanceEntry(VerificationError, KeyError):
    """A distance was looked up for a pair that was never computed."""

    def __init__(self, first_id, second_id):
        self.first_id = first_id
        self.second_id = second_id
        super().__init__(f"No distance computed for ({first_id!r}, {second_id!r})")

    def __str__(self):
        return self.args[0]


class DegenerateBenchmark(VerificationError):
    """Every threshold bucket has an undefined FAR or FRR."""


class CloudScoringError(VerificationError):
    """The remote scoring service did not return a usable prediction."""
