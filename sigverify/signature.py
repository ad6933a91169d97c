"""Signature records and the signature database."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

import numpy as np
from tslearn.utils import to_time_series


class InputDevice(Enum):
    STYLUS = "stylus"
    FINGER = "finger"


class Origin(Enum):
    GENUINE = "genuine"
    FORGED = "forged"


CHANNELS = ("x", "y", "pressure", "t")


def default_channels(device):
    """Channels used for distance computation on traces from `device`."""
    if device == InputDevice.FINGER:
        return ("x", "y")
    return ("x", "y", "pressure")


@dataclass(eq=False)
class Signature:
    """One online signature trace.

    Attributes:
        id: Unique signature identifier (usually the source file name)
        signer_id: Identifier of the claimed writer
        input_device: Stylus traces carry pressure, finger traces do not
        x, y: Pen coordinates
        pressure: Pen pressure, None for finger input
        t: Timestamps
        origin: Ground truth origin of the sample
        is_preprocessed: Set by the preprocessing pipeline
    """
    id: str
    signer_id: str
    input_device: InputDevice
    x: np.ndarray
    y: np.ndarray
    t: np.ndarray
    pressure: Optional[np.ndarray] = None
    origin: Origin = Origin.GENUINE
    is_preprocessed: bool = False

    def __post_init__(self):
        self.x = np.asarray(self.x, dtype=np.float64)
        self.y = np.asarray(self.y, dtype=np.float64)
        self.t = np.asarray(self.t, dtype=np.int64)
        if self.pressure is not None:
            self.pressure = np.asarray(self.pressure, dtype=np.float64)

        n = len(self.x)
        if n < 1:
            raise ValueError(f"Signature {self.id!r} has no points")
        lengths = {"x": n, "y": len(self.y), "t": len(self.t)}
        if self.pressure is not None:
            lengths["pressure"] = len(self.pressure)
        if len(set(lengths.values())) != 1:
            raise ValueError(f"Signature {self.id!r} has channels of different lengths: {lengths}")

    def __len__(self):
        return len(self.x)

    def channel(self, name):
        if name not in CHANNELS:
            raise ValueError(f"Unknown channel {name!r}, expected one of {CHANNELS}")
        return getattr(self, name)

    def features(self, channels):
        """Project the trace onto `channels` as a (steps, channels) array.

        Channels the trace does not carry (pressure of finger input) are left
        out, so the result may have fewer columns than requested.
        """
        columns = [self.channel(c) for c in channels]
        columns = [np.asarray(c, dtype=np.float64) for c in columns if c is not None]
        if not columns:
            raise ValueError(f"Signature {self.id!r} carries none of the channels {tuple(channels)}")
        return to_time_series(np.column_stack(columns)).astype(np.float64, copy=False)

    def with_channels(self, **channels):
        """Return a copy with some channels replaced."""
        return replace(self, **channels)


class Database:
    """In-memory signature store with case-insensitive id lookup."""

    def __init__(self, signatures=()):
        self._signatures = {}
        for signature in signatures:
            self.add(signature)

    def add(self, signature):
        key = signature.id.lower()
        if key in self._signatures:
            raise ValueError(f"Duplicate signature id {signature.id!r}")
        self._signatures[key] = signature

    def __getitem__(self, signature_id):
        return self._signatures[signature_id.lower()]

    def __contains__(self, signature_id):
        return signature_id.lower() in self._signatures

    def __iter__(self):
        return iter(self._signatures.values())

    def __len__(self):
        return len(self._signatures)

    def get(self, signature_id, default=None):
        return self._signatures.get(signature_id.lower(), default)

    def signers(self):
        grouped = {}
        for signature in self:
            grouped.setdefault(signature.signer_id, []).append(signature)
        return grouped

    def filter(self, device):
        return Database(s for s in self if s.input_device == device)

    def preprocess(self, pipeline_for):
        """Run the device pipeline over every signature once, in place."""
        for key, signature in list(self._signatures.items()):
            self._signatures[key] = pipeline_for(signature.input_device).transform(signature)
