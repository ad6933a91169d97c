"""Shared pytest fixtures."""

import numpy as np
import pytest

from sigverify.signature import Database, InputDevice, Origin, Signature


def _make_signature(signature_id, x, y=None, pressure=None, signer_id="U1",
                    device=InputDevice.STYLUS, origin=Origin.GENUINE):
    x = np.asarray(x, dtype=np.float64)
    y = np.zeros_like(x) if y is None else y
    return Signature(
        id=signature_id,
        signer_id=signer_id,
        input_device=device,
        x=x,
        y=y,
        t=np.arange(len(x)) * 10,
        pressure=pressure,
        origin=origin,
    )


@pytest.fixture
def make_signature():
    """Factory for small synthetic traces; timestamps are 10 ms apart."""
    return _make_signature


@pytest.fixture
def equilateral():
    """Three constant one-hot traces, every pair at DTW distance 20."""
    n = 10
    ones, zeros = np.ones(n), np.zeros(n)
    return [
        _make_signature("R1", ones, zeros, zeros),
        _make_signature("R2", zeros, ones, zeros),
        _make_signature("R3", zeros, zeros, ones),
    ]


@pytest.fixture
def random_traces():
    """Fifty 2-channel traces of varying length from a fixed seed."""
    rng = np.random.default_rng(0)
    signatures = []
    for i in range(50):
        n = int(rng.integers(5, 16))
        signatures.append(_make_signature(
            f"S{i:02d}", rng.normal(size=n), rng.normal(size=n), signer_id=f"U{i % 5}",
        ))
    return signatures


@pytest.fixture
def small_database():
    """Two stylus signers with 3 genuine and 2 forged samples each."""
    rng = np.random.default_rng(1)
    database = Database()
    for signer in ("U1", "U2"):
        base = rng.normal(size=12)
        for i in range(1, 4):
            database.add(_make_signature(
                f"{signer}S{i}", base + rng.normal(scale=0.05, size=12), base[::-1],
                np.full(12, 0.5), signer_id=signer,
            ))
        for i in range(21, 23):
            database.add(_make_signature(
                f"{signer}S{i}", rng.normal(size=12), rng.normal(size=12),
                np.full(12, 0.5), signer_id=signer, origin=Origin.FORGED,
            ))
    return database
