"""Tests for preprocessing pipelines and the signature database."""

import numpy as np
import pytest

from sigverify.preprocessing import (
    FINGER_PIPELINE, STYLUS_PIPELINE, Pipeline, filter_zero_pressure, pipeline_for, reset_finger_pressure,
    scale_unit,
)
from sigverify.signature import Database, InputDevice, Signature


class TestPipeline:
    """Tests for Pipeline and transforms."""

    def test_marks_preprocessed(self, make_signature):
        signature = make_signature("a", [0.0, 2.0, 4.0], pressure=np.ones(3))
        result = STYLUS_PIPELINE.transform(signature)
        assert result.is_preprocessed
        assert not signature.is_preprocessed

    def test_idempotent(self, make_signature):
        once = STYLUS_PIPELINE(make_signature("a", [0.0, 2.0, 4.0], [1.0, 3.0, 2.0], np.ones(3)))
        assert STYLUS_PIPELINE(once) is once

    def test_stylus_pipeline_centres_channels(self, make_signature):
        result = STYLUS_PIPELINE(make_signature("a", [0.0, 2.0, 4.0], [1.0, 3.0, 2.0], np.array([1.0, 2.0, 3.0])))
        assert np.mean(result.x) == pytest.approx(0.0)
        assert np.mean(result.y) == pytest.approx(0.0)
        assert np.ptp(result.x) == pytest.approx(1.0)

    def test_filter_zero_pressure(self, make_signature):
        signature = make_signature("a", [0.0, 1.0, 2.0, 3.0], pressure=np.array([1.0, 0.0, 0.0, 2.0]))
        result = filter_zero_pressure(signature)
        assert result.x.tolist() == [0.0, 3.0]
        assert result.t.tolist() == [0, 30]

    def test_filter_keeps_all_zero_trace(self, make_signature):
        signature = make_signature("a", [0.0, 1.0], pressure=np.zeros(2))
        assert filter_zero_pressure(signature) is signature

    def test_scale_constant_channel(self, make_signature):
        result = scale_unit("x")(make_signature("a", [5.0, 5.0]))
        assert result.x.tolist() == [0.0, 0.0]

    def test_reset_finger_pressure(self, make_signature):
        finger = make_signature("f", [0.0, 1.0], pressure=np.ones(2), device=InputDevice.FINGER)
        assert reset_finger_pressure(finger).pressure is None
        assert FINGER_PIPELINE(finger).pressure is None

    def test_pipeline_for(self):
        assert pipeline_for(InputDevice.STYLUS) is STYLUS_PIPELINE
        assert pipeline_for(InputDevice.FINGER) is FINGER_PIPELINE

    def test_empty_pipeline(self, make_signature):
        result = Pipeline()(make_signature("a", [1.0, 2.0]))
        assert result.x.tolist() == [1.0, 2.0]
        assert result.is_preprocessed


class TestSignature:
    """Tests for Signature and Database."""

    def test_channel_length_mismatch(self):
        with pytest.raises(ValueError):
            Signature("a", "U1", InputDevice.STYLUS, x=[0.0, 1.0], y=[0.0], t=[0, 1])

    def test_empty_trace(self):
        with pytest.raises(ValueError):
            Signature("a", "U1", InputDevice.STYLUS, x=[], y=[], t=[])

    def test_features(self, make_signature):
        signature = make_signature("a", [0.0, 1.0], [2.0, 3.0], np.array([0.5, 0.5]))
        assert signature.features(("x", "y", "pressure")).shape == (2, 3)
        assert signature.features(("y",)).tolist() == [[2.0], [3.0]]

    def test_features_skip_missing_pressure(self, make_signature):
        assert make_signature("a", [0.0, 1.0]).features(("x", "y", "pressure")).shape == (2, 2)
        with pytest.raises(ValueError):
            make_signature("a", [0.0, 1.0]).features(("pressure",))

    def test_unknown_channel(self, make_signature):
        with pytest.raises(ValueError):
            make_signature("a", [0.0]).features(("azimuth",))

    def test_database_lookup(self, make_signature):
        database = Database([make_signature("U1S1", [0.0])])
        assert database["u1s1"].id == "U1S1"
        assert "U1s1" in database
        assert database.get("missing") is None
        with pytest.raises(ValueError):
            database.add(make_signature("u1S1", [1.0]))

    def test_database_preprocess(self, small_database):
        small_database.preprocess(pipeline_for)
        assert all(s.is_preprocessed for s in small_database)
        assert len(small_database.signers()) == 2
        assert len(small_database.filter(InputDevice.FINGER)) == 0
