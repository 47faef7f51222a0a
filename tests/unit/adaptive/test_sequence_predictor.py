"""
Unit tests for the LSTM sequence predictor

Tests cover:
- Minimum-data gate and confidence
- Deterministic fallback weights
- Loading exported weights
- Blend rule
- Interaction sequence construction
"""

import math
from datetime import timedelta

import numpy as np
import pytest

from mastery_engine.adaptive.dkt import (
    DKTConfig,
    InteractionRecord,
    LSTMSequencePredictor,
    SequencePrediction,
    blend_prediction,
    build_interaction_sequence,
)
from mastery_engine.schemas.mastery import MasteryState, PracticeEvent, SkillState


@pytest.fixture
def config():
    return DKTConfig(hidden_size=8, num_layers=2, embedding_size=4, num_skills=50, sequence_length=10, seed=7)


@pytest.fixture
def predictor(config):
    return LSTMSequencePredictor(config)


def make_sequence(n, skills=("s", "a", "t")):
    return [
        InteractionRecord(skill_id=skills[i % len(skills)], correct=i % 3 != 0, hours_since_previous=float(i))
        for i in range(n)
    ]


class TestDKTConfig:
    def test_round_trip(self, config):
        assert DKTConfig.from_dict(config.to_dict()) == config

    def test_unknown_keys_ignored(self):
        config = DKTConfig.from_dict({"hidden_size": 16, "dropout": 0.2})
        assert config.hidden_size == 16


class TestPredict:
    """Tests for inference"""

    def test_fewer_than_five_events_returns_none(self, predictor):
        assert predictor.predict(make_sequence(4), "s") is None

    def test_prediction_is_probability(self, predictor):
        prediction = predictor.predict(make_sequence(6), "s")
        assert prediction is not None
        assert 0.0 <= prediction.predicted_mastery <= 1.0
        assert prediction.skill_id == "s"
        assert len(prediction.feature_vector) == 8

    def test_confidence_grows_with_sequence_length(self, predictor):
        assert predictor.predict(make_sequence(5), "s").confidence == pytest.approx(0.5)
        long = predictor.predict(make_sequence(30), "s")
        assert long.confidence == 0.95
        assert long.timestep == 10

    def test_truncates_to_most_recent_events(self, predictor):
        sequence = make_sequence(25)
        full = predictor.predict(sequence, "t")
        recent = predictor.predict(sequence[-10:], "t")
        assert full.predicted_mastery == pytest.approx(recent.predicted_mastery)

    def test_fallback_weights_are_deterministic(self, config):
        first = LSTMSequencePredictor(config).predict(make_sequence(8), "a")
        second = LSTMSequencePredictor(config).predict(make_sequence(8), "a")
        assert first.predicted_mastery == second.predicted_mastery
        assert first.feature_vector == second.feature_vector

    def test_skill_index_is_stable(self, predictor):
        assert predictor.skill_index("sh") == predictor.skill_index("sh")
        assert 0 <= predictor.skill_index("igh") < 50

    def test_zero_weights_predict_output_bias(self, config):
        predictor = LSTMSequencePredictor(config)
        weights = {name: np.zeros_like(value) for name, value in predictor.weights.items()}
        weights["output.bias"][predictor.skill_index("s")] = 2.0

        prediction = LSTMSequencePredictor(config, weights).predict(make_sequence(5), "s")
        assert prediction.predicted_mastery == pytest.approx(1 / (1 + math.exp(-2.0)))


class TestLoadWeights:
    """Tests for loading exported weights"""

    def test_missing_file_falls_back(self, config, tmp_path):
        predictor = LSTMSequencePredictor.from_weights(str(tmp_path / "missing.npz"), config)
        assert predictor.pretrained is False

    def test_no_path_falls_back(self, config):
        assert LSTMSequencePredictor.from_weights(None, config).pretrained is False

    def test_load_saved_weights(self, config, tmp_path):
        path = str(tmp_path / "dkt.npz")
        exported = LSTMSequencePredictor(config)
        exported.save_weights(path)

        loaded = LSTMSequencePredictor.from_weights(path, config)
        assert loaded.pretrained is True
        sequence = make_sequence(7)
        assert loaded.predict(sequence, "s").predicted_mastery == pytest.approx(
            exported.predict(sequence, "s").predicted_mastery
        )

    def test_shape_mismatch_rejected(self, config, tmp_path):
        path = str(tmp_path / "dkt.npz")
        LSTMSequencePredictor(config).save_weights(path)

        with pytest.raises(ValueError):
            LSTMSequencePredictor.from_weights(path, DKTConfig(hidden_size=16, num_skills=50))

    def test_missing_parameter_rejected(self, config):
        weights = LSTMSequencePredictor(config).weights
        del weights["output.bias"]
        with pytest.raises(ValueError):
            LSTMSequencePredictor(config, weights)


class TestBlend:
    def _prediction(self, value, confidence):
        return SequencePrediction(skill_id="s", predicted_mastery=value, confidence=confidence, timestep=5, feature_vector=[])

    def test_dkt_weight_capped(self):
        assert blend_prediction(0.5, self._prediction(0.9, 0.95)) == pytest.approx(0.6 * 0.5 + 0.4 * 0.9)

    def test_low_confidence_weight(self):
        assert blend_prediction(0.5, self._prediction(0.9, 0.2)) == pytest.approx(0.9 * 0.5 + 0.1 * 0.9)

    def test_blend_is_clamped(self):
        assert blend_prediction(0.999, self._prediction(1.0, 0.95)) <= 0.999


class TestBuildInteractionSequence:
    def test_chronological_across_skills(self, start_time):
        state = MasteryState(learner_id="l1", tenant_id="t1")
        state.skills["s"] = SkillState(skill_id="s", practice_history=[
            PracticeEvent(timestamp=start_time, correct=True),
            PracticeEvent(timestamp=start_time + timedelta(hours=5), correct=False),
        ])
        state.skills["a"] = SkillState(skill_id="a", practice_history=[
            PracticeEvent(timestamp=start_time + timedelta(hours=2), correct=True),
        ])

        sequence = build_interaction_sequence(state)
        assert [r.skill_id for r in sequence] == ["s", "a", "s"]
        assert [r.hours_since_previous for r in sequence] == [0.0, 2.0, 3.0]
        assert [r.correct for r in sequence] == [True, True, False]
