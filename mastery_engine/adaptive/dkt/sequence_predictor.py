"""
Deep Knowledge Tracing (DKT) sequence predictor

LSTM inference over a learner's full interaction sequence across all skills,
capturing temporal and cross-skill patterns that single-skill BKT cannot
(Piech et al., 2015). Inference only: weights are trained offline and
exported to a NumPy archive.

Architecture:
1. Embed (skill, outcome) pairs; append normalised time gap (hours / 168)
2. Stacked LSTM cells (input, forget, cell, output gates)
3. Linear projection to per-skill logits, sigmoid for the target skill

Usage:
    predictor = LSTMSequencePredictor.from_weights("dkt_weights.npz", config)
    prediction = predictor.predict(sequence, "sh")
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence
from pathlib import Path
import json
import logging
import zlib

import numpy as np

from mastery_engine.schemas.mastery import MasteryState, PracticeContext, clamp_probability

logger = logging.getLogger(__name__)

MIN_SEQUENCE_EVENTS = 5
MAX_DKT_WEIGHT = 0.4
HOURS_PER_WEEK = 168.0


@dataclass
class DKTConfig:
    """Configuration for the LSTM predictor (must match exported weights)"""
    hidden_size: int = 64
    num_layers: int = 1
    embedding_size: int = 32
    num_skills: int = 500
    sequence_length: int = 200  # most recent interactions considered
    seed: int = 15  # fallback initialisation seed

    def to_dict(self) -> Dict:
        return {
            "hidden_size": self.hidden_size,
            "num_layers": self.num_layers,
            "embedding_size": self.embedding_size,
            "num_skills": self.num_skills,
            "sequence_length": self.sequence_length,
            "seed": self.seed,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "DKTConfig":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})

    @classmethod
    def load(cls, path: str) -> "DKTConfig":
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))


@dataclass
class InteractionRecord:
    """One step of a learner's chronological interaction sequence"""
    skill_id: str
    correct: bool
    hours_since_previous: float = 0.0
    context: PracticeContext = PracticeContext.DRILL


@dataclass
class SequencePrediction:
    skill_id: str
    predicted_mastery: float
    confidence: float  # coverage proxy, not a calibrated probability
    timestep: int
    feature_vector: List[float]


class SequencePredictor(Protocol):
    """
    Pluggable sequence model: predict(sequence, target_skill)

    Implementations may set pretrained = False to keep their predictions
    out of the mastery estimate.
    """

    def predict(self, sequence: Sequence[InteractionRecord], target_skill: str) -> Optional[SequencePrediction]:
        ...


def build_interaction_sequence(state: MasteryState) -> List[InteractionRecord]:
    """
    Flatten every skill's practice history into one chronological sequence

    Returns:
        Interactions ordered by timestamp with hours since the previous one
    """
    events = []
    for skill_id, skill in state.skills.items():
        for event in skill.practice_history:
            events.append((event.timestamp, skill_id, event))
    events.sort(key=lambda item: item[0])

    sequence = []
    previous = None
    for timestamp, skill_id, event in events:
        gap = 0.0 if previous is None else (timestamp - previous).total_seconds() / 3600
        sequence.append(InteractionRecord(
            skill_id=skill_id,
            correct=event.correct,
            hours_since_previous=gap,
            context=event.context,
        ))
        previous = timestamp
    return sequence


def blend_prediction(bkt_mastery: float, prediction: SequencePrediction) -> float:
    """
    Confidence-weighted blend of BKT and DKT estimates

    The DKT weight never exceeds 0.4, so the statistically grounded BKT
    estimate always dominates.
    """
    dkt_weight = min(MAX_DKT_WEIGHT, prediction.confidence * 0.5)
    blended = (1 - dkt_weight) * bkt_mastery + dkt_weight * prediction.predicted_mastery
    return clamp_probability(blended)


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Numerically stable logistic function"""
    return 1.0 / (1.0 + np.exp(-np.clip(x, -500, 500)))


def xavier_matrix(rng: np.random.Generator, rows: int, cols: int) -> np.ndarray:
    """Glorot uniform initialisation"""
    scale = np.sqrt(6.0 / (rows + cols))
    return rng.uniform(-scale, scale, size=(rows, cols))


class LSTMSequencePredictor:
    """
    NumPy LSTM inference for knowledge tracing.

    Weights are read-only after construction, so one instance can serve
    concurrent predictions for different learners.
    """

    def __init__(self, config: Optional[DKTConfig] = None, weights: Optional[Dict[str, np.ndarray]] = None):
        self.config = config or DKTConfig()
        if weights is None:
            self.weights = self._init_weights()
            self.pretrained = False
        else:
            self._check_shapes(weights)
            self.weights = weights
            self.pretrained = True

    @classmethod
    def from_weights(cls, path: Optional[str], config: Optional[DKTConfig] = None) -> "LSTMSequencePredictor":
        """
        Load exported weights, falling back to Xavier initialisation

        Args:
            path: .npz archive from the model registry
            config: Model configuration

        Returns:
            Predictor (pretrained=False when the fallback was used)
        """
        config = config or DKTConfig()
        if not path or not Path(path).exists():
            logger.warning(f"DKT weights not found at {path!r}; using Xavier-initialised fallback weights")
            return cls(config)

        try:
            with np.load(path) as data:
                weights = {key: np.asarray(data[key], dtype=np.float64) for key in data.files}
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read DKT weights from {path}: {e}; using fallback weights")
            return cls(config)

        logger.info(f"Loaded DKT weights from {path}: {len(weights)} parameters")
        return cls(config, weights)

    def save_weights(self, path: str):
        np.savez(path, **self.weights)

    # ------------------------------------------------------------------ weights

    def _expected_shapes(self) -> Dict[str, tuple]:
        c = self.config
        shapes = {
            "embedding": (c.num_skills * 2, c.embedding_size),
            "output.weight": (c.num_skills, c.hidden_size),
            "output.bias": (c.num_skills,),
        }
        for layer in range(c.num_layers):
            input_size = c.embedding_size + 1 if layer == 0 else c.hidden_size
            shapes[f"lstm.{layer}.w_ih"] = (4 * c.hidden_size, input_size)
            shapes[f"lstm.{layer}.w_hh"] = (4 * c.hidden_size, c.hidden_size)
            shapes[f"lstm.{layer}.b_ih"] = (4 * c.hidden_size,)
            shapes[f"lstm.{layer}.b_hh"] = (4 * c.hidden_size,)
        return shapes

    def _check_shapes(self, weights: Dict[str, np.ndarray]):
        for name, shape in self._expected_shapes().items():
            if name not in weights:
                raise ValueError(f"DKT weights missing {name!r}")
            if tuple(weights[name].shape) != shape:
                raise ValueError(f"DKT weight {name!r} has shape {weights[name].shape}, expected {shape}")

    def _init_weights(self) -> Dict[str, np.ndarray]:
        rng = np.random.default_rng(self.config.seed)
        weights = {}
        for name, shape in self._expected_shapes().items():
            if len(shape) == 2:
                weights[name] = xavier_matrix(rng, *shape)
            else:
                weights[name] = np.zeros(shape)
        return weights

    # ---------------------------------------------------------------- inference

    def skill_index(self, skill_id: str) -> int:
        """Stable skill id -> output row mapping"""
        return zlib.crc32(skill_id.encode("utf-8")) % self.config.num_skills

    def _embed(self, record: InteractionRecord) -> np.ndarray:
        interaction_id = self.skill_index(record.skill_id) * 2 + (1 if record.correct else 0)
        gap = min(1.0, max(0.0, record.hours_since_previous) / HOURS_PER_WEEK)
        return np.append(self.weights["embedding"][interaction_id], gap)

    def _lstm_cell(self, layer: int, x: np.ndarray, h: np.ndarray, c: np.ndarray):
        H = self.config.hidden_size
        w = self.weights
        gates = (
            w[f"lstm.{layer}.w_ih"] @ x + w[f"lstm.{layer}.b_ih"]
            + w[f"lstm.{layer}.w_hh"] @ h + w[f"lstm.{layer}.b_hh"]
        )
        i_gate = sigmoid(gates[:H])
        f_gate = sigmoid(gates[H:2 * H])
        g_gate = np.tanh(gates[2 * H:3 * H])
        o_gate = sigmoid(gates[3 * H:])

        c_new = f_gate * c + i_gate * g_gate
        h_new = o_gate * np.tanh(c_new)
        return h_new, c_new

    def hidden_state(self, sequence: Sequence[InteractionRecord]) -> np.ndarray:
        """Final top-layer hidden state after the truncated sequence"""
        H = self.config.hidden_size
        hidden = [np.zeros(H) for _ in range(self.config.num_layers)]
        cells = [np.zeros(H) for _ in range(self.config.num_layers)]

        for record in sequence:
            x = self._embed(record)
            for layer in range(self.config.num_layers):
                hidden[layer], cells[layer] = self._lstm_cell(layer, x, hidden[layer], cells[layer])
                x = hidden[layer]
        return hidden[-1]

    def predict(self, sequence: Sequence[InteractionRecord], target_skill: str) -> Optional[SequencePrediction]:
        """
        Predict mastery of target_skill from the interaction sequence

        Returns:
            None when fewer than 5 interactions are available
        """
        if len(sequence) < MIN_SEQUENCE_EVENTS:
            return None

        recent = list(sequence)[-self.config.sequence_length:]
        h = self.hidden_state(recent)

        logits = self.weights["output.weight"] @ h + self.weights["output.bias"]
        predicted = float(sigmoid(logits[self.skill_index(target_skill)]))
        if not np.isfinite(predicted):
            raise ValueError(f"non-finite DKT prediction for {target_skill!r}")

        return SequencePrediction(
            skill_id=target_skill,
            predicted_mastery=predicted,
            confidence=min(0.95, len(recent) / self.config.sequence_length),
            timestep=len(recent),
            feature_vector=[float(v) for v in h[:10]],
        )
