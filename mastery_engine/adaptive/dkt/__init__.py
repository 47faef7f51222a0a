"""
Deep Knowledge Tracing sequence model (inference only)
"""
from .sequence_predictor import (
    DKTConfig,
    InteractionRecord,
    SequencePrediction,
    SequencePredictor,
    LSTMSequencePredictor,
    build_interaction_sequence,
    blend_prediction,
)

__all__ = [
    "DKTConfig",
    "InteractionRecord",
    "SequencePrediction",
    "SequencePredictor",
    "LSTMSequencePredictor",
    "build_interaction_sequence",
    "blend_prediction",
]
