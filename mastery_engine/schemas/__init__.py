from .graph import EdgeType, PrerequisiteNode, PrerequisiteEdge, PrerequisiteGraph
from .mastery import (
    PROBABILITY_FLOOR,
    PROBABILITY_CEILING,
    HISTORY_WINDOW,
    clamp_probability,
    classify_mastery,
    SkillKind,
    PracticeContext,
    ReviewResult,
    MasteryLevel,
    PracticeEvent,
    ConfidenceInterval,
    SkillState,
    ForgettingParameters,
    ReviewScheduleEntry,
    ForgettingModel,
    MasteryState,
)

__all__ = [
    "EdgeType",
    "PrerequisiteNode",
    "PrerequisiteEdge",
    "PrerequisiteGraph",
    "PROBABILITY_FLOOR",
    "PROBABILITY_CEILING",
    "HISTORY_WINDOW",
    "clamp_probability",
    "classify_mastery",
    "SkillKind",
    "PracticeContext",
    "ReviewResult",
    "MasteryLevel",
    "PracticeEvent",
    "ConfidenceInterval",
    "SkillState",
    "ForgettingParameters",
    "ReviewScheduleEntry",
    "ForgettingModel",
    "MasteryState",
]
