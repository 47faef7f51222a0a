"""
Learner mastery state

One MasteryState per (learner, tenant), holding a SkillState per practised
skill, a snapshot of the prerequisite graph and the forgetting model with its
review schedule. The whole state is persisted as a single JSON blob.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from mastery_engine.schemas.graph import PrerequisiteGraph

PROBABILITY_FLOOR = 0.001
PROBABILITY_CEILING = 0.999
HISTORY_WINDOW = 50


def clamp_probability(value: float) -> float:
    """Keep a model probability inside [0.001, 0.999]; NaN collapses to the floor."""
    if value is None or math.isnan(value):
        return PROBABILITY_FLOOR
    return max(PROBABILITY_FLOOR, min(PROBABILITY_CEILING, value))


class SkillKind(str, Enum):
    """Curricular category of an atomic skill"""
    GPC = "GPC"  # grapheme-phoneme correspondence
    BLEND = "BLEND"
    DIGRAPH = "DIGRAPH"
    TRIGRAPH = "TRIGRAPH"
    MORPHEME = "MORPHEME"
    VOCABULARY = "VOCABULARY"
    COMPREHENSION = "COMPREHENSION"


class PracticeContext(str, Enum):
    """Where a practice event happened"""
    ASSESSMENT = "ASSESSMENT"
    STORYBOOK = "STORYBOOK"
    ARENA = "ARENA"
    DRILL = "DRILL"


class ReviewResult(str, Enum):
    """Outcome recorded on a review schedule entry"""
    EASY = "EASY"
    CORRECT = "CORRECT"
    HARD = "HARD"
    FORGOT = "FORGOT"


class MasteryLevel(str, Enum):
    """Consumer-facing classification of a continuous mastery probability"""
    NOT_STARTED = "not_started"
    EMERGING = "emerging"
    DEVELOPING = "developing"
    SECURING = "securing"
    MASTERED = "mastered"


def classify_mastery(p_mastery: float) -> MasteryLevel:
    if p_mastery >= 0.95:
        return MasteryLevel.MASTERED
    if p_mastery >= 0.8:
        return MasteryLevel.SECURING
    if p_mastery >= 0.6:
        return MasteryLevel.DEVELOPING
    if p_mastery >= 0.3:
        return MasteryLevel.EMERGING
    return MasteryLevel.NOT_STARTED


class PracticeEvent(BaseModel):
    timestamp: datetime
    correct: bool
    response_time_ms: int = 0
    context: PracticeContext = PracticeContext.DRILL
    difficulty: float = 0.5  # skill difficulty at the time of the attempt
    confidence: float = 1.0  # ASR or self-reported confidence


class ConfidenceInterval(BaseModel):
    lower: float = 0.0
    upper: float = 1.0

    @model_validator(mode="after")
    def _ordered(self) -> "ConfidenceInterval":
        if not 0.0 <= self.lower <= self.upper <= 1.0:
            raise ValueError(f"invalid interval [{self.lower}, {self.upper}]")
        return self

    @property
    def width(self) -> float:
        return self.upper - self.lower


class SkillState(BaseModel):
    """Per-skill knowledge tracing state"""

    skill_id: str
    skill_kind: SkillKind = SkillKind.GPC
    phase: int = 0

    # Classical BKT parameters
    p_mastery: float = 0.1
    p_transit: float = 0.1
    p_slip: float = 0.05
    p_guess: float = 0.2

    # Enhanced parameters
    p_retention: float = 1.0
    p_transfer: float = 0.1
    difficulty: float = 0.5
    discriminability: float = 0.5

    # Counters and timestamps
    total_attempts: int = 0
    correct_attempts: int = 0
    streak_current: int = 0
    streak_best: int = 0
    last_practiced: Optional[datetime] = None
    last_correct: Optional[datetime] = None
    practice_history: List[PracticeEvent] = Field(default_factory=list)

    # Inter-skill relations
    prerequisites: List[str] = Field(default_factory=list)
    transfers_to: List[str] = Field(default_factory=list)
    correlated_with: List[str] = Field(default_factory=list)

    confidence_interval: ConfidenceInterval = Field(default_factory=ConfidenceInterval)
    sample_size: int = 0

    def record_event(self, event: PracticeEvent):
        """Append to the bounded practice history"""
        self.practice_history.append(event)
        if len(self.practice_history) > HISTORY_WINDOW:
            self.practice_history = self.practice_history[-HISTORY_WINDOW:]

    @property
    def accuracy(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.correct_attempts / self.total_attempts

    @property
    def level(self) -> MasteryLevel:
        return classify_mastery(self.p_mastery)


class ForgettingParameters(BaseModel):
    base_decay_rate: float = 0.3
    stability_factor: float = 1.5
    retrieval_threshold: float = 0.3
    spacing_multiplier: float = 2.0
    max_interval: int = 90


class ReviewScheduleEntry(BaseModel):
    skill_id: str
    next_review_date: datetime
    interval_days: int = 1
    easiness_factor: float = 2.5
    repetition_count: int = 0
    last_review_result: ReviewResult = ReviewResult.CORRECT


class ForgettingModel(BaseModel):
    parameters: ForgettingParameters = Field(default_factory=ForgettingParameters)
    skill_decay_rates: Dict[str, float] = Field(default_factory=dict)
    review_schedule: Dict[str, ReviewScheduleEntry] = Field(default_factory=dict)


class MasteryState(BaseModel):
    """Everything the engine knows about one learner"""

    learner_id: str
    tenant_id: str
    skills: Dict[str, SkillState] = Field(default_factory=dict)
    prerequisite_graph: PrerequisiteGraph = Field(default_factory=PrerequisiteGraph)
    forgetting_model: ForgettingModel = Field(default_factory=ForgettingModel)
    version: int = 0
    last_updated: Optional[datetime] = None

    @property
    def key(self) -> tuple:
        return (self.tenant_id, self.learner_id)

    def to_blob(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_blob(cls, blob) -> "MasteryState":
        return cls.model_validate_json(blob)
