"""
Forgetting Curve

Exponential (Ebbinghaus-style) decay of mastery with a per-skill decay rate.

Key Formulas:
- Decay rate: r = max(0.05, 0.3 - practice_stability - streak_stability + difficulty * 0.2)
    practice_stability = min(1, correct_attempts / 20) * 0.5
    streak_stability   = min(1, streak_best / 10) * 0.3
- Retention: R(t) = exp(-r * t_hours / 24)
- Decayed mastery: P(L) * R(t), never pushed below the evidence floor
    (a skill already under the floor keeps decaying from where it is)
    floor = min(0.3, accuracy * 0.5)

More successful practice and longer streaks slow decay; harder skills
decay faster.
"""
from typing import Dict, Optional
import math
import logging

from mastery_engine.schemas.mastery import SkillState, ForgettingModel, clamp_probability

logger = logging.getLogger(__name__)


class ForgettingCurve:
    """
    Per-skill exponential forgetting
    """

    BASE_RATE = 0.3
    MIN_RATE = 0.05
    PRACTICE_WEIGHT = 0.5
    PRACTICE_SATURATION = 20
    STREAK_WEIGHT = 0.3
    STREAK_SATURATION = 10
    DIFFICULTY_WEIGHT = 0.2
    EVIDENCE_FLOOR_CAP = 0.3

    # Hours since last practice before decay applies
    UPDATE_TRIGGER_HOURS = 1.0
    READ_TRIGGER_HOURS = 24.0

    def decay_rate(self, skill: SkillState) -> float:
        """
        Daily decay rate for a skill

        Args:
            skill: Skill state (correct attempts, best streak, difficulty)

        Returns:
            Decay rate, at least 0.05
        """
        practice_stability = min(1.0, skill.correct_attempts / self.PRACTICE_SATURATION) * self.PRACTICE_WEIGHT
        streak_stability = min(1.0, skill.streak_best / self.STREAK_SATURATION) * self.STREAK_WEIGHT
        difficulty_factor = skill.difficulty * self.DIFFICULTY_WEIGHT
        return max(self.MIN_RATE, self.BASE_RATE - practice_stability - streak_stability + difficulty_factor)

    @staticmethod
    def retention(rate: float, hours_elapsed: float) -> float:
        """R(t) = exp(-rate * days)"""
        return math.exp(-rate * hours_elapsed / 24)

    def evidence_floor(self, skill: SkillState) -> float:
        """Lowest mastery the total evidence still supports"""
        return min(self.EVIDENCE_FLOOR_CAP, skill.correct_attempts / max(1, skill.total_attempts) * 0.5)

    def apply(
        self,
        skill: SkillState,
        hours_elapsed: float,
        model: Optional[ForgettingModel] = None,
    ) -> Dict[str, float]:
        """
        Decay a skill's mastery in place

        Args:
            skill: Skill to decay
            hours_elapsed: Hours since the skill was last practised
            model: Forgetting model whose decay-rate cache is refreshed

        Returns:
            Decay details
        """
        if hours_elapsed < 0:
            raise ValueError(f"negative elapsed time: {hours_elapsed}")

        rate = self.decay_rate(skill)
        retention = self.retention(rate, hours_elapsed)
        before = skill.p_mastery

        skill.p_retention = clamp_probability(retention)
        decayed = before * retention
        floor = self.evidence_floor(skill)
        if before > floor:
            decayed = max(floor, decayed)
        skill.p_mastery = clamp_probability(decayed)

        if model is not None:
            model.skill_decay_rates[skill.skill_id] = rate

        return {
            "decay_rate": rate,
            "retention": retention,
            "mastery_before": before,
            "mastery_after": skill.p_mastery,
        }

    def predict_retention(self, skill: SkillState, hours_in_future: float) -> float:
        """Expected retention after a further gap with no practice"""
        return self.retention(self.decay_rate(skill), hours_in_future)
