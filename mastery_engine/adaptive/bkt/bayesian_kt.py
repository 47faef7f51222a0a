"""
Bayesian Knowledge Tracing (BKT)
Two-state hidden Markov model for tracking skill mastery (Corbett & Anderson)

Parameters per skill:
- P(L): Probability the skill is mastered
- P(T): Probability of learning (transition) on each opportunity
- P(G): Probability of guessing correctly when not mastered
- P(S): Probability of slip (error when mastered)

Formula:
P(Lt) = P(Lt-1 | evidence) + (1 - P(Lt-1 | evidence)) * P(T)

Slip and guess are tuned adaptively once a skill has enough evidence:
consistently correct learners with high mastery rarely slip, consistently
incorrect learners with low mastery rarely guess.
"""
from typing import Dict, Tuple
import logging

from mastery_engine.schemas.mastery import SkillState, PracticeEvent, clamp_probability

logger = logging.getLogger(__name__)


def posterior(p_mastery: float, p_slip: float, p_guess: float, correct: bool) -> float:
    """
    P(mastered | observation) by Bayes' rule

    Args:
        p_mastery: Prior P(L)
        p_slip: P(S)
        p_guess: P(G)
        correct: Observed correctness

    Returns:
        Posterior probability of mastery
    """
    if correct:
        # P(C) = P(L) * (1 - P(S)) + (1 - P(L)) * P(G)
        numerator = (1 - p_slip) * p_mastery
        evidence = numerator + p_guess * (1 - p_mastery)
    else:
        # P(I) = P(L) * P(S) + (1 - P(L)) * (1 - P(G))
        numerator = p_slip * p_mastery
        evidence = numerator + (1 - p_guess) * (1 - p_mastery)

    if evidence <= 0:
        return p_mastery
    return numerator / evidence


class BayesianKnowledgeTracer:
    """
    Classical BKT update for a single skill
    """

    TUNING_MIN_ATTEMPTS = 20
    TUNING_WINDOW = 20

    SLIP_TUNING = {"accuracy_above": 0.9, "mastery_above": 0.8, "factor": 0.95, "floor": 0.01}
    GUESS_TUNING = {"accuracy_below": 0.3, "mastery_below": 0.3, "factor": 0.95, "floor": 0.05}

    def update(self, skill: SkillState, correct: bool, event: PracticeEvent) -> Tuple[float, Dict]:
        """
        Apply one observation to a skill in place

        Records the event, updates counters and streaks, then runs the
        posterior + learning transition and adaptive slip/guess tuning.

        Args:
            skill: Skill to update
            correct: Whether the attempt was correct
            event: The practice event being observed

        Returns:
            (New mastery probability, update details)
        """
        prior = skill.p_mastery

        skill.record_event(event)
        skill.total_attempts += 1
        if correct:
            skill.correct_attempts += 1
            skill.streak_current += 1
            skill.streak_best = max(skill.streak_best, skill.streak_current)
            skill.last_correct = event.timestamp
        else:
            skill.streak_current = 0
        skill.last_practiced = event.timestamp

        p_given_obs = posterior(prior, skill.p_slip, skill.p_guess, correct)

        # P(Lt) = P(Lt-1 | obs) + (1 - P(Lt-1 | obs)) * P(T)
        skill.p_mastery = clamp_probability(p_given_obs + skill.p_transit * (1 - p_given_obs))

        tuned = self._tune_slip_and_guess(skill)

        return skill.p_mastery, {
            "prior_mastery": prior,
            "posterior_mastery": p_given_obs,
            "new_mastery_after_learning": skill.p_mastery,
            "correct": correct,
            "learning_gain": skill.p_mastery - prior,
            "tuned": tuned,
        }

    def _tune_slip_and_guess(self, skill: SkillState) -> str:
        if skill.total_attempts < self.TUNING_MIN_ATTEMPTS:
            return ""

        recent = skill.practice_history[-self.TUNING_WINDOW:]
        if not recent:
            return ""
        accuracy = sum(1 for e in recent if e.correct) / len(recent)

        slip = self.SLIP_TUNING
        if accuracy > slip["accuracy_above"] and skill.p_mastery > slip["mastery_above"]:
            skill.p_slip = clamp_probability(max(slip["floor"], skill.p_slip * slip["factor"]))
            return "slip"

        guess = self.GUESS_TUNING
        if accuracy < guess["accuracy_below"] and skill.p_mastery < guess["mastery_below"]:
            skill.p_guess = clamp_probability(max(guess["floor"], skill.p_guess * guess["factor"]))
            return "guess"

        return ""

    def predict_correct(self, skill: SkillState) -> float:
        """P(correct) on the next attempt given the current estimate"""
        return skill.p_mastery * (1 - skill.p_slip) + (1 - skill.p_mastery) * skill.p_guess

    def is_mastered(self, skill: SkillState, threshold: float = 0.95) -> bool:
        return skill.p_mastery >= threshold
