"""
Transfer and prerequisite propagation

After an update on skill S:
- Correct answers raise the learning rate of S's transfer targets
  (p_transit += p_transfer * 0.05, capped at 0.5)
- Skills that depend on S get a 1.2x learning-rate boost once every one of
  their prerequisites is mastered (p_mastery >= 0.7), capped at 0.5

Only direct edges are followed, so the cost is proportional to the degree
of S in the prerequisite graph.
"""
from typing import List
import logging

from mastery_engine.schemas.mastery import MasteryState, clamp_probability

logger = logging.getLogger(__name__)


class TransferPropagator:
    """Adjusts learning rates of related skills after a practice event"""

    TRANSFER_SCALE = 0.05
    MAX_TRANSIT = 0.5
    READINESS_BOOST = 1.2
    PREREQUISITE_MASTERY = 0.7

    def propagate(self, state: MasteryState, skill_id: str, correct: bool) -> List[str]:
        """
        Apply transfer and readiness boosts in place

        Args:
            state: Learner state containing skill_id
            skill_id: Skill that was just practised
            correct: Outcome of the attempt

        Returns:
            Ids of skills whose learning rate changed
        """
        skill = state.skills.get(skill_id)
        if skill is None:
            return []

        touched = []

        if correct:
            for target_id in skill.transfers_to:
                target = state.skills.get(target_id)
                if target is None:
                    continue
                target.p_transit = clamp_probability(
                    min(self.MAX_TRANSIT, target.p_transit + skill.p_transfer * self.TRANSFER_SCALE)
                )
                touched.append(target_id)

        for dependent_id in state.prerequisite_graph.dependents_of(skill_id):
            dependent = state.skills.get(dependent_id)
            if dependent is None or not self.prerequisites_met(state, dependent_id):
                continue
            dependent.p_transit = clamp_probability(
                min(self.MAX_TRANSIT, dependent.p_transit * self.READINESS_BOOST)
            )
            if dependent_id not in touched:
                touched.append(dependent_id)

        if touched:
            logger.debug(f"Propagated from {skill_id} to {touched}")
        return touched

    def prerequisites_met(self, state: MasteryState, skill_id: str) -> bool:
        """True when every direct prerequisite is present and mastered"""
        for prereq_id in state.prerequisite_graph.prerequisites_of(skill_id):
            prereq = state.skills.get(prereq_id)
            if prereq is None or prereq.p_mastery < self.PREREQUISITE_MASTERY:
                return False
        return True
