import pytest

from mastery_engine.adaptive.transfer import TransferPropagator
from mastery_engine.schemas.mastery import MasteryState, SkillState


@pytest.fixture
def propagator():
    return TransferPropagator()


@pytest.fixture
def state(registry):
    """Learner with s, h and sh, graph built from the phonics registry"""
    state = MasteryState(learner_id="learner-1", tenant_id="school-1")
    for skill_id in ("s", "h", "sh"):
        definition = registry.resolve(skill_id)
        state.skills[skill_id] = SkillState(
            skill_id=skill_id,
            prerequisites=list(definition.prerequisites),
            transfers_to=list(definition.transfers_to),
        )
        state.prerequisite_graph.add_skill(skill_id, definition.phase, definition.prerequisites)
    return state


class TestTransferPropagator:
    """Tests for transfer boosts and prerequisite readiness"""

    def test_correct_answer_boosts_transfer_targets(self, propagator, state):
        touched = propagator.propagate(state, "s", correct=True)

        assert state.skills["sh"].p_transit == pytest.approx(0.1 + 0.1 * 0.05)
        assert touched == ["sh"]

    def test_incorrect_answer_has_no_transfer(self, propagator, state):
        assert propagator.propagate(state, "s", correct=False) == []
        assert state.skills["sh"].p_transit == 0.1

    def test_transfer_capped(self, propagator, state):
        state.skills["sh"].p_transit = 0.499
        propagator.propagate(state, "s", correct=True)
        assert state.skills["sh"].p_transit == 0.5

    def test_missing_transfer_target_ignored(self, propagator, state):
        # h transfers to sh, ch and th; only sh exists
        touched = propagator.propagate(state, "h", correct=True)
        assert "ch" not in state.skills
        assert "sh" in touched

    def test_readiness_boost_when_all_prerequisites_mastered(self, propagator, state):
        state.skills["s"].p_mastery = 0.8
        state.skills["h"].p_mastery = 0.75
        propagator.propagate(state, "s", correct=False)

        assert state.skills["sh"].p_transit == pytest.approx(0.12)

    def test_no_readiness_boost_with_unmastered_prerequisite(self, propagator, state):
        state.skills["s"].p_mastery = 0.8
        state.skills["h"].p_mastery = 0.5
        propagator.propagate(state, "s", correct=False)

        assert state.skills["sh"].p_transit == 0.1

    def test_readiness_requires_prerequisites_present(self, propagator, state):
        del state.skills["h"]
        state.skills["s"].p_mastery = 0.9
        assert not propagator.prerequisites_met(state, "sh")

    def test_unknown_skill(self, propagator, state):
        assert propagator.propagate(state, "zz", correct=True) == []
