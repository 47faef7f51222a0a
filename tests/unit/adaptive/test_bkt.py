import pytest

from mastery_engine.adaptive.bkt import BayesianKnowledgeTracer, posterior
from mastery_engine.schemas.mastery import PROBABILITY_CEILING, PROBABILITY_FLOOR, SkillState


class TestPosterior:
    """Bayes rule for a single observation"""

    def test_correct_answer_posterior(self):
        """0.095 / (0.095 + 0.18) with default parameters"""
        result = posterior(0.1, 0.05, 0.2, correct=True)
        assert result == pytest.approx(0.095 / 0.275, abs=1e-12)

    def test_incorrect_answer_posterior(self):
        result = posterior(0.5, 0.1, 0.2, correct=False)
        # 0.05 / (0.05 + 0.4)
        assert result == pytest.approx(0.05 / 0.45)

    def test_zero_evidence_returns_prior(self):
        assert posterior(0.0, 0.0, 0.0, correct=True) == 0.0


class TestBayesianKnowledgeTracer:
    """Unit tests for Bayesian Knowledge Tracing logic"""

    @pytest.fixture
    def bkt(self):
        return BayesianKnowledgeTracer()

    def test_first_correct_attempt_on_fresh_skill(self, bkt, make_event):
        """Fresh skill, one correct answer: posterior plus learning transition"""
        skill = SkillState(skill_id="s")
        new_mastery, details = bkt.update(skill, True, make_event(True))

        expected_posterior = 0.095 / (0.095 + 0.18)
        expected = expected_posterior + 0.1 * (1 - expected_posterior)
        assert new_mastery == pytest.approx(expected, abs=1e-9)
        assert details["posterior_mastery"] == pytest.approx(expected_posterior, abs=1e-9)
        assert details["learning_gain"] > 0

    def test_counters_and_streaks(self, bkt, make_event):
        skill = SkillState(skill_id="s")
        for i, correct in enumerate([True, True, False, True]):
            bkt.update(skill, correct, make_event(correct, minutes=i))

        assert skill.total_attempts == 4
        assert skill.correct_attempts == 3
        assert skill.streak_current == 1
        assert skill.streak_best == 2
        assert skill.last_practiced == make_event(minutes=3).timestamp
        assert skill.last_correct == make_event(minutes=3).timestamp
        assert len(skill.practice_history) == 4

    def test_correct_answer_increases_mastery(self, bkt, make_event):
        """Correct answers never lower mastery when slip + guess < 1"""
        skill = SkillState(skill_id="s")
        previous = skill.p_mastery
        for i in range(15):
            mastery, _ = bkt.update(skill, True, make_event(True, minutes=i))
            assert mastery >= previous
            previous = mastery

    def test_incorrect_answer_decreases_mastery(self, bkt, make_event):
        skill = SkillState(skill_id="s", p_mastery=0.8)
        mastery, details = bkt.update(skill, False, make_event(False))
        assert mastery < 0.8
        assert details["correct"] is False

    def test_probabilities_stay_in_bounds(self, bkt, make_event):
        skill = SkillState(skill_id="s", p_mastery=0.999, p_transit=0.999)
        mastery, _ = bkt.update(skill, True, make_event(True))
        assert PROBABILITY_FLOOR <= mastery <= PROBABILITY_CEILING

        skill = SkillState(skill_id="s", p_mastery=0.001, p_transit=0.001)
        for i in range(30):
            mastery, _ = bkt.update(skill, False, make_event(False, minutes=i))
            assert PROBABILITY_FLOOR <= mastery <= PROBABILITY_CEILING
            assert PROBABILITY_FLOOR <= skill.p_guess <= PROBABILITY_CEILING

    def test_history_is_bounded(self, bkt, make_event):
        skill = SkillState(skill_id="s")
        for i in range(60):
            bkt.update(skill, True, make_event(True, minutes=i))
        assert len(skill.practice_history) == 50
        assert skill.practice_history[-1].timestamp == make_event(minutes=59).timestamp

    def test_no_tuning_before_twenty_attempts(self, bkt, make_event):
        skill = SkillState(skill_id="s")
        for i in range(19):
            _, details = bkt.update(skill, True, make_event(True, minutes=i))
            assert details["tuned"] == ""
        assert skill.p_slip == 0.05

    def test_slip_tuned_down_for_consistently_correct_learner(self, bkt, make_event):
        skill = SkillState(skill_id="s")
        for i in range(20):
            _, details = bkt.update(skill, True, make_event(True, minutes=i))
        assert details["tuned"] == "slip"
        assert skill.p_slip == pytest.approx(0.05 * 0.95)

    def test_guess_tuned_down_for_consistently_incorrect_learner(self, bkt, make_event):
        skill = SkillState(skill_id="s")
        for i in range(20):
            _, details = bkt.update(skill, False, make_event(False, minutes=i))
        assert details["tuned"] == "guess"
        assert skill.p_guess == pytest.approx(0.2 * 0.95)

    def test_slip_floor(self, bkt, make_event):
        skill = SkillState(skill_id="s", p_slip=0.0101)
        for i in range(25):
            bkt.update(skill, True, make_event(True, minutes=i))
        assert skill.p_slip == pytest.approx(0.01)

    def test_predict_correct(self, bkt):
        skill = SkillState(skill_id="s", p_mastery=0.5, p_slip=0.1, p_guess=0.2)
        assert bkt.predict_correct(skill) == pytest.approx(0.5 * 0.9 + 0.5 * 0.2)

    def test_is_mastered(self, bkt):
        assert bkt.is_mastered(SkillState(skill_id="s", p_mastery=0.96))
        assert not bkt.is_mastered(SkillState(skill_id="s", p_mastery=0.5))
