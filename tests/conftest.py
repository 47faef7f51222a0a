"""
Root pytest configuration and shared fixtures for all test tiers.
"""

import os

# Set minimal test environment before settings are imported
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379"
os.environ.pop("DKT_WEIGHTS_PATH", None)
os.environ.pop("CURRICULUM_PATH", None)

import pytest
from datetime import datetime, timedelta, timezone

from mastery_engine.core.metrics import reset_metrics
from mastery_engine.curriculum import default_phonics_registry
from mastery_engine.schemas.mastery import PracticeEvent, SkillState


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: cross-component integration tests")
    config.addinivalue_line("markers", "unit: unit tests for isolated components")


class FakeClock:
    """Controllable UTC clock"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def start_time():
    return datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(start_time):
    return FakeClock(start_time)


@pytest.fixture
def registry():
    return default_phonics_registry()


@pytest.fixture(autouse=True)
def clean_metrics():
    """Each test starts from empty metrics"""
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def make_skill():
    """Factory for skill states with a given practice record"""

    def _make(skill_id="s", correct=0, total=0, streak_best=0, **kwargs):
        return SkillState(
            skill_id=skill_id,
            correct_attempts=correct,
            total_attempts=total,
            streak_best=streak_best,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_event(start_time):
    def _make(correct=True, minutes=0, **kwargs):
        return PracticeEvent(timestamp=start_time + timedelta(minutes=minutes), correct=correct, **kwargs)

    return _make
