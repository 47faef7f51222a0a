"""
Tests for engine configuration
"""
import pytest
import os
from unittest.mock import patch


class TestSettings:
    """Tests for Settings configuration class"""

    def test_default_values(self):
        """Test default configuration values"""
        from mastery_engine.core.config import Settings

        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

            assert settings.APP_NAME == "Mastery Engine"
            assert settings.MASTERY_EVENT_CHANNEL == "bkt.mastery.updated"
            assert settings.MAX_CONFLICT_RETRIES == 3
            assert settings.INFERENCE_MIN_EVIDENCE == 50

    def test_sequence_model_settings(self):
        """Test LSTM predictor defaults"""
        from mastery_engine.core.config import Settings

        settings = Settings()

        assert settings.DKT_HIDDEN_SIZE == 64
        assert settings.DKT_NUM_SKILLS == 500
        assert settings.DKT_SEQUENCE_LENGTH == 200

    def test_environment_override(self):
        """Test environment variables override defaults"""
        from mastery_engine.core.config import Settings

        with patch.dict(os.environ, {"PERSISTENCE_TIMEOUT_SECONDS": "0.5", "STATE_CACHE_MAX_ENTRIES": "10"}):
            settings = Settings()

            assert settings.PERSISTENCE_TIMEOUT_SECONDS == 0.5
            assert settings.STATE_CACHE_MAX_ENTRIES == 10

    def test_test_database_url(self):
        """Unit tests run against in-memory SQLite"""
        from mastery_engine.core.config import settings

        assert settings.DATABASE_URL.startswith("sqlite+aiosqlite")
