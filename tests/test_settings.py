from unittest.mock import patch

import pytest
from pydantic import ValidationError

from jobqueue.config.settings import Settings, get_settings


@patch.dict("os.environ", {}, clear=True)
def test_default_settings():
    """Test default settings values."""
    settings = Settings(_env_file=None)

    assert settings.app_name == "Job Queue"
    assert settings.version == "1.0.0"
    assert settings.environment == "development"
    assert settings.debug is True
    assert settings.job_poll_interval_s == 30.0
    assert settings.job_batch_size == 1
    assert settings.job_max_attempts == 3
    assert settings.job_visibility_timeout_s == 900
    assert settings.job_cleanup_after_days == 30
    assert settings.scheduler_tick_interval_s == 60.0
    assert settings.scheduler_timezone == "UTC"
    assert settings.scheduler_load_defaults is True
    assert settings.is_sqlite is False


def test_production_validation_blocks_sqlite():
    """Test that production environment blocks SQLite databases."""
    with pytest.raises(ValueError, match="SQLite is not allowed in production"):
        Settings(environment="production", database_url="sqlite+aiosqlite:///jobs.db")


def test_production_allows_postgres():
    settings = Settings(
        environment="production",
        database_url="postgresql+asyncpg://user:pass@db:5432/jobqueue",
    )
    assert settings.environment == "production"
    assert settings.is_sqlite is False


def test_development_allows_sqlite():
    settings = Settings(environment="development", database_url="sqlite+aiosqlite:///jobs.db")
    assert settings.is_sqlite is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"job_poll_interval_s": 0},
        {"job_batch_size": 0},
        {"job_batch_size": 11},
        {"job_max_attempts": 0},
        {"job_backoff_base_ms": -1},
    ],
)
def test_invalid_worker_settings_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert get_settings() is settings


@patch.dict(
    "os.environ",
    {
        "ENVIRONMENT": "staging",
        "JOB_BATCH_SIZE": "4",
        "SCHEDULER_TIMEZONE": "Europe/Berlin",
        "JOB_HANDLER_MODULES": '["myapp.jobs"]',
    },
)
def test_env_var_loading():
    """Test that environment variables are loaded correctly."""
    settings = Settings()
    assert settings.environment == "staging"
    assert settings.job_batch_size == 4
    assert settings.scheduler_timezone == "Europe/Berlin"
    assert settings.job_handler_modules == ["myapp.jobs"]
