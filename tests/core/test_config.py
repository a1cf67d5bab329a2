# tests/core/test_config.py
import pytest

from booking_progress.core.config import Settings
from booking_progress.db.models.enums import ProgressMode


def origins(settings):
    return [str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("BACKEND_CORS_ORIGINS", "DATABASE_URL", "DATABASE_PATH", "RECOMPUTE_MAX_RETRIES", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_comma_separated_cors_origins_from_environment(monkeypatch):
    monkeypatch.setenv("BACKEND_CORS_ORIGINS", "http://localhost:3000, http://127.0.0.1:3000")

    settings = Settings(_env_file=None)

    assert origins(settings) == ["http://localhost:3000", "http://127.0.0.1:3000"]


def test_json_cors_origins_from_environment(monkeypatch):
    monkeypatch.setenv("BACKEND_CORS_ORIGINS", '["https://app.example.com"]')

    settings = Settings(_env_file=None)

    assert origins(settings) == ["https://app.example.com"]


def test_env_file_with_a_single_origin(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "BACKEND_CORS_ORIGINS=http://localhost:3000\n"
        "PROGRESS_MODE=task_average\n"
        "RECOMPUTE_MAX_RETRIES=1\n"
    )

    settings = Settings(_env_file=env_file)

    assert origins(settings) == ["http://localhost:3000"]
    assert settings.PROGRESS_MODE is ProgressMode.TASK_AVERAGE


def test_empty_cors_origins(monkeypatch):
    monkeypatch.setenv("BACKEND_CORS_ORIGINS", "")

    assert Settings(_env_file=None).BACKEND_CORS_ORIGINS == []


def test_database_url_falls_back_to_sqlite_path(monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", "/tmp/progress.db")

    assert Settings(_env_file=None).DATABASE_URL == "sqlite:////tmp/progress.db"


def test_retries_and_log_level_are_bounded(monkeypatch):
    monkeypatch.setenv("RECOMPUTE_MAX_RETRIES", "50")
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    settings = Settings(_env_file=None)

    assert settings.RECOMPUTE_MAX_RETRIES == 5
    assert settings.LOG_LEVEL == "INFO"
