import logging

import pytest

from jobs_worker.config import get_settings
from jobs_worker.main import warn_if_lease_too_short


def test_defaults_match_original_retry_policy(monkeypatch) -> None:
    for name in (
        "JOB_MAX_ATTEMPTS",
        "JOB_RETRY_BACKOFF_SECONDS",
        "WORKER_LEASE_SECONDS",
        "WORKER_POLL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.max_attempts == 3
    assert settings.retry_backoff_seconds == 1.0
    assert settings.poll_seconds == 5
    assert settings.lease_seconds == 0
    assert settings.lease_sweep_enabled is False


def test_numeric_settings_are_clamped(monkeypatch) -> None:
    monkeypatch.setenv("JOB_MAX_ATTEMPTS", "0")
    monkeypatch.setenv("JOB_RETRY_BACKOFF_SECONDS", "-2")
    monkeypatch.setenv("WORKER_LEASE_SECONDS", "120")
    monkeypatch.setenv("WORKER_DB_ECHO", "yes")

    settings = get_settings()

    assert settings.max_attempts == 1
    assert settings.retry_backoff_seconds == 0.0
    assert settings.lease_seconds == 120
    assert settings.lease_sweep_enabled is True
    assert settings.db_echo is True


def test_blank_transform_values_are_ignored(monkeypatch) -> None:
    monkeypatch.setenv("WORKER_TRANSFORM", "   ")
    monkeypatch.delenv("WORKER_TRANSFORM_COMMAND", raising=False)

    settings = get_settings()

    assert settings.transform is None
    assert settings.transform_command is None


def test_processing_window_covers_every_attempt_and_backoff(monkeypatch) -> None:
    monkeypatch.setenv("JOB_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("JOB_RETRY_BACKOFF_SECONDS", "2")
    monkeypatch.setenv("WORKER_TRANSFORM_TIMEOUT_SECONDS", "30")

    assert get_settings().processing_window_seconds == 94.0


@pytest.mark.parametrize(
    ("lease_seconds", "expected_warning"),
    [(0, False), (60, True), (94, False), (300, False)],
)
def test_lease_shorter_than_processing_window_is_reported(
    monkeypatch, caplog, lease_seconds, expected_warning
) -> None:
    monkeypatch.setenv("JOB_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("JOB_RETRY_BACKOFF_SECONDS", "2")
    monkeypatch.setenv("WORKER_TRANSFORM_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("WORKER_LEASE_SECONDS", str(lease_seconds))
    caplog.set_level(logging.WARNING, logger="jobs_worker.main")

    assert warn_if_lease_too_short(get_settings()) is expected_warning
    assert ("shorter than the processing window" in caplog.text) is expected_warning
