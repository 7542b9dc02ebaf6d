from __future__ import annotations

import pytest
from app.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch):
  for name in ("QUICKGAS_DRAIN_MAX_BATCH", "QUICKGAS_DRAIN_MAX_ATTEMPTS", "QUICKGAS_SCHEDULER_INTERVAL_MINUTES", "QUICKGAS_PUSH_NOTIFICATIONS_ENABLED", "QUICKGAS_PENDING_COLLECTION"):
    monkeypatch.delenv(name, raising=False)
  monkeypatch.setenv("QUICKGAS_ALLOWED_ORIGINS", "http://localhost:3000, https://admin.quickgas.app")

  settings = get_settings()

  assert settings.allowed_origins == ("http://localhost:3000", "https://admin.quickgas.app")
  assert settings.drain_max_batch == 100
  assert settings.drain_max_attempts == 3
  assert settings.scheduler_interval_minutes == 5
  assert settings.push_notifications_enabled is True
  assert settings.pending_collection == "pending_notifications"


def test_scheduler_and_push_can_be_disabled(monkeypatch):
  monkeypatch.setenv("QUICKGAS_SCHEDULER_ENABLED", "false")
  monkeypatch.setenv("QUICKGAS_PUSH_NOTIFICATIONS_ENABLED", "0")

  settings = get_settings()

  assert settings.scheduler_enabled is False
  assert settings.push_notifications_enabled is False


def test_blank_secret_is_treated_as_unset(monkeypatch):
  monkeypatch.setenv("QUICKGAS_TASK_SECRET", "   ")

  assert get_settings().task_secret is None


def test_wildcard_origin_rejected(monkeypatch):
  monkeypatch.setenv("QUICKGAS_ALLOWED_ORIGINS", "*")

  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


@pytest.mark.parametrize("name", ["QUICKGAS_DRAIN_MAX_BATCH", "QUICKGAS_DRAIN_MAX_ATTEMPTS", "QUICKGAS_SCHEDULER_INTERVAL_MINUTES"])
def test_non_positive_limits_rejected(monkeypatch, name):
  monkeypatch.setenv(name, "0")

  with pytest.raises(ValueError, match=name):
    get_settings()


def test_non_integer_limit_rejected(monkeypatch):
  monkeypatch.setenv("QUICKGAS_DRAIN_MAX_BATCH", "many")

  with pytest.raises(ValueError, match="must be an integer"):
    get_settings()


def test_zero_log_backups_allowed(monkeypatch):
  monkeypatch.setenv("QUICKGAS_LOG_BACKUP_COUNT", "0")

  assert get_settings().log_backup_count == 0


def test_drain_batch_above_single_write_batch_rejected(monkeypatch):
  monkeypatch.setenv("QUICKGAS_DRAIN_MAX_BATCH", "501")

  with pytest.raises(ValueError, match="QUICKGAS_DRAIN_MAX_BATCH must be <= 500"):
    get_settings()


def test_drain_batch_at_write_batch_limit_allowed(monkeypatch):
  monkeypatch.setenv("QUICKGAS_DRAIN_MAX_BATCH", "500")

  assert get_settings().drain_max_batch == 500
