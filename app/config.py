"""Service settings read from the process environment and an optional repo-root `.env`."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from app.notifications.contracts import MAX_BATCH_WRITES

# Values already present in the process environment win over the .env file.
load_dotenv(Path(__file__).resolve().parents[1] / ".env", override=False)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Quickgas notification service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  push_notifications_enabled: bool
  task_secret: str | None
  pending_collection: str
  orders_collection: str
  users_collection: str
  drain_max_batch: int
  drain_max_attempts: int
  scheduler_enabled: bool
  scheduler_interval_minutes: int


def _env_str(name: str) -> str | None:
  """Return a stripped value, treating unset and whitespace-only alike."""
  raw = os.getenv(name)
  if raw is None or not raw.strip():
    return None
  return raw.strip()


def _env_flag(name: str, *, default: bool) -> bool:
  raw = _env_str(name)
  if raw is None:
    return default
  return raw.lower() in _TRUE_VALUES


def _env_int(name: str, *, default: int, minimum: int = 1, maximum: int | None = None) -> int:
  raw = _env_str(name)
  try:
    value = default if raw is None else int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc
  if value < minimum:
    raise ValueError(f"{name} must be >= {minimum}, got {value}.")
  if maximum is not None and value > maximum:
    raise ValueError(f"{name} must be <= {maximum}, got {value}.")
  return value


def _allowed_origins() -> tuple[str, ...]:
  raw = _env_str("QUICKGAS_ALLOWED_ORIGINS")
  origins = tuple(origin.strip() for origin in (raw or "").split(",") if origin.strip())
  if not origins:
    raise ValueError("QUICKGAS_ALLOWED_ORIGINS must list at least one origin.")
  # Credentials are allowed on CORS responses, so a wildcard is never acceptable.
  if "*" in origins:
    raise ValueError("QUICKGAS_ALLOWED_ORIGINS must not include wildcard origins.")
  return origins


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""
  return Settings(
    environment=(_env_str("QUICKGAS_ENV") or "development").lower(),
    allowed_origins=_allowed_origins(),
    debug=_env_flag("QUICKGAS_DEBUG", default=False),
    log_max_bytes=_env_int("QUICKGAS_LOG_MAX_BYTES", default=5 * 1024 * 1024),
    log_backup_count=_env_int("QUICKGAS_LOG_BACKUP_COUNT", default=10, minimum=0),
    log_http_4xx=_env_flag("QUICKGAS_LOG_HTTP_4XX", default=False),
    firebase_project_id=_env_str("FIREBASE_PROJECT_ID"),
    firebase_service_account_json_path=_env_str("FIREBASE_SERVICE_ACCOUNT_JSON_PATH"),
    # Readiness of the Firebase app still gates every send when this is on.
    push_notifications_enabled=_env_flag("QUICKGAS_PUSH_NOTIFICATIONS_ENABLED", default=True),
    task_secret=_env_str("QUICKGAS_TASK_SECRET"),
    pending_collection=_env_str("QUICKGAS_PENDING_COLLECTION") or "pending_notifications",
    orders_collection=_env_str("QUICKGAS_ORDERS_COLLECTION") or "orders",
    users_collection=_env_str("QUICKGAS_USERS_COLLECTION") or "users",
    # Records at or above the attempt budget are never read again.
    drain_max_batch=_env_int("QUICKGAS_DRAIN_MAX_BATCH", default=100, maximum=MAX_BATCH_WRITES),
    drain_max_attempts=_env_int("QUICKGAS_DRAIN_MAX_ATTEMPTS", default=3),
    scheduler_enabled=_env_flag("QUICKGAS_SCHEDULER_ENABLED", default=True),
    scheduler_interval_minutes=_env_int("QUICKGAS_SCHEDULER_INTERVAL_MINUTES", default=5),
  )
