"""Shared FastAPI dependencies for internal-trigger auth and notification collaborators."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from app.config import Settings, get_settings
from app.notifications.contracts import PushSender
from app.notifications.delivery import DeliveryAttemptEngine
from app.notifications.factory import build_delivery_engine, build_new_order_handler, build_push_sender, build_status_change_handler
from app.notifications.order_events import NewOrderHandler, OrderStatusChangeHandler

logger = logging.getLogger(__name__)

SettingsDep = Annotated[Settings, Depends(get_settings)]


async def require_task_secret(settings: SettingsDep, authorization: str | None = Header(default=None), x_quickgas_task_secret: str | None = Header(default=None)) -> None:
  """Reject trigger and relay calls that do not carry the shared task secret."""
  # Secure-by-default: without a configured secret every internal endpoint is closed.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")

  shared_secret_valid = secrets.compare_digest((x_quickgas_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized call to an internal notification endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


def get_push_sender(settings: SettingsDep) -> PushSender:
  return build_push_sender(settings)


def get_delivery_engine(settings: SettingsDep) -> DeliveryAttemptEngine:
  return build_delivery_engine(settings)


def get_status_change_handler(settings: SettingsDep) -> OrderStatusChangeHandler:
  return build_status_change_handler(settings)


def get_new_order_handler(settings: SettingsDep) -> NewOrderHandler:
  return build_new_order_handler(settings)
