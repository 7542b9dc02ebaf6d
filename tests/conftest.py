"""Test configuration: environment defaults and shared fakes for notification collaborators."""

from __future__ import annotations

import os

os.environ.setdefault("QUICKGAS_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("QUICKGAS_TASK_SECRET", "test-task-secret")
os.environ.setdefault("QUICKGAS_SCHEDULER_ENABLED", "false")

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from app.notifications.contracts import MulticastResult  # noqa: E402
from app.notifications.pending_repo import PendingNotification  # noqa: E402

TASK_HEADERS = {"X-Quickgas-Task-Secret": "test-task-secret"}


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def push_sender():
  sender = MagicMock()
  sender.send.return_value = "projects/quickgas/messages/1"
  sender.send_multicast.side_effect = lambda message: MulticastResult(success_count=len(message.tokens), failure_count=0)
  return sender


@pytest.fixture
def pending_repo():
  repo = AsyncMock()
  repo.list_eligible.return_value = []
  return repo


@pytest.fixture
def order_repo():
  return AsyncMock()


@pytest.fixture
def user_repo():
  repo = AsyncMock()
  repo.get_fcm_token.return_value = None
  repo.list_driver_tokens.return_value = []
  return repo


@pytest.fixture
def task_headers():
  return dict(TASK_HEADERS)


@pytest.fixture
def make_record():
  def _make(doc_id: str = "n1", *, token: str = "token-1", attempts: int = 0, data: dict[str, str] | None = None) -> PendingNotification:
    return PendingNotification(id=doc_id, fcm_token=token, title="Order Update", body="Your order changed", data=dict(data or {}), attempts=attempts)

  return _make
