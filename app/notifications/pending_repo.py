"""Repository helpers for the Firestore pending-notification queue."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from google.cloud.firestore import Client as FirestoreClient
from google.cloud.firestore import FieldFilter
from starlette.concurrency import run_in_threadpool

from app.core.firebase import get_firestore_client
from app.notifications.contracts import MAX_BATCH_WRITES, normalize_data


@dataclass(frozen=True)
class PendingNotification:
  """A queued, not-yet-confirmed-delivered push notification."""

  id: str
  fcm_token: str
  title: str
  body: str
  data: dict[str, str]
  attempts: int

  @classmethod
  def from_document(cls, doc_id: str, payload: Mapping[str, Any] | None) -> PendingNotification:
    """Build a record from a raw Firestore document, tolerating missing fields."""
    payload = payload or {}
    raw_data = payload.get("data")
    return cls(
      id=doc_id,
      fcm_token=str(payload.get("fcmToken") or ""),
      title=str(payload.get("title") or ""),
      body=str(payload.get("body") or ""),
      data=normalize_data(raw_data if isinstance(raw_data, Mapping) else None),
      attempts=int(payload.get("attempts") or 0),
    )


class MutationKind(str, Enum):
  DELETE = "delete"
  UPDATE_ATTEMPTS = "update_attempts"


@dataclass(frozen=True)
class RecordMutation:
  """One intended write against a pending record, committed later as part of a batch."""

  notification_id: str
  kind: MutationKind
  attempts: int | None = None

  @classmethod
  def delete(cls, notification_id: str) -> RecordMutation:
    return cls(notification_id=notification_id, kind=MutationKind.DELETE)

  @classmethod
  def update_attempts(cls, notification_id: str, attempts: int) -> RecordMutation:
    return cls(notification_id=notification_id, kind=MutationKind.UPDATE_ATTEMPTS, attempts=attempts)


class PendingNotificationRepository:
  """Read and mutate pending notifications in Firestore."""

  def __init__(self, *, collection: str = "pending_notifications", client_factory: Callable[[], FirestoreClient] = get_firestore_client) -> None:
    self._collection = collection
    self._client_factory = client_factory

  async def list_eligible(self, *, max_attempts: int, limit: int) -> list[PendingNotification]:
    """Return up to `limit` records whose attempts are below the budget, in store order."""
    return await run_in_threadpool(self._list_eligible_sync, max_attempts, limit)

  def _list_eligible_sync(self, max_attempts: int, limit: int) -> list[PendingNotification]:
    client = self._client_factory()
    query = client.collection(self._collection).where(filter=FieldFilter("attempts", "<", max_attempts)).limit(limit)
    return [PendingNotification.from_document(snapshot.id, snapshot.to_dict()) for snapshot in query.stream()]

  async def commit(self, mutations: Sequence[RecordMutation]) -> None:
    """Apply all mutations in one atomic write batch."""
    if not mutations:
      return

    if len(mutations) > MAX_BATCH_WRITES:
      raise ValueError(f"A write batch accepts at most {MAX_BATCH_WRITES} operations, got {len(mutations)}.")

    await run_in_threadpool(self._commit_sync, list(mutations))

  def _commit_sync(self, mutations: list[RecordMutation]) -> None:
    client = self._client_factory()
    collection = client.collection(self._collection)
    batch = client.batch()
    for mutation in mutations:
      ref = collection.document(mutation.notification_id)
      if mutation.kind is MutationKind.DELETE:
        batch.delete(ref)
      else:
        batch.update(ref, {"attempts": mutation.attempts})
    batch.commit()
