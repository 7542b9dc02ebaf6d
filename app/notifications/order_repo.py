"""Firestore access to order and user documents needed for recipient resolution."""

from __future__ import annotations

from collections.abc import Callable

from firebase_admin import firestore
from google.cloud.firestore import Client as FirestoreClient
from google.cloud.firestore import FieldFilter
from starlette.concurrency import run_in_threadpool

from app.core.firebase import get_firestore_client

DRIVER_ROLES = ("driver", "both")


class OrderRepository:
  """Narrow write access to order documents."""

  def __init__(self, *, collection: str = "orders", client_factory: Callable[[], FirestoreClient] = get_firestore_client) -> None:
    self._collection = collection
    self._client_factory = client_factory

  async def clear_customer_token(self, *, order_id: str, expected_token: str) -> bool:
    """Delete `customerFcmToken` if it still equals `expected_token`; return whether it was deleted."""
    return await run_in_threadpool(self._clear_customer_token_sync, order_id, expected_token)

  def _clear_customer_token_sync(self, order_id: str, expected_token: str) -> bool:
    client = self._client_factory()
    ref = client.collection(self._collection).document(order_id)
    return firestore.transactional(clear_token_if_matches)(client.transaction(), ref, expected_token)


def clear_token_if_matches(transaction, ref, expected_token: str) -> bool:
  """Transaction body: the order may have been given a fresh token since the rejected send."""
  snapshot = ref.get(transaction=transaction)
  if not snapshot.exists:
    return False
  if (snapshot.to_dict() or {}).get("customerFcmToken") != expected_token:
    return False
  transaction.update(ref, {"customerFcmToken": firestore.DELETE_FIELD})
  return True


class UserRepository:
  """Read-only access to user push tokens."""

  def __init__(self, *, collection: str = "users", client_factory: Callable[[], FirestoreClient] = get_firestore_client) -> None:
    self._collection = collection
    self._client_factory = client_factory

  async def get_fcm_token(self, *, user_id: str) -> str | None:
    """Return the user's `fcmToken`, or None when the document or field is missing."""
    return await run_in_threadpool(self._get_fcm_token_sync, user_id)

  def _get_fcm_token_sync(self, user_id: str) -> str | None:
    client = self._client_factory()
    snapshot = client.collection(self._collection).document(user_id).get()
    if not snapshot.exists:
      return None
    token = (snapshot.to_dict() or {}).get("fcmToken")
    return str(token) if token else None

  async def list_driver_tokens(self) -> list[str]:
    """Return every non-blank `fcmToken` of driver-capable users; duplicates are kept."""
    return await run_in_threadpool(self._list_driver_tokens_sync)

  def _list_driver_tokens_sync(self) -> list[str]:
    client = self._client_factory()
    query = client.collection(self._collection).where(filter=FieldFilter("role", "in", list(DRIVER_ROLES)))
    tokens: list[str] = []
    for snapshot in query.stream():
      token = (snapshot.to_dict() or {}).get("fcmToken")
      if isinstance(token, str) and token.strip():
        tokens.append(token)
    return tokens
