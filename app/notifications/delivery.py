"""Drain cycle for the pending-notification queue with a bounded retry budget.

Each cycle reads a bounded batch of records below the attempt budget, sends
them one by one, and classifies every outcome into an intended mutation:

* delivered, unroutable (blank token), invalid token or budget exhausted -> delete
* any other gateway failure -> increment ``attempts``

Classification never writes. Mutations for the whole batch are committed as one
atomic batch afterwards, so a crash mid-cycle leaves the queue untouched and the
records are sent again on the next cycle. Delivery is at-least-once: two
concurrent cycles may read and send the same record.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum

from starlette.concurrency import run_in_threadpool

from app.notifications.contracts import MAX_BATCH_WRITES, InvalidPushTokenError, NotificationProviderError, PushGatewayUnavailableError, PushMessage, PushSender, is_blank
from app.notifications.order_repo import OrderRepository
from app.notifications.pending_repo import PendingNotification, PendingNotificationRepository, RecordMutation

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH = 100
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_NOTIFICATION_TYPE = "general"


class DeliveryOutcome(str, Enum):
  DELIVERED = "delivered"
  UNROUTABLE = "unroutable"
  INVALID_TOKEN = "invalid_token"
  EXHAUSTED = "exhausted"
  RETRY = "retry"


@dataclass(frozen=True)
class DrainResult:
  """Counters for one drain cycle; `processed` excludes unroutable records."""

  processed: int
  successful: int
  failed: int
  skipped: int

  def to_dict(self) -> dict[str, int]:
    return asdict(self)


class DeliveryAttemptEngine:
  """Sends pending notifications and applies the retry state machine."""

  def __init__(
    self, *, push_sender: PushSender, pending_repo: PendingNotificationRepository, order_repo: OrderRepository, max_batch: int = DEFAULT_MAX_BATCH, max_attempts: int = DEFAULT_MAX_ATTEMPTS
  ) -> None:
    self._push_sender = push_sender
    self._pending_repo = pending_repo
    self._order_repo = order_repo
    self._max_batch = max_batch
    self._max_attempts = max_attempts

  async def drain(self, *, max_batch: int | None = None, max_attempts: int | None = None) -> DrainResult:
    """Run one drain cycle and return its counters."""
    batch_limit = self._max_batch if max_batch is None else max_batch
    attempt_budget = self._max_attempts if max_attempts is None else max_attempts
    # Every record read produces one write, and the whole cycle commits as a single batch.
    if not 1 <= batch_limit <= MAX_BATCH_WRITES:
      raise ValueError(f"max_batch must be between 1 and {MAX_BATCH_WRITES}, got {batch_limit}.")
    if attempt_budget < 1:
      raise ValueError(f"max_attempts must be positive, got {attempt_budget}.")

    records = await self._pending_repo.list_eligible(max_attempts=attempt_budget, limit=batch_limit)
    if not records:
      logger.info("No pending notifications to process")
      return DrainResult(processed=0, successful=0, failed=0, skipped=0)

    mutations: list[RecordMutation] = []
    stale_order_tokens: list[tuple[str, str]] = []
    successful = failed = skipped = 0

    for record in records:
      outcome = await self._attempt(record, attempt_budget)

      if outcome is DeliveryOutcome.RETRY:
        mutations.append(RecordMutation.update_attempts(record.id, record.attempts + 1))
      else:
        mutations.append(RecordMutation.delete(record.id))

      if outcome is DeliveryOutcome.DELIVERED:
        successful += 1
      elif outcome is DeliveryOutcome.UNROUTABLE:
        skipped += 1
      else:
        failed += 1

      if outcome is DeliveryOutcome.INVALID_TOKEN and record.data.get("orderId"):
        stale_order_tokens.append((record.data["orderId"], record.fcm_token))

    await self._pending_repo.commit(mutations)

    for order_id, token in stale_order_tokens:
      await self._clear_order_token(order_id, token)

    result = DrainResult(processed=successful + failed, successful=successful, failed=failed, skipped=skipped)
    logger.info("Processed %s successful, %s failed, %s unroutable pending notifications", successful, failed, skipped)
    return result

  async def _attempt(self, record: PendingNotification, attempt_budget: int) -> DeliveryOutcome:
    """Send one record and classify the result without touching the store."""
    if is_blank(record.fcm_token):
      logger.info("Skipping pending notification %s - no FCM token", record.id)
      return DeliveryOutcome.UNROUTABLE

    try:
      await run_in_threadpool(self._push_sender.send, build_pending_message(record))
    except PushGatewayUnavailableError:
      # A gateway that is down for every record is systemic, not a per-record failure.
      raise
    except InvalidPushTokenError as exc:
      logger.warning("Pending notification %s has an invalid token; dropping: %s", record.id, exc)
      return DeliveryOutcome.INVALID_TOKEN
    except NotificationProviderError as exc:
      return self._classify_retryable(record, attempt_budget, exc)
    except Exception as exc:  # noqa: BLE001
      logger.error("Unexpected error sending pending notification %s", record.id, exc_info=True)
      return self._classify_retryable(record, attempt_budget, exc)

    logger.info("Successfully sent pending notification %s", record.id)
    return DeliveryOutcome.DELIVERED

  @staticmethod
  def _classify_retryable(record: PendingNotification, attempt_budget: int, exc: Exception) -> DeliveryOutcome:
    attempts = record.attempts + 1
    if attempts >= attempt_budget:
      # Exhausted records are dropped without a dead-letter copy.
      logger.warning("Pending notification %s failed %s times; dropping: %s", record.id, attempts, exc)
      return DeliveryOutcome.EXHAUSTED

    logger.error("Error sending pending notification %s (attempt %s/%s): %s", record.id, attempts, attempt_budget, exc)
    return DeliveryOutcome.RETRY

  async def _clear_order_token(self, order_id: str, token: str) -> None:
    """Clear the order's customer token only if it is the one the gateway rejected."""
    try:
      cleared = await self._order_repo.clear_customer_token(order_id=order_id, expected_token=token)
    except Exception as exc:  # noqa: BLE001
      logger.error("Error removing invalid FCM token from order %s: %s", order_id, exc)
      return

    if not cleared:
      logger.info("Order %s no longer holds the rejected token; left unchanged", order_id)


def build_pending_message(record: PendingNotification) -> PushMessage:
  """Build the gateway message for a pending record, defaulting `type` to general."""
  data = dict(record.data)
  data["type"] = data.get("type") or DEFAULT_NOTIFICATION_TYPE
  return PushMessage(title=record.title, body=record.body, data=data, token=record.fcm_token)
