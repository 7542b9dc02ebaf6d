"""Handlers translating order document changes into push notifications."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from starlette.concurrency import run_in_threadpool

from app.notifications.contracts import MAX_MULTICAST_TOKENS, InvalidPushTokenError, PushMessage, PushSender, is_blank
from app.notifications.order_repo import OrderRepository, UserRepository
from app.notifications.order_templates import NEW_ORDER_TYPE, render_new_order, template_for_status

logger = logging.getLogger(__name__)


class StatusChangeOutcome(str, Enum):
  SENT = "sent"
  UNCHANGED = "unchanged"
  IGNORED_STATUS = "ignored_status"
  NO_TOKEN = "no_token"
  INVALID_TOKEN = "invalid_token"


class OrderStatusChangeHandler:
  """Notify the customer when their order moves to an announced status."""

  def __init__(self, *, push_sender: PushSender, order_repo: OrderRepository, user_repo: UserRepository) -> None:
    self._push_sender = push_sender
    self._order_repo = order_repo
    self._user_repo = user_repo

  async def handle(self, *, order_id: str, before: Mapping[str, Any], after: Mapping[str, Any]) -> StatusChangeOutcome:
    """Send the status notification immediately; non-token send failures propagate."""
    status = after.get("status")
    # Address edits and other non-status updates must not re-notify.
    if before.get("status") == status:
      logger.info("Order %s status unchanged: %s", order_id, status)
      return StatusChangeOutcome.UNCHANGED

    template = template_for_status(status)
    if template is None:
      logger.info("No notification needed for order %s status: %s", order_id, status)
      return StatusChangeOutcome.IGNORED_STATUS

    token = await self._resolve_token(order_id=order_id, order=after)
    if token is None:
      logger.info("Cannot send notification for order %s - no FCM token available", order_id)
      return StatusChangeOutcome.NO_TOKEN

    message = PushMessage(title=template.title, body=template.body, data={"type": template.notification_type, "orderId": order_id, "status": template.status}, token=token)
    try:
      message_id = await run_in_threadpool(self._push_sender.send, message)
    except InvalidPushTokenError as exc:
      logger.warning("Invalid FCM token for order %s, removing from order document: %s", order_id, exc)
      try:
        # No-op unless the order still holds this exact token.
        await self._order_repo.clear_customer_token(order_id=order_id, expected_token=token)
      except Exception as clear_exc:  # noqa: BLE001
        logger.error("Error removing invalid FCM token from order %s: %s", order_id, clear_exc)
      return StatusChangeOutcome.INVALID_TOKEN
    except Exception:
      logger.error("Error sending notification for order %s", order_id, exc_info=True)
      raise

    logger.info("Successfully sent notification for order %s: %s", order_id, message_id)
    return StatusChangeOutcome.SENT

  async def _resolve_token(self, *, order_id: str, order: Mapping[str, Any]) -> str | None:
    """Prefer the token copied onto the order, then fall back to the customer's user document."""
    token = order.get("customerFcmToken")
    if not is_blank(token):
      return str(token)

    customer_id = order.get("customerId")
    if not customer_id:
      return None

    logger.info("No FCM token in order %s, fetching from user document...", order_id)
    try:
      token = await self._user_repo.get_fcm_token(user_id=str(customer_id))
    except Exception as exc:  # noqa: BLE001
      logger.error("Error fetching user FCM token for customer %s: %s", customer_id, exc)
      return None

    return None if is_blank(token) else str(token)


@dataclass(frozen=True)
class NewOrderSummary:
  """Aggregate outcome of the driver broadcast for one new order."""

  batches: int
  success_count: int
  failure_count: int
  failed_batches: int


class NewOrderHandler:
  """Broadcast new pending orders to every driver-capable user."""

  def __init__(self, *, push_sender: PushSender, user_repo: UserRepository) -> None:
    self._push_sender = push_sender
    self._user_repo = user_repo

  async def handle(self, *, order_id: str, order: Mapping[str, Any]) -> NewOrderSummary:
    """Multicast the new order in chunks; a failing chunk never stops the next one."""
    empty = NewOrderSummary(batches=0, success_count=0, failure_count=0, failed_batches=0)
    if order.get("status") != "pending":
      logger.info("Order %s is not pending, skipping driver notification", order_id)
      return empty

    try:
      tokens = await self._user_repo.list_driver_tokens()
    except Exception:
      logger.error("Error notifying drivers of new order %s", order_id, exc_info=True)
      raise

    if not tokens:
      logger.info("No driver FCM tokens available for order %s", order_id)
      return empty

    title, body, quantity, address = render_new_order(gas_quantity=order.get("gasQuantity"), address=order.get("address"))
    data = {"type": NEW_ORDER_TYPE, "orderId": order_id, "address": address, "gasQuantity": quantity}

    batches = success_count = failure_count = failed_batches = 0
    for batch_number, chunk in enumerate(chunk_tokens(tokens), start=1):
      batches += 1
      message = PushMessage(title=title, body=body, data=data, tokens=tuple(chunk))
      try:
        result = await run_in_threadpool(self._push_sender.send_multicast, message)
      except Exception as exc:  # noqa: BLE001
        failed_batches += 1
        failure_count += len(chunk)
        logger.error("Error sending new order %s notification batch %s: %s", order_id, batch_number, exc)
        continue

      success_count += result.success_count
      failure_count += result.failure_count
      logger.info("Sent new order %s notification to %s drivers (batch %s)", order_id, result.success_count, batch_number)
      if result.failure_count > 0:
        logger.warning("Failed to send new order %s notification to %s drivers (batch %s)", order_id, result.failure_count, batch_number)
      if result.invalid_tokens:
        logger.warning("New order %s batch %s hit %s unregistered driver tokens", order_id, batch_number, len(result.invalid_tokens))

    return NewOrderSummary(batches=batches, success_count=success_count, failure_count=failure_count, failed_batches=failed_batches)


def chunk_tokens(tokens: list[str], size: int = MAX_MULTICAST_TOKENS) -> list[list[str]]:
  """Split tokens into consecutive chunks of at most `size`."""
  if size <= 0:
    raise ValueError("Chunk size must be positive.")
  return [tokens[index : index + size] for index in range(0, len(tokens), size)]
