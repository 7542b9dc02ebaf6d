"""Factory helpers for notification collaborators."""

from __future__ import annotations

from app.config import Settings
from app.notifications.delivery import DeliveryAttemptEngine
from app.notifications.order_events import NewOrderHandler, OrderStatusChangeHandler
from app.notifications.order_repo import OrderRepository, UserRepository
from app.notifications.pending_repo import PendingNotificationRepository
from app.notifications.push_sender import FcmPushSender


def build_push_sender(settings: Settings) -> FcmPushSender:
  """Construct the FCM sender; it refuses to send until Firebase is ready."""
  return FcmPushSender(enabled=settings.push_notifications_enabled)


def build_delivery_engine(settings: Settings) -> DeliveryAttemptEngine:
  """Construct the drain engine using the configured collections and retry budget."""
  return DeliveryAttemptEngine(
    push_sender=build_push_sender(settings),
    pending_repo=PendingNotificationRepository(collection=settings.pending_collection),
    order_repo=OrderRepository(collection=settings.orders_collection),
    max_batch=settings.drain_max_batch,
    max_attempts=settings.drain_max_attempts,
  )


def build_status_change_handler(settings: Settings) -> OrderStatusChangeHandler:
  return OrderStatusChangeHandler(push_sender=build_push_sender(settings), order_repo=OrderRepository(collection=settings.orders_collection), user_repo=UserRepository(collection=settings.users_collection))


def build_new_order_handler(settings: Settings) -> NewOrderHandler:
  return NewOrderHandler(push_sender=build_push_sender(settings), user_repo=UserRepository(collection=settings.users_collection))
