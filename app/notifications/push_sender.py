"""Firebase Cloud Messaging delivery implementation."""

from __future__ import annotations

import logging

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from app.core.firebase import is_firebase_ready
from app.notifications.contracts import MAX_MULTICAST_TOKENS, InvalidPushTokenError, MulticastResult, NotificationProviderError, PushGatewayUnavailableError, PushMessage, PushSender, TransientPushProviderError

logger = logging.getLogger(__name__)

ANDROID_CHANNEL_ID = "order_updates"
NOTIFICATION_SOUND = "default"
APNS_BADGE = 1

# Gateway errors that mean the token will never work again.
_INVALID_TOKEN_ERRORS: tuple[type[Exception], ...] = (messaging.UnregisteredError, messaging.SenderIdMismatchError, firebase_exceptions.InvalidArgumentError)


def classify_messaging_error(exc: Exception) -> NotificationProviderError:
  """Translate a firebase_admin messaging failure into the delivery taxonomy."""
  code = getattr(exc, "code", None) or type(exc).__name__
  if isinstance(exc, _INVALID_TOKEN_ERRORS):
    return InvalidPushTokenError(f"Registration token rejected (code={code}): {exc}")
  return TransientPushProviderError(f"Push delivery failed (code={code}): {exc}")


class FcmPushSender(PushSender):
  """`firebase_admin.messaging` backed sender with fixed platform delivery hints."""

  def __init__(self, *, enabled: bool = True) -> None:
    self._enabled = enabled

  def send(self, message: PushMessage) -> str:
    """Send a single-token message and return the FCM message id."""
    self._ensure_ready()
    if not message.token:
      raise ValueError("Single-target push requires a token.")

    fcm_message = messaging.Message(token=message.token, notification=messaging.Notification(title=message.title, body=message.body), data=dict(message.data), android=build_android_config(), apns=build_apns_config())
    try:
      message_id = messaging.send(fcm_message)
    except firebase_exceptions.FirebaseError as exc:
      raise classify_messaging_error(exc) from exc

    logger.debug("FCM accepted message message_id=%s", message_id)
    return message_id

  def send_multicast(self, message: PushMessage) -> MulticastResult:
    """Send one multicast call; per-token failures are reported, not raised."""
    self._ensure_ready()
    if not message.tokens:
      raise ValueError("Multicast push requires at least one token.")

    if len(message.tokens) > MAX_MULTICAST_TOKENS:
      raise ValueError(f"Multicast push accepts at most {MAX_MULTICAST_TOKENS} tokens, got {len(message.tokens)}.")

    multicast = messaging.MulticastMessage(tokens=list(message.tokens), notification=messaging.Notification(title=message.title, body=message.body), data=dict(message.data), android=build_android_config(), apns=build_apns_config())
    try:
      response = messaging.send_each_for_multicast(multicast)
    except firebase_exceptions.FirebaseError as exc:
      raise classify_messaging_error(exc) from exc

    invalid_tokens: list[str] = []
    for token, send_response in zip(message.tokens, response.responses, strict=False):
      if send_response.success or send_response.exception is None:
        continue
      if isinstance(classify_messaging_error(send_response.exception), InvalidPushTokenError):
        invalid_tokens.append(token)

    return MulticastResult(success_count=response.success_count, failure_count=response.failure_count, invalid_tokens=tuple(invalid_tokens))

  def _ensure_ready(self) -> None:
    # Reject cleanly instead of initializing the SDK under concurrent load.
    if not self._enabled:
      raise PushGatewayUnavailableError("Push notifications are disabled.")
    if not is_firebase_ready():
      raise PushGatewayUnavailableError("Firebase Admin not initialized")


def build_android_config() -> messaging.AndroidConfig:
  """Return the Android delivery hints shared by every message."""
  return messaging.AndroidConfig(priority="high", notification=messaging.AndroidNotification(channel_id=ANDROID_CHANNEL_ID, sound=NOTIFICATION_SOUND))


def build_apns_config() -> messaging.APNSConfig:
  """Return the APNs delivery hints shared by every message."""
  return messaging.APNSConfig(payload=messaging.APNSPayload(aps=messaging.Aps(sound=NOTIFICATION_SOUND, badge=APNS_BADGE)))
