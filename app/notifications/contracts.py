"""Contracts for push notification delivery through the gateway."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

# FCM rejects multicast requests above this many registration tokens.
MAX_MULTICAST_TOKENS = 500

# Firestore rejects write batches larger than this; one drain cycle commits one batch.
MAX_BATCH_WRITES = 500


@dataclass(frozen=True)
class PushMessage:
  """Represents a push payload addressed to one token or a multicast token list."""

  title: str
  body: str
  data: dict[str, str]
  token: str | None = None
  tokens: tuple[str, ...] = ()


@dataclass(frozen=True)
class MulticastResult:
  """Per-call outcome of a multicast send."""

  success_count: int
  failure_count: int
  invalid_tokens: tuple[str, ...] = field(default_factory=tuple)


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when the push gateway returns a delivery error."""


class InvalidPushTokenError(NotificationProviderError):
  """Exception raised when a registration token is permanently unusable."""


class TransientPushProviderError(NotificationProviderError):
  """Exception raised for network, quota and other retryable gateway failures."""


class PushGatewayUnavailableError(NotificationError):
  """Exception raised when the gateway client was never initialized or is disabled."""


class PushSender(Protocol):
  """Delivery contract for the push gateway."""

  def send(self, message: PushMessage) -> str:
    """Send to a single token synchronously and return the provider message id."""

  def send_multicast(self, message: PushMessage) -> MulticastResult:
    """Send to up to MAX_MULTICAST_TOKENS tokens synchronously."""


def normalize_data(data: Mapping[str, Any] | None) -> dict[str, str]:
  """Coerce a heterogeneous payload into the string-only mapping FCM accepts.

  The conversion is lossy: numbers and booleans become their string form
  (``True`` -> ``"true"``, ``5.0`` -> ``"5"``) and ``None`` becomes ``""``.
  """
  if not data:
    return {}
  return {str(key): stringify_value(value) for key, value in data.items()}


def stringify_value(value: Any) -> str:
  """Render a single payload value the way mobile clients expect to parse it."""
  if value is None:
    return ""
  if isinstance(value, bool):
    return "true" if value else "false"
  if isinstance(value, float) and value.is_integer():
    return str(int(value))
  return str(value)


def is_blank(token: str | None) -> bool:
  """Return whether a token is missing or whitespace only."""
  return token is None or not str(token).strip()
