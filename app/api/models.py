"""Request and response models for the notification HTTP surface."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderUpdatedEvent(BaseModel):
  """Before/after snapshots of an updated `orders/{orderId}` document."""

  order_id: str = Field(alias="orderId", min_length=1, max_length=1500)
  before: dict[str, Any]
  after: dict[str, Any]
  model_config = ConfigDict(populate_by_name=True)


class OrderCreatedEvent(BaseModel):
  """Snapshot of a newly created `orders/{orderId}` document."""

  order_id: str = Field(alias="orderId", min_length=1, max_length=1500)
  order: dict[str, Any]
  model_config = ConfigDict(populate_by_name=True)


class EventHandledResponse(BaseModel):
  status: str
  detail: dict[str, int] | None = None


class SendNotificationRequest(BaseModel):
  """Direct single-device send."""

  fcm_token: str = Field(alias="fcmToken", min_length=1, max_length=4096)
  title: str = Field(min_length=1, max_length=256)
  body: str = Field(min_length=1, max_length=4096)
  data: dict[str, Any] = Field(default_factory=dict)
  model_config = ConfigDict(populate_by_name=True)

  @field_validator("fcm_token", "title", "body")
  @classmethod
  def reject_blank(cls, value: str) -> str:
    normalized = value.strip()
    if not normalized:
      raise ValueError("must not be blank")
    return normalized


class SendNotificationResponse(BaseModel):
  success: bool
  message_id: str = Field(serialization_alias="messageId")


class BatchNotificationRequest(BaseModel):
  """Direct multi-device send; tokens are chunked to the multicast limit."""

  fcm_tokens: list[str] = Field(alias="fcmTokens", min_length=1)
  title: str = Field(min_length=1, max_length=256)
  body: str = Field(min_length=1, max_length=4096)
  data: dict[str, Any] = Field(default_factory=dict)
  model_config = ConfigDict(populate_by_name=True)

  @field_validator("fcm_tokens")
  @classmethod
  def drop_blank_tokens(cls, value: list[str]) -> list[str]:
    tokens = [token.strip() for token in value if token and token.strip()]
    if not tokens:
      raise ValueError("fcmTokens must contain at least one non-blank token")
    return tokens

  @field_validator("title", "body")
  @classmethod
  def reject_blank(cls, value: str) -> str:
    normalized = value.strip()
    if not normalized:
      raise ValueError("must not be blank")
    return normalized


class BatchNotificationResponse(BaseModel):
  success: bool
  success_count: int = Field(serialization_alias="successCount")
  failure_count: int = Field(serialization_alias="failureCount")


class DrainResponse(BaseModel):
  success: bool
  processed: int
  successful: int
  failed: int
  skipped: int
