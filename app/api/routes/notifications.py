"""Direct push relay endpoints for server-side callers."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_push_sender, require_task_secret
from app.api.models import BatchNotificationRequest, BatchNotificationResponse, SendNotificationRequest, SendNotificationResponse
from app.notifications.contracts import NotificationProviderError, PushMessage, PushSender, normalize_data
from app.notifications.order_events import chunk_tokens

router = APIRouter(dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/send", response_model=SendNotificationResponse)
async def send_notification(payload: SendNotificationRequest, push_sender: Annotated[PushSender, Depends(get_push_sender)]) -> SendNotificationResponse:
  """Send one notification to a single device token."""
  message = PushMessage(title=payload.title, body=payload.body, data=normalize_data(payload.data), token=payload.fcm_token)
  try:
    message_id = await run_in_threadpool(push_sender.send, message)
  except NotificationProviderError as exc:
    logger.error("Notification sending error: %s", exc)
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Notification sending failed") from exc

  return SendNotificationResponse(success=True, message_id=message_id)


@router.post("/send-multiple", response_model=BatchNotificationResponse)
async def send_multiple_notifications(payload: BatchNotificationRequest, push_sender: Annotated[PushSender, Depends(get_push_sender)]) -> BatchNotificationResponse:
  """Send one notification to many device tokens, one multicast call per 500 tokens."""
  data = normalize_data(payload.data)
  success_count = failure_count = 0
  for chunk in chunk_tokens(payload.fcm_tokens):
    message = PushMessage(title=payload.title, body=payload.body, data=data, tokens=tuple(chunk))
    try:
      result = await run_in_threadpool(push_sender.send_multicast, message)
    except NotificationProviderError as exc:
      logger.error("Batch notification error: %s", exc)
      raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Batch notification failed") from exc

    success_count += result.success_count
    failure_count += result.failure_count

  return BatchNotificationResponse(success=True, success_count=success_count, failure_count=failure_count)
