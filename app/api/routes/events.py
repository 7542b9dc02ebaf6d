"""Firestore document-event triggers delivered over HTTP by the event infrastructure."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.api.deps import get_new_order_handler, get_status_change_handler, require_task_secret
from app.api.models import EventHandledResponse, OrderCreatedEvent, OrderUpdatedEvent
from app.notifications.order_events import NewOrderHandler, OrderStatusChangeHandler

router = APIRouter(prefix="/events", tags=["events"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/order-updated", status_code=status.HTTP_200_OK, response_model=EventHandledResponse)
async def order_updated(event: OrderUpdatedEvent, handler: Annotated[OrderStatusChangeHandler, Depends(get_status_change_handler)]) -> EventHandledResponse:
  """
  Notify the customer of a status change.
  Unhandled errors surface as 500 so the trigger infrastructure may retry the invocation.
  """
  outcome = await handler.handle(order_id=event.order_id, before=event.before, after=event.after)
  return EventHandledResponse(status=outcome.value)


@router.post("/order-created", status_code=status.HTTP_200_OK, response_model=EventHandledResponse)
async def order_created(event: OrderCreatedEvent, handler: Annotated[NewOrderHandler, Depends(get_new_order_handler)]) -> EventHandledResponse:
  """Broadcast a new pending order to drivers."""
  summary = await handler.handle(order_id=event.order_id, order=event.order)
  return EventHandledResponse(status="processed", detail=asdict(summary))
