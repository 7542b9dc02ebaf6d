from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.deps import get_delivery_engine, require_task_secret
from app.api.models import DrainResponse
from app.notifications.delivery import DeliveryAttemptEngine

router = APIRouter(prefix="/notifications", tags=["tasks"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/process-pending", status_code=status.HTTP_200_OK, response_model=DrainResponse)
async def process_pending_notifications(engine: Annotated[DeliveryAttemptEngine, Depends(get_delivery_engine)]) -> DrainResponse | JSONResponse:
  """Run one drain cycle synchronously and return its counters."""
  logger.info("Processing pending notifications...")
  try:
    result = await engine.drain()
  except Exception as exc:  # noqa: BLE001
    logger.error("Error processing pending notifications: %s", exc, exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"success": False, "error": str(exc)})

  return DrainResponse(success=True, **result.to_dict())
