import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI

from app.config import get_settings
from app.core.firebase import initialize_firebase, reset_firebase_state
from app.core.logging import initialize_logging
from app.notifications.factory import build_delivery_engine
from app.notifications.scheduler import PendingNotificationScheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging and Firebase once, then run the pending-notification scheduler."""
  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    initialize_logging(settings)
  except Exception:  # noqa: BLE001
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  # Firebase is initialized exactly once here; request paths only consult the readiness flag.
  firebase_ready = initialize_firebase(settings)
  app.state.firebase_ready = firebase_ready

  scheduler: PendingNotificationScheduler | None = None
  if settings.scheduler_enabled and firebase_ready:
    scheduler = PendingNotificationScheduler(engine_factory=partial(build_delivery_engine, settings), interval_minutes=settings.scheduler_interval_minutes)
    scheduler.start()
  elif settings.scheduler_enabled:
    logger.warning("Pending notification scheduler not started; Firebase is not ready.")

  logger.info("Startup complete firebase_ready=%s scheduler=%s", firebase_ready, scheduler is not None)

  yield

  if scheduler is not None:
    scheduler.shutdown()
  reset_firebase_state()
