"""Periodic drain of the pending-notification queue."""

from __future__ import annotations

import logging
from collections.abc import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.notifications.delivery import DeliveryAttemptEngine, DrainResult

logger = logging.getLogger(__name__)

JOB_ID = "process_pending_notifications"


class PendingNotificationScheduler:
  """Runs a drain cycle on a fixed interval inside the service event loop."""

  def __init__(self, *, engine_factory: Callable[[], DeliveryAttemptEngine], interval_minutes: int = 5, scheduler: AsyncIOScheduler | None = None) -> None:
    self._engine_factory = engine_factory
    self._interval_minutes = interval_minutes
    self._scheduler = scheduler or AsyncIOScheduler()

  def start(self) -> None:
    """Register the drain job and start the scheduler."""
    # One in-flight drain per process; a slow cycle delays the next tick instead of overlapping it.
    self._scheduler.add_job(self.run_once, IntervalTrigger(minutes=self._interval_minutes), id=JOB_ID, name="Process Pending Notifications", replace_existing=True, max_instances=1, coalesce=True)
    self._scheduler.start()
    logger.info("Pending notification scheduler started interval_minutes=%s", self._interval_minutes)

  def shutdown(self) -> None:
    if self._scheduler.running:
      self._scheduler.shutdown(wait=False)
      logger.info("Pending notification scheduler stopped")

  async def run_once(self) -> DrainResult | None:
    """Run one scheduled drain; failures are logged so the next tick still runs."""
    logger.info("Scheduled processing of pending notifications")
    try:
      result = await self._engine_factory().drain()
    except Exception:
      logger.error("Error in scheduled processing of pending notifications", exc_info=True)
      return None

    logger.info("Scheduled processing completed: %s notifications sent, %s failed", result.successful, result.failed)
    return result
