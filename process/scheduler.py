"""Periodic background sync on a fixed interval."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from process.sync import SyncOrchestrator

log = logging.getLogger(__name__)


async def periodic_sync(orchestrator: SyncOrchestrator) -> None:
    """One timer tick: sync unless a pass is already running."""
    log.info("Background sync triggered")
    try:
        outcome = await orchestrator.try_sync_all()
    except Exception:
        log.exception("Background sync failed")
        return
    if outcome.skipped:
        log.info("Background sync skipped – another sync is already running")
    else:
        log.info("Background sync finished: %d items processed", outcome.processed)


def start_scheduler(orchestrator: SyncOrchestrator, interval_minutes: float) -> AsyncIOScheduler:
    """Start the sync job on the running event loop.

    An interval trigger's first run is one interval after start, so the
    tick right after startup is skipped.
    """
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        periodic_sync,
        IntervalTrigger(minutes=interval_minutes),
        args=[orchestrator],
        id="provider_sync",
        name="Provider sync",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    log.info("Scheduler started – syncing every %s minutes", interval_minutes)
    return scheduler
