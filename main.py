#!/usr/bin/env python3
"""content_search – provider aggregation, ranking and search.

Usage:
    python main.py [--sync]      # run one sync pass (default)
    python main.py --schedule    # sync every sync.interval_minutes until stopped
    python main.py --serve       # start the HTTP API (startup sync + scheduler)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# ── Ensure project root is on sys.path ───────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bootstrap import build_services, load_settings, setup_logging
from process.scheduler import start_scheduler
from storage.db import PersistenceError
from storage.fulltext import SearchIndexError

log = logging.getLogger("content_search")


# ── One-shot sync ────────────────────────────────────────────────────


async def run_sync() -> int:
    """Execute one full sync pass and return the number of items processed."""
    log.info("=== content_search sync starting ===")
    services = build_services(load_settings())

    try:
        await services.index.ensure_index()
    except SearchIndexError:
        log.warning("Full-text index unavailable – continuing with the store only", exc_info=True)

    outcome = await services.orchestrator.sync_all()
    await services.events.drain()
    log.info("=== content_search sync finished: %d items ===", outcome.processed)
    return outcome.processed


# ── Scheduler ────────────────────────────────────────────────────────


async def run_scheduled() -> None:
    """Run try_sync_all on the configured interval until interrupted."""
    settings = load_settings()
    services = build_services(settings)
    try:
        await services.index.ensure_index()
    except SearchIndexError:
        log.warning("Full-text index unavailable – continuing with the store only", exc_info=True)

    interval = float(settings.get("sync", {}).get("interval_minutes", 30))
    scheduler = start_scheduler(services.orchestrator, interval)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await services.events.drain()


# ── CLI ──────────────────────────────────────────────────────────────


def main() -> None:
    parser = argparse.ArgumentParser(description="Content aggregation and search")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--sync", action="store_true", help="Run one sync pass and exit (default)")
    mode.add_argument("--schedule", action="store_true", help="Sync periodically instead of once")
    mode.add_argument("--serve", action="store_true", help="Serve the HTTP API with uvicorn")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    args = parser.parse_args()

    setup_logging()

    if args.serve:
        import uvicorn

        uvicorn.run("web.app:app", host=args.host, port=args.port)
    elif args.schedule:
        try:
            asyncio.run(run_scheduled())
        except KeyboardInterrupt:
            log.info("Scheduler stopped")
    else:
        try:
            asyncio.run(run_sync())
        except PersistenceError as exc:
            log.error("Sync failed: %s", exc)
            sys.exit(1)


if __name__ == "__main__":
    main()
