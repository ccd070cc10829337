"""Optional background scheduler that keeps the leaderboard caches warm."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from ..core.config import get_settings
from ..core.database import SessionLocal
from ..services import leaderboard_service
from ..services.leaderboard_service import LeaderboardKind

logger = logging.getLogger(__name__)

_scheduler = AsyncIOScheduler(timezone="UTC")

JOB_ID = "leaderboard_warmup"


def run_warmup_once(reason: str = "scheduled") -> Dict[str, int]:
    """Rebuild both caches synchronously; returns global entry counts per board."""

    session = SessionLocal()
    try:
        counts = {}
        for kind in LeaderboardKind:
            snapshot = leaderboard_service.rebuild_cache(session, kind=kind, reason=reason)
            counts[kind.value] = len(snapshot.global_entries)
        return counts
    finally:
        session.close()


async def _scheduled_job() -> None:
    counts = await asyncio.to_thread(run_warmup_once)
    logger.info("leaderboard warm-up completed: %s", counts)


def register_scheduler(app: FastAPI) -> None:
    """Attach APScheduler lifecycle hooks to the FastAPI app."""

    minutes = get_settings().leaderboard_warmup_minutes

    @app.on_event("startup")
    async def start_scheduler() -> None:
        if minutes <= 0:
            logger.info("leaderboard warm-up disabled")
            return
        if _scheduler.get_job(JOB_ID) is None:
            _scheduler.add_job(
                _scheduled_job,
                "interval",
                minutes=minutes,
                id=JOB_ID,
                coalesce=True,
                max_instances=1,
                misfire_grace_time=60,
            )
        if not _scheduler.running:
            _scheduler.start()
            logger.info("leaderboard warm-up scheduler started (every %d min)", minutes)

    @app.on_event("shutdown")
    async def shutdown_scheduler() -> None:
        if _scheduler.running:
            _scheduler.shutdown(wait=False)
            logger.info("leaderboard warm-up scheduler stopped")
