"""Leaderboard read and refresh entry points backed by the snapshot caches."""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Callable, Optional, TypeVar, Union

from sqlalchemy.orm import Session

from ..core.config import Settings, get_settings
from ..schemas.leaderboard import PointsLeaderboardSnapshot, RefreshSummary, StreakLeaderboardSnapshot
from ..utils.datetime import resolve_timezone
from .points_leaderboard import build_points_snapshot
from .region_service import RegionLookup, get_region_service
from .snapshot_cache import FileSnapshotStore, SnapshotCache, SnapshotStore
from .streak_leaderboard import build_streak_snapshot

POINTS_CACHE_FILE = "leaderboards.json"
STREAK_CACHE_FILE = "streak_leaderboards.json"

Snapshot = Union[PointsLeaderboardSnapshot, StreakLeaderboardSnapshot]
T = TypeVar("T")


class LeaderboardKind(str, enum.Enum):
    """Independent leaderboard artifacts, each with its own cache file."""

    POINTS = "points"
    STREAK = "streak"


def _in_savepoint(session: Session, build: Callable[[], T]) -> T:
    # A failed scan rolls back to the savepoint so later builds on this session still run.
    with session.begin_nested():
        return build()


def points_cache(
    session: Session,
    *,
    settings: Optional[Settings] = None,
    region_lookup: Optional[RegionLookup] = None,
    store: Optional[SnapshotStore] = None,
) -> SnapshotCache[PointsLeaderboardSnapshot]:
    settings = settings or get_settings()
    region_lookup = region_lookup or get_region_service()
    return SnapshotCache(
        name=LeaderboardKind.POINTS.value,
        builder=lambda now: _in_savepoint(
            session, lambda: build_points_snapshot(session, region_lookup=region_lookup)
        ),
        snapshot_type=PointsLeaderboardSnapshot,
        store=store or FileSnapshotStore(Path(settings.cache_dir) / POINTS_CACHE_FILE),
        ttl_seconds=settings.leaderboard_cache_ttl,
        tz=resolve_timezone(settings.app_timezone),
    )


def streak_cache(
    session: Session,
    *,
    settings: Optional[Settings] = None,
    region_lookup: Optional[RegionLookup] = None,
    store: Optional[SnapshotStore] = None,
) -> SnapshotCache[StreakLeaderboardSnapshot]:
    settings = settings or get_settings()
    region_lookup = region_lookup or get_region_service()
    return SnapshotCache(
        name=LeaderboardKind.STREAK.value,
        builder=lambda now: _in_savepoint(
            session, lambda: build_streak_snapshot(session, region_lookup=region_lookup, today=now.date())
        ),
        snapshot_type=StreakLeaderboardSnapshot,
        store=store or FileSnapshotStore(Path(settings.cache_dir) / STREAK_CACHE_FILE),
        ttl_seconds=settings.streak_leaderboard_cache_ttl,
        tz=resolve_timezone(settings.app_timezone),
    )


def cache_for(session: Session, kind: LeaderboardKind) -> SnapshotCache:
    if kind is LeaderboardKind.STREAK:
        return streak_cache(session)
    return points_cache(session)


def get_snapshot(session: Session, *, kind: LeaderboardKind, force_refresh: bool = False) -> Snapshot:
    """Cached snapshot for ``kind``, rebuilt inline when stale or forced."""

    return cache_for(session, kind).get_snapshot(force_refresh=force_refresh)


def rebuild_cache(session: Session, *, kind: LeaderboardKind, reason: Optional[str] = None) -> Snapshot:
    return cache_for(session, kind).rebuild_cache(reason)


def summarize(kind: LeaderboardKind, snapshot: Snapshot) -> RefreshSummary:
    return RefreshSummary(
        kind=kind.value,
        generated_at=snapshot.generated_at,
        expires_at=snapshot.expires_at,
        global_count=len(snapshot.global_entries),
        regions_count=len(snapshot.regions),
        schools_count=len(snapshot.schools),
    )
