"""Leaderboard endpoints."""

from __future__ import annotations

import enum
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...core.config import get_settings
from ...core.database import get_db
from ...schemas import PointsLeaderboardSnapshot, RefreshResult, StreakLeaderboardSnapshot, StreakRankLookup
from ...services import leaderboard_service
from ...services.leaderboard_service import LeaderboardKind
from ...services.refresh_trigger import RefreshTriggerViolation, authorize_refresh
from ...services.streak_leaderboard import streak_rank_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leaderboards", tags=["leaderboards"])


class RefreshTarget(str, enum.Enum):
    POINTS = "points"
    STREAK = "streak"
    ALL = "all"


@router.get(
    "/points",
    response_model=PointsLeaderboardSnapshot,
    summary="Points leaderboard",
    responses={
        200: {
            "description": "Top users by points globally, per region and per school",
            "content": {
                "application/json": {
                    "example": {
                        "generated_at": "2026-01-04T10:00:00+00:00",
                        "expires_at": "2026-01-04T10:10:00+00:00",
                        "ttl_seconds": 600,
                        "global": [
                            {
                                "user_id": 7,
                                "display_name": "lin",
                                "avatar_id": 2,
                                "avatar_path": "/avatars/leaf.png",
                                "region_code": "CN-GD",
                                "school_id": 3,
                                "school_name": "Sun Yat-sen University",
                                "rank": 1,
                                "total_points": 1280.0,
                            }
                        ],
                        "regions": {},
                        "schools": {},
                    }
                }
            },
        }
    },
)
def get_points_leaderboard(
    force: bool = Query(False, description="Rebuild instead of serving the cached snapshot"),
    db: Session = Depends(get_db),
) -> PointsLeaderboardSnapshot:
    """Return the cached points snapshot, rebuilding it when stale."""

    return leaderboard_service.get_snapshot(db, kind=LeaderboardKind.POINTS, force_refresh=force)


@router.get("/streaks", response_model=StreakLeaderboardSnapshot, summary="Streak leaderboard")
def get_streak_leaderboard(
    force: bool = Query(False, description="Rebuild instead of serving the cached snapshot"),
    db: Session = Depends(get_db),
) -> StreakLeaderboardSnapshot:
    """Return the cached streak snapshot including the full rank maps."""

    return leaderboard_service.get_snapshot(db, kind=LeaderboardKind.STREAK, force_refresh=force)


@router.get("/streaks/rank/{user_id}", response_model=StreakRankLookup, summary="Streak rank of one user")
def get_streak_rank(
    user_id: int,
    region_code: Optional[str] = Query(None),
    school_id: Optional[int] = Query(None, gt=0),
    db: Session = Depends(get_db),
) -> StreakRankLookup:
    """Look the user up in the cached rank maps, including users outside the top listings."""

    snapshot = leaderboard_service.get_snapshot(db, kind=LeaderboardKind.STREAK)
    return streak_rank_for(snapshot, user_id=user_id, region_code=region_code, school_id=school_id)


@router.post(
    "/refresh",
    response_model=RefreshResult,
    summary="Force a cache rebuild",
    responses={
        403: {"description": "Invalid trigger key"},
        503: {"description": "Trigger key is not configured on the server"},
    },
)
def trigger_refresh(
    key: Optional[str] = Query(None, description="Shared trigger secret"),
    trigger_key: Optional[str] = Query(None, description="Alias of ``key``"),
    kind: RefreshTarget = Query(RefreshTarget.POINTS),
    db: Session = Depends(get_db),
) -> RefreshResult:
    """Rebuild the selected leaderboards after checking the trigger key."""

    try:
        authorize_refresh(key or trigger_key, get_settings().leaderboard_trigger_key)
    except RefreshTriggerViolation as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    kinds: List[LeaderboardKind] = (
        [LeaderboardKind.POINTS, LeaderboardKind.STREAK]
        if kind is RefreshTarget.ALL
        else [LeaderboardKind(kind.value)]
    )
    summaries = []
    for board in kinds:
        snapshot = leaderboard_service.rebuild_cache(db, kind=board, reason="manual-trigger")
        summary = leaderboard_service.summarize(board, snapshot)
        logger.info("leaderboard cache refreshed via trigger: %s", summary.model_dump())
        summaries.append(summary)

    return RefreshResult(data=summaries)
