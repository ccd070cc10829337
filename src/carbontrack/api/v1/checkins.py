"""Checkin calendar, activity checkin and makeup endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...schemas import (
    ActivityCheckinCreate,
    ActivityCheckinResult,
    CheckinCalendar,
    CheckinRead,
    MakeupCheckinCreate,
    MakeupCheckinResult,
    StreakStats,
)
from ...services import checkin_service, quota_service
from ...services.checkin_service import CheckinRuleViolation
from ...utils.datetime import now_in

router = APIRouter(prefix="/checkins", tags=["checkins"])


def _stats(db: Session, user_id: int) -> StreakStats:
    return StreakStats(**asdict(checkin_service.get_user_streak_stats(db, user_id=user_id)))


@router.get(
    "",
    response_model=CheckinCalendar,
    summary="Checkin calendar",
    responses={
        200: {
            "description": "Checkins inside the requested range with streak stats",
            "content": {
                "application/json": {
                    "example": {
                        "range": {"start_date": "2026-01-01", "end_date": "2026-01-31"},
                        "checkins": [
                            {
                                "checkin_date": "2026-01-02",
                                "source": "record",
                                "record_id": "rec-1",
                                "notes": None,
                                "created_at": "2026-01-02T10:00:00",
                            }
                        ],
                        "stats": {
                            "current_streak": 1,
                            "longest_streak": 2,
                            "total_days": 3,
                            "makeup_days": 0,
                            "last_checkin_date": "2026-01-04",
                            "active_today": True,
                        },
                        "makeup_quota": {"limit": 3, "used": 0, "remaining": 3, "reset_at": "2026-02-01"},
                        "meta": {"timezone": "UTC", "server_today": "2026-01-04"},
                    }
                }
            },
        }
    },
)
def get_calendar(
    *,
    user_id: int = Query(..., gt=0, description="User whose calendar to load"),
    month: Optional[str] = Query(None, description="Month in YYYY-MM; wins over explicit bounds"),
    start_date: Optional[str] = Query(None, description="Inclusive start day"),
    end_date: Optional[str] = Query(None, description="Inclusive end day"),
    db: Session = Depends(get_db),
) -> CheckinCalendar:
    """Return the user's checkins for a month or a date range (at most 370 days)."""

    tz = checkin_service.app_timezone()
    today = now_in(tz).date()
    start, end = checkin_service.resolve_calendar_range(
        month=month, start_date=start_date, end_date=end_date, today=today, tz=tz
    )
    checkins = checkin_service.list_checkins(db, user_id=user_id, start_date=start, end_date=end)
    return CheckinCalendar(
        range={"start_date": start, "end_date": end},
        checkins=[CheckinRead.model_validate(checkin) for checkin in checkins],
        stats=_stats(db, user_id),
        makeup_quota=quota_service.quota_summary(db, user_id=user_id),
        meta={"timezone": str(tz), "server_today": today},
    )


@router.post(
    "",
    response_model=ActivityCheckinResult,
    summary="Record an activity checkin",
)
def record_activity_checkin(
    payload: ActivityCheckinCreate,
    db: Session = Depends(get_db),
) -> ActivityCheckinResult:
    """Mark today as checked in after a tracked activity was submitted.

    Repeating the call on the same day is not an error; ``recorded`` is then
    ``false``.
    """

    recorded = checkin_service.record_organic_checkin(db, user_id=payload.user_id, record_id=payload.record_id)
    db.commit()
    return ActivityCheckinResult(recorded=recorded, stats=_stats(db, payload.user_id))


@router.post(
    "/makeup",
    response_model=MakeupCheckinResult,
    summary="Apply a makeup checkin",
    responses={
        400: {"description": "Missing, invalid or future date"},
        404: {"description": "User not found"},
        409: {"description": "Already checked in for this date"},
        429: {"description": "Makeup quota exceeded"},
    },
)
def apply_makeup_checkin(
    payload: MakeupCheckinCreate,
    db: Session = Depends(get_db),
) -> MakeupCheckinResult:
    """Backfill a missed day, consuming one unit of the monthly makeup quota.

    Example request body::

        {
            "user_id": 7,
            "date": "2026-01-03",
            "record_id": "rec-20260103",
            "note": "forgot to log the bike commute"
        }
    """

    try:
        checkin_date = checkin_service.apply_makeup_checkin(
            db,
            user_id=payload.user_id,
            raw_date=payload.date,
            note=payload.note,
            record_id=payload.record_id,
        )
        db.commit()
    except CheckinRuleViolation as exc:
        db.rollback()
        raise HTTPException(
            status_code=exc.status_code,
            detail={"message": exc.detail, "code": exc.code},
        ) from exc

    return MakeupCheckinResult(
        checkin_date=checkin_date,
        stats=_stats(db, payload.user_id),
        makeup_quota=quota_service.quota_summary(db, user_id=payload.user_id),
    )


@router.get("/streak", response_model=StreakStats, summary="Current streak figures")
def get_streak(
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
) -> StreakStats:
    """Streak figures computed fresh from the ledger."""

    return _stats(db, user_id)
