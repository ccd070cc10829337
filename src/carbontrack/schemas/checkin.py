"""Pydantic schemas for checkin endpoints."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.user_checkin import CheckinSource


class CheckinRead(BaseModel):
    """One ledger row as shown on the calendar."""

    model_config = ConfigDict(from_attributes=True)

    checkin_date: date
    source: CheckinSource
    record_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class StreakStats(BaseModel):
    """Streak figures derived from the ledger."""

    model_config = ConfigDict(from_attributes=True)

    current_streak: int = Field(..., ge=0)
    longest_streak: int = Field(..., ge=0)
    total_days: int = Field(..., ge=0)
    makeup_days: int = Field(..., ge=0)
    last_checkin_date: Optional[date] = None
    active_today: bool = False


class MakeupQuotaSummary(BaseModel):
    limit: int
    used: int
    remaining: int
    reset_at: date


class CalendarRange(BaseModel):
    start_date: date
    end_date: date


class CalendarMeta(BaseModel):
    timezone: str
    server_today: date


class CheckinCalendar(BaseModel):
    """Response for the checkin calendar view."""

    range: CalendarRange
    checkins: List[CheckinRead]
    stats: StreakStats
    makeup_quota: MakeupQuotaSummary
    meta: CalendarMeta


class ActivityCheckinCreate(BaseModel):
    """Recorded when a user submits a tracked activity."""

    user_id: int = Field(..., gt=0)
    record_id: Optional[str] = Field(None, max_length=64)


class ActivityCheckinResult(BaseModel):
    recorded: bool = Field(..., description="False when the day was already checked in.")
    stats: StreakStats


class MakeupCheckinCreate(BaseModel):
    """Request body for a backdated checkin."""

    user_id: int = Field(..., gt=0)
    date: Optional[str] = Field(None, description="Day to fill in, ideally YYYY-MM-DD.")
    record_id: Optional[str] = Field(None, max_length=64)
    note: Optional[str] = Field(None, max_length=280)


class MakeupCheckinResult(BaseModel):
    checkin_date: date
    stats: StreakStats
    makeup_quota: MakeupQuotaSummary
