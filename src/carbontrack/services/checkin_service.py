"""Checkin ledger: idempotent recording, calendar reads and streak stats."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional, Sequence, Tuple, Union

from sqlalchemy import case, func, insert, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.database import dialect_name
from ..models import CheckinSource, User, UserCheckin
from ..utils.datetime import last_day_of_month, local_date, naive_utc, normalize_date, now_in, resolve_timezone
from . import quota_service
from .streaks import StreakState, compute_streak

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 370


class CheckinRuleViolation(Exception):
    """Raised when a checkin request breaks a business rule."""

    def __init__(self, detail: str, status_code: int = 400, code: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.code = code


def app_timezone() -> tzinfo:
    return resolve_timezone(get_settings().app_timezone)


def _insert_ignore(session: Session, values: dict):
    dialect = dialect_name(session)
    if dialect == "postgresql":
        return postgresql.insert(UserCheckin).values(**values).on_conflict_do_nothing(
            index_elements=["user_id", "checkin_date"]
        )
    if dialect == "sqlite":
        return sqlite.insert(UserCheckin).values(**values).on_conflict_do_nothing(
            index_elements=["user_id", "checkin_date"]
        )
    if dialect in ("mysql", "mariadb"):
        return mysql.insert(UserCheckin).values(**values).prefix_with("IGNORE")
    return insert(UserCheckin).values(**values)


def _insert_checkin(
    session: Session,
    *,
    user_id: int,
    checkin_date: date,
    source: CheckinSource,
    record_id: Optional[str],
    note: Optional[str],
    created_at: datetime,
) -> bool:
    stmt = _insert_ignore(
        session,
        {
            "user_id": user_id,
            "checkin_date": checkin_date,
            "source": source,
            "record_id": record_id,
            "notes": note,
            "created_at": naive_utc(created_at),
        },
    )
    try:
        # Savepoint keeps a failed insert from poisoning the caller's transaction.
        with session.begin_nested():
            result = session.execute(stmt)
        return (result.rowcount or 0) > 0
    except SQLAlchemyError as exc:
        logger.warning(
            "checkin insert failed: user_id=%s checkin_date=%s source=%s error=%s",
            user_id,
            checkin_date,
            source.value,
            exc,
        )
        return False


def record_organic_checkin(
    session: Session,
    *,
    user_id: int,
    record_id: Optional[str] = None,
    submitted_at: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> bool:
    """Record the day of an activity submission. Returns True only for a new row."""

    tz = tz or app_timezone()
    submitted_at = submitted_at or now_in(tz)
    return _insert_checkin(
        session,
        user_id=user_id,
        checkin_date=local_date(submitted_at, tz),
        source=CheckinSource.RECORD,
        record_id=record_id,
        note=None,
        created_at=submitted_at,
    )


def record_makeup_checkin(
    session: Session,
    *,
    user_id: int,
    checkin_date: Union[date, str],
    note: Optional[str] = None,
    record_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> bool:
    """Insert a backdated checkin. Quota and future-date checks belong to the caller."""

    tz = tz or app_timezone()
    day = normalize_date(checkin_date, tz)
    if day is None:
        logger.warning("makeup checkin skipped, unparseable date %r for user_id=%s", checkin_date, user_id)
        return False
    return _insert_checkin(
        session,
        user_id=user_id,
        checkin_date=day,
        source=CheckinSource.MAKEUP,
        record_id=record_id,
        note=note,
        created_at=created_at or now_in(tz),
    )


def has_checkin(session: Session, user_id: int, checkin_date: date) -> bool:
    stmt = (
        select(UserCheckin.id)
        .where(UserCheckin.user_id == user_id, UserCheckin.checkin_date == checkin_date)
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none() is not None


def clamp_range(start_date: date, end_date: date) -> Tuple[date, date]:
    """Order the bounds and cap the span to ``MAX_RANGE_DAYS``."""

    if end_date < start_date:
        start_date, end_date = end_date, start_date
    if (end_date - start_date).days > MAX_RANGE_DAYS:
        end_date = start_date + timedelta(days=MAX_RANGE_DAYS)
    return start_date, end_date


def resolve_calendar_range(
    *,
    month: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> Tuple[date, date]:
    """Work out the calendar window requested by a client.

    A ``YYYY-MM`` month wins over explicit bounds; missing bounds default to
    the current month.
    """

    tz = tz or app_timezone()
    today = today or now_in(tz).date()
    start: Optional[date] = None
    end: Optional[date] = None

    if month and month.strip():
        try:
            first = datetime.strptime(month.strip(), "%Y-%m").date()
        except ValueError:
            first = None
        if first is not None:
            start, end = first, last_day_of_month(first)

    if start is None and start_date:
        start = normalize_date(start_date, tz)
    if end is None and end_date:
        end = normalize_date(end_date, tz)

    if start is None or end is None:
        current_month = today.replace(day=1)
        start = start or current_month
        end = end or last_day_of_month(current_month)

    return clamp_range(start, end)


def list_checkins(session: Session, *, user_id: int, start_date: date, end_date: date) -> Sequence[UserCheckin]:
    """Return the user's checkins within the inclusive, capped range."""

    start_date, end_date = clamp_range(start_date, end_date)
    stmt = (
        select(UserCheckin)
        .where(
            UserCheckin.user_id == user_id,
            UserCheckin.checkin_date >= start_date,
            UserCheckin.checkin_date <= end_date,
        )
        .order_by(UserCheckin.checkin_date.asc())
    )
    return session.execute(stmt).scalars().all()


def get_user_streak_stats(session: Session, *, user_id: int, as_of: Optional[date] = None) -> StreakState:
    """Compute streak figures fresh from the ledger."""

    as_of = as_of or now_in(app_timezone()).date()

    dates = session.execute(
        select(UserCheckin.checkin_date)
        .where(UserCheckin.user_id == user_id)
        .order_by(UserCheckin.checkin_date.asc())
    ).scalars().all()

    makeup_days = session.execute(
        select(
            func.coalesce(func.sum(case((UserCheckin.source == CheckinSource.MAKEUP, 1), else_=0)), 0)
        ).where(UserCheckin.user_id == user_id)
    ).scalar_one()

    return compute_streak(dates, as_of, makeup_days=int(makeup_days or 0))


def _ensure_user(session: Session, user_id: int) -> User:
    stmt = select(User).where(User.id == user_id, User.deleted_at.is_(None))
    user = session.execute(stmt).scalar_one_or_none()
    if user is None:
        raise CheckinRuleViolation(f"User {user_id} not found", status_code=404, code="USER_NOT_FOUND")
    return user


def apply_makeup_checkin(
    session: Session,
    *,
    user_id: int,
    raw_date: Optional[str],
    note: Optional[str] = None,
    record_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> date:
    """Validate, charge quota for and insert a makeup checkin.

    Returns the normalized checkin date. An existing checkin for the day is
    reported as ``ALREADY_CHECKED_IN`` whether it is seen before the insert
    or only by the insert itself.
    """

    tz = app_timezone()
    now = now or now_in(tz)

    if raw_date is None or not raw_date.strip():
        raise CheckinRuleViolation("Missing date", code="DATE_REQUIRED")

    day = normalize_date(raw_date, tz)
    if day is None:
        raise CheckinRuleViolation("Invalid date", code="INVALID_DATE")
    if day > local_date(now, tz):
        raise CheckinRuleViolation("Cannot check in for future dates", code="DATE_IN_FUTURE")

    _ensure_user(session, user_id)

    if has_checkin(session, user_id, day):
        raise CheckinRuleViolation("Already checked in for this date", status_code=409, code="ALREADY_CHECKED_IN")

    if not quota_service.check_and_consume(session, user_id=user_id, now=now):
        raise CheckinRuleViolation("Makeup quota exceeded", status_code=429, code="QUOTA_EXCEEDED")

    note = note.strip() if note else None
    inserted = record_makeup_checkin(
        session,
        user_id=user_id,
        checkin_date=day,
        note=note or None,
        record_id=record_id,
        created_at=now,
        tz=tz,
    )
    if not inserted:
        if has_checkin(session, user_id, day):
            raise CheckinRuleViolation(
                "Already checked in for this date", status_code=409, code="ALREADY_CHECKED_IN"
            )
        raise CheckinRuleViolation("Failed to apply makeup checkin", status_code=500, code="CHECKIN_FAILED")

    logger.info("makeup checkin applied: user_id=%s checkin_date=%s", user_id, day)
    return day
