"""Monthly quota for makeup checkins."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..models import MakeupQuota
from ..utils.datetime import month_bucket, naive_utc, next_month_bucket, now_in, resolve_timezone


def _ensure_quota(session: Session, user_id: int, bucket) -> MakeupQuota:
    quota_stmt = (
        select(MakeupQuota)
        .where(MakeupQuota.user_id == user_id, MakeupQuota.month_bucket == bucket)
        .with_for_update(nowait=False)
    )
    quota = session.execute(quota_stmt).scalar_one_or_none()

    if quota is None:
        quota = MakeupQuota(
            user_id=user_id,
            month_bucket=bucket,
            used=0,
            monthly_limit=get_settings().makeup_monthly_limit,
        )
        session.add(quota)
        session.flush()

    return quota


def check_and_consume(
    session: Session,
    *,
    user_id: int,
    amount: int = 1,
    now: Optional[datetime] = None,
) -> bool:
    """Charge ``amount`` against this month's allowance; False when it would exceed the limit."""

    tz = resolve_timezone(get_settings().app_timezone)
    now = now or now_in(tz)
    quota = _ensure_quota(session, user_id, month_bucket(now, tz))

    if quota.used + amount > quota.monthly_limit:
        return False

    quota.used += amount
    quota.updated_at = naive_utc(now)
    session.flush()
    return True


def quota_summary(session: Session, *, user_id: int, now: Optional[datetime] = None) -> dict:
    """Return limit/used/remaining/reset_at for the current month without charging anything."""

    settings = get_settings()
    tz = resolve_timezone(settings.app_timezone)
    now = now or now_in(tz)
    bucket = month_bucket(now, tz)

    stmt = select(MakeupQuota).where(MakeupQuota.user_id == user_id, MakeupQuota.month_bucket == bucket)
    quota = session.execute(stmt).scalar_one_or_none()

    limit = quota.monthly_limit if quota else settings.makeup_monthly_limit
    used = quota.used if quota else 0
    return {
        "limit": limit,
        "used": used,
        "remaining": max(limit - used, 0),
        "reset_at": next_month_bucket(bucket),
    }
