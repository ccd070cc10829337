"""Date-time helpers for calendar-day and month bucket calculations."""

from datetime import date, datetime, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Layouts tried after strict ISO parsing fails.
_FALLBACK_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%Y%m%d",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Return the named zone, falling back to UTC for blank or unknown names."""

    if not name or not name.strip():
        return timezone.utc
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def now_in(tz: tzinfo) -> datetime:
    return datetime.now(tz)


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar day of ``moment`` in ``tz``. Naive datetimes are taken as already local."""

    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def normalize_date(raw: Union[str, date, datetime, None], tz: tzinfo) -> Optional[date]:
    """Turn user input into a calendar day anchored to ``tz``.

    Strict ``YYYY-MM-DD`` is accepted first; anything else goes through
    ISO-8601 timestamp parsing and a few common layouts. Returns ``None``
    when nothing matches.
    """

    if raw is None:
        return None
    if isinstance(raw, datetime):
        return local_date(raw, tz)
    if isinstance(raw, date):
        return raw

    text = raw.strip()
    if not text:
        return None

    try:
        strict = datetime.strptime(text, "%Y-%m-%d").date()
        if strict.isoformat() == text:
            return strict
    except ValueError:
        pass

    try:
        return local_date(datetime.fromisoformat(text.replace("Z", "+00:00")), tz)
    except ValueError:
        pass

    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def naive_utc(moment: datetime) -> datetime:
    """Naive UTC timestamp for ``DateTime`` columns. Naive input is returned as is."""

    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def month_bucket(now: Optional[datetime] = None, tz: tzinfo = timezone.utc) -> date:
    """Return the first day of the month for the provided timestamp."""

    current = now.astimezone(tz) if now else datetime.now(tz)
    return date(current.year, current.month, 1)


def next_month_bucket(bucket: date) -> date:
    """Return the first day of the month following the supplied bucket."""

    if bucket.month == 12:
        return date(bucket.year + 1, 1, 1)
    return date(bucket.year, bucket.month + 1, 1)


def last_day_of_month(bucket: date) -> date:
    return date.fromordinal(next_month_bucket(bucket).toordinal() - 1)
