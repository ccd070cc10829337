"""SQLAlchemy models for CarbonTrack."""

from .makeup_quota import MakeupQuota
from .user import Avatar, School, User
from .user_checkin import CheckinSource, UserCheckin

__all__ = [
    "Avatar",
    "CheckinSource",
    "MakeupQuota",
    "School",
    "User",
    "UserCheckin",
]
