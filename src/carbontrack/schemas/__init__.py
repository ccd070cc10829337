"""Public schema exports."""

from .checkin import (
	ActivityCheckinCreate,
	ActivityCheckinResult,
	CheckinCalendar,
	CheckinRead,
	MakeupCheckinCreate,
	MakeupCheckinResult,
	MakeupQuotaSummary,
	StreakStats,
)
from .leaderboard import (
	LeaderboardEntry,
	PointsEntry,
	PointsLeaderboardSnapshot,
	RefreshResult,
	RefreshSummary,
	RegionBucket,
	SchoolBucket,
	StreakEntry,
	StreakLeaderboardSnapshot,
	StreakRankLookup,
	StreakRanks,
)

__all__ = [
	"ActivityCheckinCreate",
	"ActivityCheckinResult",
	"CheckinCalendar",
	"CheckinRead",
	"LeaderboardEntry",
	"MakeupCheckinCreate",
	"MakeupCheckinResult",
	"MakeupQuotaSummary",
	"PointsEntry",
	"PointsLeaderboardSnapshot",
	"RefreshResult",
	"RefreshSummary",
	"RegionBucket",
	"SchoolBucket",
	"StreakEntry",
	"StreakLeaderboardSnapshot",
	"StreakRankLookup",
	"StreakRanks",
	"StreakStats",
]
