"""Service layer exports."""

from . import (
	checkin_service,
	leaderboard_service,
	points_leaderboard,
	quota_service,
	refresh_trigger,
	region_service,
	snapshot_cache,
	streak_leaderboard,
	streaks,
)

__all__ = [
	"checkin_service",
	"leaderboard_service",
	"points_leaderboard",
	"quota_service",
	"refresh_trigger",
	"region_service",
	"snapshot_cache",
	"streak_leaderboard",
	"streaks",
]
