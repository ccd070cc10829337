"""CarbonTrack streak and points leaderboard service."""
