"""Leaderboard entry and snapshot schemas.

Snapshots are serialized with ``by_alias=True`` so the JSON keys read
``global`` rather than the Python-safe attribute names.
"""

from datetime import date, datetime
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class LeaderboardEntry(BaseModel):
    """Fields shared by every leaderboard row."""

    user_id: int
    display_name: Optional[str] = None
    avatar_id: Optional[int] = None
    avatar_path: Optional[str] = None
    region_code: Optional[str] = None
    school_id: Optional[int] = None
    school_name: Optional[str] = None
    rank: Optional[int] = Field(None, ge=1, description="1-based position inside the bucket.")


class PointsEntry(LeaderboardEntry):
    total_points: float = 0.0


class StreakEntry(LeaderboardEntry):
    current_streak: int = Field(0, ge=0)
    longest_streak: int = Field(0, ge=0)
    total_checkins: int = Field(0, ge=0)
    last_checkin_date: date


EntryT = TypeVar("EntryT", bound=LeaderboardEntry)


class RegionBucket(BaseModel, Generic[EntryT]):
    region_code: str
    country_code: Optional[str] = None
    state_code: Optional[str] = None
    region_label: Optional[str] = None
    entries: List[EntryT] = Field(default_factory=list)


class SchoolBucket(BaseModel, Generic[EntryT]):
    school_id: int
    school_name: Optional[str] = None
    entries: List[EntryT] = Field(default_factory=list)


class SnapshotMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    generated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    ttl_seconds: Optional[int] = None


class PointsLeaderboardSnapshot(SnapshotMeta):
    """Points ranking, top-K per scope."""

    global_entries: List[PointsEntry] = Field(default_factory=list, alias="global")
    regions: Dict[str, RegionBucket[PointsEntry]] = Field(default_factory=dict)
    schools: Dict[int, SchoolBucket[PointsEntry]] = Field(default_factory=dict)


class StreakRanks(BaseModel):
    """Every ranked user's position per scope, without truncation."""

    model_config = ConfigDict(populate_by_name=True)

    global_ranks: Dict[int, int] = Field(default_factory=dict, alias="global")
    regions: Dict[str, Dict[int, int]] = Field(default_factory=dict)
    schools: Dict[int, Dict[int, int]] = Field(default_factory=dict)


class StreakLeaderboardSnapshot(SnapshotMeta):
    """Streak ranking, top-K per scope plus the full rank maps."""

    global_entries: List[StreakEntry] = Field(default_factory=list, alias="global")
    regions: Dict[str, RegionBucket[StreakEntry]] = Field(default_factory=dict)
    schools: Dict[int, SchoolBucket[StreakEntry]] = Field(default_factory=dict)
    ranks: StreakRanks = Field(default_factory=StreakRanks)


class StreakRankLookup(BaseModel):
    """Where a user stands in the cached streak snapshot."""

    user_id: int
    global_rank: Optional[int] = None
    region_code: Optional[str] = None
    region_rank: Optional[int] = None
    school_id: Optional[int] = None
    school_rank: Optional[int] = None
    generated_at: Optional[datetime] = None


class RefreshSummary(BaseModel):
    kind: str
    generated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    global_count: int = 0
    regions_count: int = 0
    schools_count: int = 0


class RefreshResult(BaseModel):
    success: bool = True
    message: str = "Leaderboard cache refreshed"
    data: List[RefreshSummary]
