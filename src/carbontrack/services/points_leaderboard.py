"""Points leaderboard built from a single ordered scan of the users table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import Avatar, School, User
from ..schemas.leaderboard import PointsEntry, PointsLeaderboardSnapshot, RegionBucket, SchoolBucket
from .region_service import RegionLookup


@dataclass(frozen=True)
class BoardLimits:
    global_limit: int = 50
    region_limit: int = 20
    school_limit: int = 20


class UserRow(NamedTuple):
    """One row of the users/schools/avatars join."""

    user_id: int
    username: Optional[str]
    total_points: float
    avatar_id: Optional[int]
    avatar_path: Optional[str]
    region_code: Optional[str]
    school_id: Optional[int]
    school_name: Optional[str]


def _scan_users(session: Session) -> Iterator[UserRow]:
    total_points = func.coalesce(User.points, 0)
    stmt = (
        select(
            User.id,
            User.username,
            total_points.label("total_points"),
            User.avatar_id,
            Avatar.file_path,
            User.region_code,
            User.school_id,
            School.name,
        )
        .outerjoin(Avatar, Avatar.id == User.avatar_id)
        .outerjoin(School, School.id == User.school_id)
        .where(User.deleted_at.is_(None))
        .order_by(total_points.desc(), User.id.asc())
    )
    for row in session.execute(stmt):
        yield UserRow(
            user_id=int(row[0]),
            username=row[1],
            total_points=float(row[2] or 0),
            avatar_id=row[3],
            avatar_path=row[4],
            region_code=row[5] or None,
            school_id=row[6] if row[6] and row[6] > 0 else None,
            school_name=row[7],
        )


def _entry(row: UserRow, rank: int) -> PointsEntry:
    return PointsEntry(
        user_id=row.user_id,
        display_name=row.username,
        avatar_id=row.avatar_id,
        avatar_path=row.avatar_path,
        region_code=row.region_code,
        school_id=row.school_id,
        school_name=row.school_name,
        total_points=row.total_points,
        rank=rank,
    )


def region_bucket(region_code: str, region_lookup: RegionLookup) -> dict:
    """Bucket header for ``region_code``, decorated when the lookup knows it."""

    context = region_lookup.get_region_context(region_code)
    if context is None:
        return {"region_code": region_code}
    return {
        "region_code": context.region_code or region_code,
        "country_code": context.country_code,
        "state_code": context.state_code,
        "region_label": context.region_label,
    }


def build_points_snapshot(
    session: Session,
    *,
    region_lookup: RegionLookup,
    limits: BoardLimits = BoardLimits(),
) -> PointsLeaderboardSnapshot:
    """Rank users by stored points into global, region and school listings.

    Rows arrive ordered by ``(points desc, id asc)``, so each bucket's rank is
    simply its length at append time.
    """

    global_entries = []
    regions: Dict[str, RegionBucket[PointsEntry]] = {}
    schools: Dict[int, SchoolBucket[PointsEntry]] = {}

    for row in _scan_users(session):
        if len(global_entries) < limits.global_limit:
            global_entries.append(_entry(row, len(global_entries) + 1))

        if row.region_code:
            bucket = regions.get(row.region_code)
            if bucket is None:
                bucket = RegionBucket[PointsEntry](**region_bucket(row.region_code, region_lookup))
                regions[row.region_code] = bucket
            if len(bucket.entries) < limits.region_limit:
                bucket.entries.append(_entry(row, len(bucket.entries) + 1))

        if row.school_id is not None:
            school = schools.get(row.school_id)
            if school is None:
                school = SchoolBucket[PointsEntry](school_id=row.school_id, school_name=row.school_name)
                schools[row.school_id] = school
            if len(school.entries) < limits.school_limit:
                school.entries.append(_entry(row, len(school.entries) + 1))

    return PointsLeaderboardSnapshot(global_entries=global_entries, regions=regions, schools=schools)
