"""Streak leaderboard built from one ordered pass over the checkin ledger."""

from __future__ import annotations

from datetime import date
from itertools import groupby
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Avatar, School, User, UserCheckin
from ..schemas.leaderboard import (
    RegionBucket,
    SchoolBucket,
    StreakEntry,
    StreakLeaderboardSnapshot,
    StreakRankLookup,
    StreakRanks,
)
from .points_leaderboard import BoardLimits, region_bucket
from .region_service import RegionLookup
from .streaks import StreakAccumulator


class CheckinRow(NamedTuple):
    """One row of the checkins/users/schools/avatars join."""

    user_id: int
    checkin_date: date
    username: Optional[str]
    region_code: Optional[str]
    school_id: Optional[int]
    school_name: Optional[str]
    avatar_id: Optional[int]
    avatar_path: Optional[str]


def _scan_checkins(session: Session) -> Iterator[CheckinRow]:
    stmt = (
        select(
            UserCheckin.user_id,
            UserCheckin.checkin_date,
            User.username,
            User.region_code,
            User.school_id,
            School.name,
            User.avatar_id,
            Avatar.file_path,
        )
        .join(User, (User.id == UserCheckin.user_id) & User.deleted_at.is_(None))
        .outerjoin(School, School.id == User.school_id)
        .outerjoin(Avatar, Avatar.id == User.avatar_id)
        .order_by(UserCheckin.user_id.asc(), UserCheckin.checkin_date.asc())
    )
    for row in session.execute(stmt):
        if not row[0] or row[0] <= 0 or row[1] is None:
            continue
        yield CheckinRow(
            user_id=int(row[0]),
            checkin_date=row[1],
            username=row[2],
            region_code=row[3] or None,
            school_id=row[4] if row[4] and row[4] > 0 else None,
            school_name=row[5],
            avatar_id=row[6],
            avatar_path=row[7],
        )


def _flush(first: CheckinRow, acc: StreakAccumulator, today: date) -> StreakEntry:
    return StreakEntry(
        user_id=first.user_id,
        display_name=first.username,
        avatar_id=first.avatar_id,
        avatar_path=first.avatar_path,
        region_code=first.region_code,
        school_id=first.school_id,
        school_name=first.school_name,
        current_streak=acc.current_streak(today),
        longest_streak=acc.longest_streak(),
        total_checkins=acc.total,
        last_checkin_date=acc.last_date,
    )


def aggregate_streaks(rows: Iterable[CheckinRow], today: date) -> List[StreakEntry]:
    """Fold rows ordered by ``(user_id, checkin_date)`` into one entry per user."""

    entries = []
    for _, user_rows in groupby(rows, key=lambda row: row.user_id):
        acc = StreakAccumulator()
        first = None
        for row in user_rows:
            first = first or row
            acc.add(row.checkin_date)
        if first is not None and acc.last_date is not None:
            entries.append(_flush(first, acc, today))
    return entries


def streak_sort_key(entry: StreakEntry) -> Tuple[int, int, int, int, int]:
    return (
        -entry.current_streak,
        -entry.longest_streak,
        -entry.total_checkins,
        -entry.last_checkin_date.toordinal(),
        entry.user_id,
    )


def sort_entries(entries: Iterable[StreakEntry]) -> List[StreakEntry]:
    return sorted(entries, key=streak_sort_key)


def limit_entries(sorted_entries: Sequence[StreakEntry], limit: int) -> List[StreakEntry]:
    """Top ``limit`` entries as copies carrying their position as ``rank``."""

    return [
        entry.model_copy(update={"rank": index})
        for index, entry in enumerate(sorted_entries[:limit], start=1)
    ]


def build_ranks(sorted_entries: Sequence[StreakEntry]) -> Dict[int, int]:
    return {entry.user_id: index for index, entry in enumerate(sorted_entries, start=1)}


def build_streak_snapshot(
    session: Session,
    *,
    region_lookup: RegionLookup,
    today: date,
    limits: BoardLimits = BoardLimits(),
) -> StreakLeaderboardSnapshot:
    """Rank every user with at least one checkin.

    Each scope is sorted independently with the same comparator; listings are
    truncated to the scope limit while ``ranks`` keeps every user.
    """

    entries = aggregate_streaks(_scan_checkins(session), today)

    global_sorted = sort_entries(entries)
    ranks = StreakRanks(global_ranks=build_ranks(global_sorted))

    region_members: Dict[str, List[StreakEntry]] = {}
    school_members: Dict[int, List[StreakEntry]] = {}
    for entry in entries:
        if entry.region_code:
            region_members.setdefault(entry.region_code, []).append(entry)
        if entry.school_id is not None:
            school_members.setdefault(entry.school_id, []).append(entry)

    regions: Dict[str, RegionBucket[StreakEntry]] = {}
    for code, members in region_members.items():
        ordered = sort_entries(members)
        regions[code] = RegionBucket[StreakEntry](
            **region_bucket(code, region_lookup),
            entries=limit_entries(ordered, limits.region_limit),
        )
        ranks.regions[code] = build_ranks(ordered)

    schools: Dict[int, SchoolBucket[StreakEntry]] = {}
    for school_id, members in school_members.items():
        ordered = sort_entries(members)
        schools[school_id] = SchoolBucket[StreakEntry](
            school_id=school_id,
            school_name=members[0].school_name,
            entries=limit_entries(ordered, limits.school_limit),
        )
        ranks.schools[school_id] = build_ranks(ordered)

    return StreakLeaderboardSnapshot(
        global_entries=limit_entries(global_sorted, limits.global_limit),
        regions=regions,
        schools=schools,
        ranks=ranks,
    )


def _find_entry(snapshot: StreakLeaderboardSnapshot, user_id: int) -> Optional[StreakEntry]:
    for entry in snapshot.global_entries:
        if entry.user_id == user_id:
            return entry
    for bucket in list(snapshot.regions.values()) + list(snapshot.schools.values()):
        for entry in bucket.entries:
            if entry.user_id == user_id:
                return entry
    return None


def streak_rank_for(
    snapshot: StreakLeaderboardSnapshot,
    *,
    user_id: int,
    region_code: Optional[str] = None,
    school_id: Optional[int] = None,
) -> StreakRankLookup:
    """Answer "what is my rank" from the snapshot's rank maps.

    ``region_code``/``school_id`` default to whatever the snapshot knows about
    the user; buckets the user is missing from yield ``None``.
    """

    if region_code is None or school_id is None:
        known = _find_entry(snapshot, user_id)
        if known is None:
            known_region = next(
                (code for code, members in snapshot.ranks.regions.items() if user_id in members), None
            )
            known_school = next(
                (sid for sid, members in snapshot.ranks.schools.items() if user_id in members), None
            )
        else:
            known_region, known_school = known.region_code, known.school_id
        region_code = region_code if region_code is not None else known_region
        school_id = school_id if school_id is not None else known_school

    region_rank = snapshot.ranks.regions.get(region_code, {}).get(user_id) if region_code else None
    school_rank = snapshot.ranks.schools.get(school_id, {}).get(user_id) if school_id is not None else None
    return StreakRankLookup(
        user_id=user_id,
        global_rank=snapshot.ranks.global_ranks.get(user_id),
        region_code=region_code,
        region_rank=region_rank,
        school_id=school_id,
        school_rank=school_rank,
        generated_at=snapshot.generated_at,
    )
