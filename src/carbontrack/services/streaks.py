"""Streak arithmetic over ordered checkin dates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional


@dataclass(frozen=True)
class StreakState:
    """Derived streak figures for one user; never persisted."""

    current_streak: int = 0
    longest_streak: int = 0
    total_days: int = 0
    makeup_days: int = 0
    last_checkin_date: Optional[date] = None
    active_today: bool = False


@dataclass
class StreakAccumulator:
    """Running totals for one user's ascending checkin dates."""

    last_date: Optional[date] = None
    current_run: int = 0
    longest_run: int = 0
    total: int = 0

    def add(self, day: date) -> None:
        if self.last_date is None:
            self.last_date = day
            self.current_run = 1
            self.longest_run = 1
            self.total = 1
            return

        diff = (day - self.last_date).days
        if diff == 0:
            return
        if diff == 1:
            self.current_run += 1
        else:
            self.current_run = 1
        self.longest_run = max(self.longest_run, self.current_run)
        self.total += 1
        self.last_date = day

    def current_streak(self, today: date) -> int:
        """Run ending at the last checkin, counted only if it reaches today or yesterday."""

        if self.last_date is None:
            return 0
        if self.last_date in (today, today - timedelta(days=1)):
            return self.current_run
        return 0

    def longest_streak(self) -> int:
        return max(self.longest_run, self.current_run)


def compute_streak(dates: Iterable[date], as_of: date, *, makeup_days: int = 0) -> StreakState:
    """Compute streak figures from ascending ``dates`` as seen on ``as_of``."""

    acc = StreakAccumulator()
    for day in dates:
        acc.add(day)

    if acc.last_date is None:
        return StreakState(makeup_days=makeup_days)

    return StreakState(
        current_streak=acc.current_streak(as_of),
        longest_streak=acc.longest_streak(),
        total_days=acc.total,
        makeup_days=makeup_days,
        last_checkin_date=acc.last_date,
        active_today=acc.last_date == as_of,
    )
