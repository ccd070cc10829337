"""TTL-bounded, fail-open cache for leaderboard snapshots."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Callable, Generic, Optional, Protocol, Type, TypeVar

from pydantic import ValidationError

from ..schemas.leaderboard import SnapshotMeta

logger = logging.getLogger(__name__)

MIN_TTL_SECONDS = 60
MAX_TTL_SECONDS = 3600

SnapshotT = TypeVar("SnapshotT", bound=SnapshotMeta)


def clamp_ttl(value: int) -> int:
    return max(MIN_TTL_SECONDS, min(int(value), MAX_TTL_SECONDS))


@dataclass(frozen=True)
class StoredSnapshot:
    payload: str
    stored_at: float


class SnapshotStore(Protocol):
    """Backing storage for one serialized snapshot."""

    def get(self) -> Optional[StoredSnapshot]:
        ...

    def put(self, payload: str, stored_at: float) -> None:
        ...

    def invalidate(self) -> None:
        ...


class MemorySnapshotStore:
    def __init__(self) -> None:
        self._stored: Optional[StoredSnapshot] = None

    def get(self) -> Optional[StoredSnapshot]:
        return self._stored

    def put(self, payload: str, stored_at: float) -> None:
        self._stored = StoredSnapshot(payload=payload, stored_at=stored_at)

    def invalidate(self) -> None:
        self._stored = None


class FileSnapshotStore:
    """Single JSON file; its modification time is the stored-at stamp.

    Writes go to a temporary sibling that is renamed over the target, so
    readers never observe a partially written file.
    """

    def __init__(self, path: os.PathLike) -> None:
        self.path = Path(path)

    def get(self) -> Optional[StoredSnapshot]:
        try:
            stored_at = self.path.stat().st_mtime
            payload = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return StoredSnapshot(payload=payload, stored_at=stored_at)

    def put(self, payload: str, stored_at: float) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.utime(tmp_name, (stored_at, stored_at))
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def invalidate(self) -> None:
        self.path.unlink(missing_ok=True)


class SnapshotCache(Generic[SnapshotT]):
    """Serve a snapshot while it is fresh, rebuild it when stale or forced.

    ``builder`` receives the rebuild time and returns an unstamped snapshot;
    the cache adds ``generated_at``/``expires_at``/``ttl_seconds``. Rebuild
    failures never propagate: the last stored snapshot (of any age) is
    returned, or an empty one when nothing was ever stored.
    """

    def __init__(
        self,
        *,
        name: str,
        builder: Callable[[datetime], SnapshotT],
        snapshot_type: Type[SnapshotT],
        store: SnapshotStore,
        ttl_seconds: int,
        tz: tzinfo = timezone.utc,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self.builder = builder
        self.snapshot_type = snapshot_type
        self.store = store
        self.ttl_seconds = clamp_ttl(ttl_seconds)
        self.tz = tz
        self.clock = clock

    def get_snapshot(self, force_refresh: bool = False) -> SnapshotT:
        if not force_refresh:
            cached = self._read(max_age=self.ttl_seconds)
            if cached is not None:
                return cached
        return self.rebuild_cache("auto")

    def rebuild_cache(self, reason: Optional[str] = None) -> SnapshotT:
        started = self.clock()
        now = datetime.fromtimestamp(started, self.tz)
        try:
            snapshot = self.builder(now).model_copy(
                update={
                    "generated_at": now,
                    "expires_at": now + timedelta(seconds=self.ttl_seconds),
                    "ttl_seconds": self.ttl_seconds,
                }
            )
        except Exception:
            logger.exception("failed to rebuild %s leaderboard cache (reason=%s)", self.name, reason)
            previous = self._read(max_age=None)
            return previous if previous is not None else self.empty()

        try:
            self.store.put(snapshot.model_dump_json(by_alias=True), started)
        except (OSError, ValueError) as exc:
            logger.error("failed to write %s leaderboard cache (reason=%s): %s", self.name, reason, exc)
        else:
            logger.info(
                "%s leaderboard cache written (reason=%s, global_entries=%d, took=%.3fs)",
                self.name,
                reason,
                len(snapshot.global_entries),
                self.clock() - started,
            )
        return snapshot

    def invalidate(self) -> None:
        self.store.invalidate()

    def empty(self) -> SnapshotT:
        return self.snapshot_type()

    def _read(self, *, max_age: Optional[int]) -> Optional[SnapshotT]:
        try:
            stored = self.store.get()
        except (OSError, ValueError) as exc:
            logger.warning("unable to read %s leaderboard cache: %s", self.name, exc)
            return None
        if stored is None:
            return None
        if max_age is not None and self.clock() - stored.stored_at > max_age:
            return None
        try:
            return self.snapshot_type.model_validate_json(stored.payload)
        except ValidationError as exc:
            logger.warning("discarding unreadable %s leaderboard cache: %s", self.name, exc)
            return None
