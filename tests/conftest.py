import os
from datetime import date, datetime
from typing import Dict, Iterable, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# The app module builds its engine at import time; keep it off PostgreSQL.
os.environ.setdefault("CARBONTRACK_DATABASE_URL", "sqlite+pysqlite:///:memory:")

from carbontrack.core.config import get_settings  # noqa: E402
from carbontrack.core.database import Base  # noqa: E402
from carbontrack.models import Avatar, CheckinSource, School, User, UserCheckin  # noqa: E402
from carbontrack.services.region_service import RegionContext  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # pysqlite's implicit transaction handling breaks SAVEPOINT; take over BEGIN.
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def test_settings(tmp_path, monkeypatch):
    """Point caches at a temp dir and pin the knobs tests rely on."""

    settings = get_settings()
    monkeypatch.setattr(settings, "cache_dir", str(tmp_path / "cache"))
    monkeypatch.setattr(settings, "app_timezone", "UTC")
    monkeypatch.setattr(settings, "leaderboard_trigger_key", "")
    monkeypatch.setattr(settings, "makeup_monthly_limit", 3)
    monkeypatch.setattr(settings, "leaderboard_cache_ttl", 600)
    monkeypatch.setattr(settings, "streak_leaderboard_cache_ttl", 600)
    return settings


class FakeRegionLookup:
    def __init__(self, labels: Optional[Dict[str, str]] = None) -> None:
        self.labels = labels or {}
        self.calls = []

    def get_region_context(self, region_code):
        self.calls.append(region_code)
        label = self.labels.get(region_code)
        if label is None:
            return None
        country, state = region_code.split("-")
        return RegionContext(
            region_code=region_code,
            country_code=country,
            state_code=state,
            region_label=label,
        )


@pytest.fixture
def region_lookup():
    return FakeRegionLookup({"CN-GD": "China · Guangdong", "US-CA": "United States · California"})


@pytest.fixture
def make_school(db):
    def _make(name: str) -> School:
        school = School(name=name)
        db.add(school)
        db.flush()
        return school

    return _make


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(
        username: Optional[str] = None,
        *,
        points: float = 0,
        region_code: Optional[str] = None,
        school: Optional[School] = None,
        avatar_path: Optional[str] = None,
        deleted: bool = False,
        user_id: Optional[int] = None,
    ) -> User:
        counter["n"] += 1
        avatar = None
        if avatar_path:
            avatar = Avatar(name=f"avatar-{counter['n']}", file_path=avatar_path)
            db.add(avatar)
            db.flush()
        user = User(
            id=user_id,
            username=username or f"user{counter['n']}",
            points=points,
            region_code=region_code,
            school_id=school.id if school else None,
            avatar_id=avatar.id if avatar else None,
            deleted_at=datetime(2025, 1, 1) if deleted else None,
        )
        db.add(user)
        db.flush()
        return user

    return _make


@pytest.fixture
def add_checkins(db):
    def _add(user: User, days: Iterable[date], source: CheckinSource = CheckinSource.RECORD) -> None:
        for day in days:
            db.add(UserCheckin(user_id=user.id, checkin_date=day, source=source))
        db.flush()

    return _add
