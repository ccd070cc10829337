import logging
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, text

from carbontrack.models import CheckinSource, MakeupQuota, User, UserCheckin
from carbontrack.services import checkin_service
from carbontrack.services.checkin_service import CheckinRuleViolation
from carbontrack.utils.datetime import naive_utc, normalize_date

UTC8 = timezone(timedelta(hours=8))


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def count_checkins(db, user_id):
    return db.execute(select(func.count(UserCheckin.id)).where(UserCheckin.user_id == user_id)).scalar_one()


def test_organic_checkin_is_idempotent_per_day(db, make_user):
    user = make_user()

    assert checkin_service.record_organic_checkin(db, user_id=user.id, submitted_at=utc(2026, 1, 2, 10), tz=timezone.utc)
    assert not checkin_service.record_organic_checkin(
        db, user_id=user.id, submitted_at=utc(2026, 1, 2, 20), tz=timezone.utc
    )
    assert count_checkins(db, user.id) == 1


def test_ledger_feeds_streak_stats(db, make_user):
    user = make_user()
    for moment in (utc(2026, 1, 1, 10), utc(2026, 1, 2, 10), utc(2026, 1, 2, 20), utc(2026, 1, 4, 10)):
        checkin_service.record_organic_checkin(db, user_id=user.id, submitted_at=moment, tz=timezone.utc)

    stats = checkin_service.get_user_streak_stats(db, user_id=user.id, as_of=date(2026, 1, 4))

    assert count_checkins(db, user.id) == 3
    assert stats.current_streak == 1
    assert stats.longest_streak == 2
    assert stats.total_days == 3
    assert stats.makeup_days == 0
    assert stats.last_checkin_date == date(2026, 1, 4)


def test_submission_day_follows_app_timezone(db, make_user):
    user = make_user()

    checkin_service.record_organic_checkin(db, user_id=user.id, submitted_at=utc(2026, 1, 1, 20), tz=UTC8)

    row = db.execute(select(UserCheckin).where(UserCheckin.user_id == user.id)).scalar_one()
    assert row.checkin_date == date(2026, 1, 2)
    assert row.source is CheckinSource.RECORD


def test_created_at_is_stored_as_utc(db, make_user):
    user = make_user()

    checkin_service.record_organic_checkin(
        db, user_id=user.id, submitted_at=datetime(2026, 1, 2, 4, 30, tzinfo=UTC8), tz=UTC8
    )
    checkin_service.record_makeup_checkin(
        db,
        user_id=user.id,
        checkin_date="2026-01-01",
        created_at=datetime(2026, 1, 2, 9, 0, tzinfo=UTC8),
        tz=UTC8,
    )

    rows = db.execute(
        select(UserCheckin).where(UserCheckin.user_id == user.id).order_by(UserCheckin.checkin_date)
    ).scalars().all()
    assert [row.created_at for row in rows] == [datetime(2026, 1, 2, 1, 0), datetime(2026, 1, 1, 20, 30)]
    assert rows[1].checkin_date == date(2026, 1, 2)


def test_naive_utc():
    assert naive_utc(datetime(2026, 1, 1, 3, tzinfo=UTC8)) == datetime(2025, 12, 31, 19)
    assert naive_utc(datetime(2026, 1, 1, 3)) == datetime(2026, 1, 1, 3)


def test_makeup_checkin_counts_as_makeup(db, make_user):
    user = make_user()

    assert checkin_service.record_makeup_checkin(db, user_id=user.id, checkin_date="2026-01-03", note="bike")
    assert not checkin_service.record_makeup_checkin(db, user_id=user.id, checkin_date=date(2026, 1, 3))

    stats = checkin_service.get_user_streak_stats(db, user_id=user.id, as_of=date(2026, 1, 3))
    assert stats.makeup_days == 1
    row = db.execute(select(UserCheckin).where(UserCheckin.user_id == user.id)).scalar_one()
    assert row.source is CheckinSource.MAKEUP
    assert row.notes == "bike"


def test_makeup_on_organic_day_is_not_inserted(db, make_user):
    user = make_user()
    checkin_service.record_organic_checkin(db, user_id=user.id, submitted_at=utc(2026, 1, 3, 9), tz=timezone.utc)

    assert not checkin_service.record_makeup_checkin(db, user_id=user.id, checkin_date="2026-01-03")
    assert checkin_service.has_checkin(db, user.id, date(2026, 1, 3))
    assert not checkin_service.has_checkin(db, user.id, date(2026, 1, 4))


def test_unparseable_makeup_date_is_skipped(db, make_user):
    user = make_user()

    assert not checkin_service.record_makeup_checkin(db, user_id=user.id, checkin_date="not a date")
    assert count_checkins(db, user.id) == 0


def test_insert_failure_returns_false_and_keeps_session_usable(db, make_user, caplog):
    user = make_user()
    db.execute(text("DROP TABLE user_checkins"))

    with caplog.at_level(logging.WARNING, logger="carbontrack.services.checkin_service"):
        recorded = checkin_service.record_organic_checkin(
            db, user_id=user.id, submitted_at=utc(2026, 1, 2, 10), tz=timezone.utc
        )

    assert recorded is False
    assert "checkin insert failed" in caplog.text
    assert db.execute(select(User.id).where(User.id == user.id)).scalar_one() == user.id


def test_list_checkins_is_inclusive_and_ordered(db, make_user, add_checkins):
    user = make_user()
    add_checkins(user, [date(2026, 1, 5), date(2026, 1, 1), date(2026, 1, 3), date(2026, 2, 1)])

    rows = checkin_service.list_checkins(db, user_id=user.id, start_date=date(2026, 1, 31), end_date=date(2026, 1, 1))

    assert [row.checkin_date for row in rows] == [date(2026, 1, 1), date(2026, 1, 3), date(2026, 1, 5)]


def test_list_checkins_caps_the_range(db, make_user, add_checkins):
    user = make_user()
    start = date(2025, 1, 1)
    add_checkins(user, [start, start + timedelta(days=370), start + timedelta(days=371)])

    rows = checkin_service.list_checkins(db, user_id=user.id, start_date=start, end_date=start + timedelta(days=400))

    assert [row.checkin_date for row in rows] == [start, start + timedelta(days=370)]


def test_resolve_calendar_range_variants():
    today = date(2026, 3, 15)
    tz = timezone.utc

    assert checkin_service.resolve_calendar_range(month="2026-02", today=today, tz=tz) == (
        date(2026, 2, 1),
        date(2026, 2, 28),
    )
    assert checkin_service.resolve_calendar_range(
        start_date="2026-01-10", end_date="2026-01-02", today=today, tz=tz
    ) == (date(2026, 1, 2), date(2026, 1, 10))
    assert checkin_service.resolve_calendar_range(month="bogus", today=today, tz=tz) == (
        date(2026, 3, 1),
        date(2026, 3, 31),
    )
    assert checkin_service.resolve_calendar_range(today=today, tz=tz) == (date(2026, 3, 1), date(2026, 3, 31))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2026-01-03", date(2026, 1, 3)),
        (" 2026/01/03 ", date(2026, 1, 3)),
        ("2026-01-03T23:30:00+00:00", date(2026, 1, 4)),
        ("2026-01-03T23:30:00Z", date(2026, 1, 4)),
        ("3 January 2026", date(2026, 1, 3)),
        ("", None),
        ("yesterday-ish", None),
        (None, None),
    ],
)
def test_normalize_date(raw, expected):
    assert normalize_date(raw, UTC8) == expected


class TestApplyMakeupCheckin:
    NOW = datetime(2026, 1, 10, 12, tzinfo=timezone.utc)

    def apply(self, db, user_id, raw_date):
        return checkin_service.apply_makeup_checkin(db, user_id=user_id, raw_date=raw_date, now=self.NOW)

    def test_success_charges_quota(self, db, make_user):
        user = make_user()

        assert self.apply(db, user.id, "2026-01-08") == date(2026, 1, 8)

        quota = db.execute(select(MakeupQuota).where(MakeupQuota.user_id == user.id)).scalar_one()
        assert quota.used == 1
        assert quota.monthly_limit == 3
        assert quota.month_bucket == date(2026, 1, 1)
        assert quota.updated_at == datetime(2026, 1, 10, 12)

    @pytest.mark.parametrize(
        "raw_date, code",
        [(None, "DATE_REQUIRED"), ("  ", "DATE_REQUIRED"), ("nope", "INVALID_DATE"), ("2026-01-11", "DATE_IN_FUTURE")],
    )
    def test_rejects_bad_dates(self, db, make_user, raw_date, code):
        user = make_user()

        with pytest.raises(CheckinRuleViolation) as exc:
            self.apply(db, user.id, raw_date)

        assert exc.value.status_code == 400
        assert exc.value.code == code

    def test_today_is_allowed(self, db, make_user):
        user = make_user()

        assert self.apply(db, user.id, "2026-01-10") == date(2026, 1, 10)

    def test_unknown_user(self, db):
        with pytest.raises(CheckinRuleViolation) as exc:
            self.apply(db, 404, "2026-01-08")

        assert exc.value.status_code == 404
        assert exc.value.code == "USER_NOT_FOUND"

    def test_deleted_user_is_unknown(self, db, make_user):
        user = make_user(deleted=True)

        with pytest.raises(CheckinRuleViolation) as exc:
            self.apply(db, user.id, "2026-01-08")

        assert exc.value.status_code == 404

    def test_already_checked_in(self, db, make_user, add_checkins):
        user = make_user()
        add_checkins(user, [date(2026, 1, 8)])

        with pytest.raises(CheckinRuleViolation) as exc:
            self.apply(db, user.id, "2026-01-08")

        assert exc.value.status_code == 409
        assert exc.value.code == "ALREADY_CHECKED_IN"
        assert db.execute(select(MakeupQuota)).scalar_one_or_none() is None

    def test_quota_exhausted(self, db, make_user, test_settings):
        test_settings.makeup_monthly_limit = 1
        user = make_user()
        self.apply(db, user.id, "2026-01-08")

        with pytest.raises(CheckinRuleViolation) as exc:
            self.apply(db, user.id, "2026-01-07")

        assert exc.value.status_code == 429
        assert exc.value.code == "QUOTA_EXCEEDED"
        assert not checkin_service.has_checkin(db, user.id, date(2026, 1, 7))

    def test_quota_resets_each_month(self, db, make_user, test_settings):
        test_settings.makeup_monthly_limit = 1
        user = make_user()
        self.apply(db, user.id, "2026-01-08")

        february = datetime(2026, 2, 2, 9, tzinfo=timezone.utc)
        assert checkin_service.apply_makeup_checkin(
            db, user_id=user.id, raw_date="2026-02-01", now=february
        ) == date(2026, 2, 1)
