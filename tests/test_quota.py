from datetime import datetime, timedelta
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from valuation_app.quota import check_weekly_quota

NOW = datetime(2026, 3, 10, 12, 0, 0)


def test_first_report(repository):
    status = check_weekly_quota(repository, "user-456", now=NOW)

    assert status.can_create is True
    assert status.is_first_report is True
    assert status.next_available_date is None


def test_blocked_within_seven_days(repository, make_report):
    last = NOW - timedelta(days=2)
    make_report(user_id="user-456", created_at=last)

    status = check_weekly_quota(repository, "user-456", now=NOW)

    assert status.can_create is False
    assert status.is_first_report is False
    assert status.last_report_created_at == last
    assert status.hours_remaining == 120
    assert status.days_remaining == 5
    assert status.hours_remaining_after_days == 0
    assert status.next_available_date == last + timedelta(days=7)


def test_partial_hours_round_up(repository, make_report):
    make_report(user_id="user-456", created_at=NOW - timedelta(days=6, hours=20, minutes=30))

    status = check_weekly_quota(repository, "user-456", now=NOW)

    assert status.can_create is False
    assert status.hours_remaining == 4
    assert status.days_remaining == 0
    assert status.hours_remaining_after_days == 4


def test_allowed_after_seven_days(repository, make_report):
    make_report(user_id="user-456", created_at=NOW - timedelta(days=7))

    status = check_weekly_quota(repository, "user-456", now=NOW)

    assert status.can_create is True
    assert status.hours_remaining == 0


def test_uses_most_recent_report(repository, make_report):
    make_report(user_id="user-456", created_at=NOW - timedelta(days=30))
    make_report(user_id="user-456", created_at=NOW - timedelta(hours=1))

    assert check_weekly_quota(repository, "user-456", now=NOW).can_create is False


def test_other_users_reports_do_not_count(repository, make_report):
    make_report(user_id="someone-else", created_at=NOW - timedelta(hours=1))
    make_report(user_id=None, created_at=NOW - timedelta(hours=1))

    status = check_weekly_quota(repository, "user-456", now=NOW)

    assert status.can_create is True
    assert status.is_first_report is True


def test_storage_fault_fails_open():
    repository = MagicMock()
    repository.latest_report_for_user.side_effect = OperationalError(
        "SELECT", {}, Exception("database is locked")
    )

    status = check_weekly_quota(repository, "user-456", now=NOW)

    assert status.can_create is True
    assert status.error == "Check failed"
