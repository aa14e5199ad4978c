"""Tests for password expiry classification and the daily lifecycle scan."""

from datetime import date, timedelta

import pytest

from portal.auth import (
    Active,
    Expired,
    ExpiredNotice,
    ExpiringSoon,
    is_password_expired,
    password_state,
    urgency,
)
from portal.auth.lifecycle import EXPIRED_SUBJECT

TODAY = date(2026, 3, 2)


class TestPasswordState:
    @pytest.mark.parametrize("offset,expected", [
        (30, Active()),
        (8, Active()),
        (7, ExpiringSoon(7)),
        (5, ExpiringSoon(5)),
        (1, ExpiringSoon(1)),
        (0, Active()),
        (-1, ExpiredNotice()),
        (-2, Expired()),
        (-400, Expired()),
    ])
    def test_classification(self, offset, expected):
        assert password_state(TODAY, TODAY + timedelta(days=offset)) == expected

    def test_no_expiration_date_is_active(self):
        assert password_state(TODAY, None) == Active()

    def test_custom_warning_window(self):
        assert password_state(TODAY, TODAY + timedelta(days=10), warning_days=14) == ExpiringSoon(10)

    def test_expired_only_after_the_date(self, make_user, services):
        user = make_user("dana")
        services.store.set_expiration_date("dana", TODAY)
        user = services.store.require_user("dana")
        assert not is_password_expired(user, TODAY)
        assert is_password_expired(user, TODAY + timedelta(days=1))


class TestUrgency:
    def test_one_day(self):
        assert urgency(1).startswith("URGENT")

    @pytest.mark.parametrize("days", [2, 3])
    def test_two_or_three_days(self, days):
        assert urgency(days) == f"IMPORTANT: Your password expires in {days} days!"

    def test_four_or_more_days(self):
        assert urgency(6) == "Your password will expire in 6 days."


class TestLifecycleScan:
    def test_warning_five_days_out(self, services, notifier, make_user, expire_password):
        make_user("erin", firstname="Erin", lastname="Moss")
        expire_password("erin", 5)

        summary = services.lifecycle.scan()

        assert summary.warnings_sent == 1
        assert summary.expired_notices_sent == 0
        recipient, subject, body = notifier.sent[0]
        assert recipient == "erin@example.com"
        assert subject == "Password Expiration Warning: 5 days remaining"
        assert "Hello Erin Moss" in body
        assert "will expire in 5 days" in body

    def test_singular_day(self, services, notifier, make_user, expire_password):
        make_user("erin")
        expire_password("erin", 1)
        services.lifecycle.scan()
        assert notifier.subjects() == ["Password Expiration Warning: 1 day remaining"]

    def test_expired_yesterday_gets_one_notice(self, services, notifier, make_user, expire_password):
        make_user("erin")
        expire_password("erin", -1)
        summary = services.lifecycle.scan()
        assert summary.expired_notices_sent == 1
        assert notifier.subjects() == [EXPIRED_SUBJECT]

    def test_expired_two_days_ago_gets_nothing(self, services, notifier, make_user, expire_password):
        make_user("erin")
        expire_password("erin", -2)
        summary = services.lifecycle.scan()
        assert summary.expired_notices_sent == 0
        assert notifier.sent == []

    def test_exactly_one_notice_across_daily_runs(self, services, notifier, clock, make_user, expire_password):
        make_user("erin")
        expire_password("erin", 3)
        for offset in range(10):
            services.lifecycle.scan(today=clock.today() + timedelta(days=offset))
        assert notifier.subjects().count(EXPIRED_SUBJECT) == 1
        # 3, 2 and 1 days remaining
        assert len(notifier.sent) == 4

    def test_skipped_accounts(self, services, notifier, make_user, expire_password):
        make_user("guest1", role="GUEST")
        make_user("gone")
        make_user("stuck")
        make_user("silent")
        for name in ("guest1", "gone", "stuck", "silent"):
            expire_password(name, 2)
        services.identity.set_enabled("gone", False)
        services.store.increment_failed_login("stuck", 1)
        services.store.set_email("silent", None)

        summary = services.lifecycle.scan()

        assert summary.checked == 4
        assert summary.skipped == 4
        assert summary.failed == 0
        assert notifier.sent == []

    def test_never_expiring_password_skipped(self, services, notifier, make_user):
        make_user("erin")
        services.store.set_expiration_date("erin", None)
        summary = services.lifecycle.scan()
        assert summary.skipped == 1
        assert notifier.sent == []

    def test_delivery_failure_counted_and_batch_continues(self, services, notifier, make_user, expire_password):
        make_user("erin")
        make_user("finn")
        expire_password("erin", 2)
        expire_password("finn", 2)
        notifier.fail_for.add("erin@example.com")

        summary = services.lifecycle.scan()

        assert summary.failed == 1
        assert summary.failures == ["erin"]
        assert summary.warnings_sent == 1
        assert notifier.sent[0][0] == "finn@example.com"

    def test_summary_exposes_counts_only(self, services, make_user, expire_password):
        make_user("erin")
        expire_password("erin", 2)
        data = services.lifecycle.scan().to_dict()
        assert data == {
            "checked": 1,
            "warnings_sent": 1,
            "expired_notices_sent": 0,
            "skipped": 0,
            "failed": 0,
        }
