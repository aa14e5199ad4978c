"""Tests for the daily job scheduler and the jobs the app registers."""

from datetime import timedelta

import pytest

from core.scheduler import DailyJobScheduler
from helpers import PASSWORD
from portal.app import LIFECYCLE_SCAN_JOB, RESET_TOKEN_PURGE_JOB, REVOCATION_PURGE_JOB
from portal.auth import ScanSummary


class TestDailyJobScheduler:
    def test_run_job_now_records_success(self, clock):
        scheduler = DailyJobScheduler(clock=clock)
        scheduler.add_job("answer", lambda: 42, "0 3 * * *")

        assert scheduler.run_job_now("answer") == 42

        job = scheduler.get_job("answer")
        assert job.last_status == "success"
        assert job.run_count == 1
        assert job.error_count == 0
        assert job.last_run == clock.now().isoformat()

    def test_failing_job_is_recorded_not_raised(self, clock):
        def boom():
            raise RuntimeError("smtp down")

        scheduler = DailyJobScheduler(clock=clock)
        scheduler.add_job("boom", boom, "0 3 * * *")

        assert scheduler.run_job_now("boom") is None
        job = scheduler.get_job("boom")
        assert job.last_status == "failed"
        assert job.error_count == 1
        assert "smtp down" in job.last_result

    def test_unknown_job(self, clock):
        with pytest.raises(KeyError):
            DailyJobScheduler(clock=clock).run_job_now("missing")

    def test_invalid_cron_rejected(self, clock):
        with pytest.raises(ValueError):
            DailyJobScheduler(clock=clock).add_job("bad", lambda: None, "every day")

    def test_to_dict(self, clock):
        scheduler = DailyJobScheduler(clock=clock)
        scheduler.add_job("answer", lambda: 42, "0 3 * * *")
        assert scheduler.list_jobs()[0].to_dict() == {
            "id": "answer",
            "schedule": "0 3 * * *",
            "last_run": None,
            "last_status": "pending",
            "run_count": 0,
            "error_count": 0,
        }


class TestAppJobs:
    def test_jobs_registered_but_not_started_in_tests(self, app):
        scheduler = app.extensions["scheduler"]
        assert scheduler.get_job(LIFECYCLE_SCAN_JOB).schedule == "0 8 * * *"
        assert scheduler.get_job(REVOCATION_PURGE_JOB).schedule == "0 2 * * *"
        assert scheduler.get_job(RESET_TOKEN_PURGE_JOB).schedule == "*/5 * * * *"
        assert not scheduler.running

    def test_lifecycle_job_runs_scan(self, app, app_services, notifier, clock):
        app_services.identity.create_user("erin", PASSWORD, "USER", email="erin@example.com")
        app_services.store.set_expiration_date("erin", clock.today() + timedelta(days=2))

        summary = app.extensions["scheduler"].run_job_now(LIFECYCLE_SCAN_JOB)

        assert isinstance(summary, ScanSummary)
        assert summary.warnings_sent == 1
        assert notifier.subjects() == ["Password Expiration Warning: 2 days remaining"]

    def test_purge_job_runs(self, app):
        assert app.extensions["scheduler"].run_job_now(REVOCATION_PURGE_JOB) == 0

    def test_reset_token_purge_job_drops_stale_links(self, app, app_services, clock):
        app_services.identity.create_user("erin", PASSWORD, "USER", email="erin@example.com")
        app_services.resets.request_reset("erin@example.com")
        assert len(app_services.resets) == 1

        scheduler = app.extensions["scheduler"]
        assert scheduler.run_job_now(RESET_TOKEN_PURGE_JOB) == 0
        clock.advance(minutes=15)
        assert scheduler.run_job_now(RESET_TOKEN_PURGE_JOB) == 1
        assert len(app_services.resets) == 0
