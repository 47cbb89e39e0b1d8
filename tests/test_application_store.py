"""Tests for the application store."""

from decimal import Decimal

import pytest

from gigmarket.applications.models import ApplicationStatus
from gigmarket.applications.store import ApplicationStore
from gigmarket.config import MarketplaceConfig
from gigmarket.errors import (
    ApplicationNotFoundError,
    DuplicateApplicationError,
    InvalidRequestError,
    InvalidTransitionError,
    JobNotFoundError,
    JobNotOpenError,
    UnauthorizedError,
)
from gigmarket.jobs.models import JobStatus
from gigmarket.jobs.store import JobStore

from support import OTHER_WORKER, POSTER, WORKER, make_draft


@pytest.fixture
def jobs(storage):
    return JobStore(storage, MarketplaceConfig(require_upfront_payment=False))


@pytest.fixture
def applications(storage, jobs):
    return ApplicationStore(storage, jobs)


@pytest.fixture
def job(jobs):
    return jobs.create_job(make_draft(), POSTER)


class TestApply:
    """Tests for submitting applications."""

    def test_apply(self, applications, job):
        app = applications.apply(job.id, WORKER, "Available Saturday", hourly_rate=Decimal("25"))
        assert app.status == "pending"
        assert app.hourly_rate == Decimal("25.00")
        assert app.date_applied is not None
        assert applications.get(app.id).message == "Available Saturday"

    def test_message_optional(self, applications, job):
        assert applications.apply(job.id, WORKER).message == ""

    def test_unknown_job(self, applications):
        with pytest.raises(JobNotFoundError):
            applications.apply("missing", WORKER)

    def test_job_not_open(self, applications, jobs):
        pending = JobStore(jobs.storage, MarketplaceConfig()).create_job(make_draft(), POSTER)
        with pytest.raises(JobNotOpenError):
            applications.apply(pending.id, WORKER)

    def test_poster_cannot_apply(self, applications, job):
        with pytest.raises(UnauthorizedError, match="your own job"):
            applications.apply(job.id, POSTER)

    def test_duplicate_application(self, applications, job):
        applications.apply(job.id, WORKER)
        with pytest.raises(DuplicateApplicationError):
            applications.apply(job.id, WORKER, "Second try")
        assert len(applications.list_for_job(job.id)) == 1

    def test_reapply_after_rejection(self, applications, job):
        first = applications.apply(job.id, WORKER)
        applications.set_status(first.id, ApplicationStatus.REJECTED)
        second = applications.apply(job.id, WORKER, "Please reconsider")
        assert second.id != first.id

    def test_invalid_rate_wrapped(self, applications, job):
        with pytest.raises(InvalidRequestError):
            applications.apply(job.id, WORKER, hourly_rate=Decimal("-5"))


class TestDecisions:
    """Tests for accepting and rejecting."""

    def test_set_status_once(self, applications, job):
        app = applications.apply(job.id, WORKER)
        rejected = applications.set_status(app.id, "rejected")
        assert rejected.status == "rejected"
        assert rejected.decided_at is not None
        with pytest.raises(InvalidTransitionError):
            applications.set_status(app.id, ApplicationStatus.ACCEPTED)

    def test_invalid_status(self, applications, job):
        app = applications.apply(job.id, WORKER)
        with pytest.raises(InvalidRequestError):
            applications.set_status(app.id, "withdrawn")

    def test_missing_application(self, applications):
        with pytest.raises(ApplicationNotFoundError):
            applications.set_status("missing", ApplicationStatus.ACCEPTED)

    def test_reject_pending_siblings(self, applications, job):
        keep = applications.apply(job.id, WORKER)
        other = applications.apply(job.id, OTHER_WORKER)
        third = applications.apply(job.id, "worker-3")
        applications.set_status(third.id, ApplicationStatus.REJECTED)

        rejected = applications.reject_pending_siblings(job.id, keep.id)

        assert [a.id for a in rejected] == [other.id]
        assert applications.get(keep.id).status == "pending"
        assert applications.get(other.id).status == "rejected"


class TestListing:
    def test_list_for_job_and_worker(self, applications, jobs, job):
        second_job = jobs.create_job(make_draft(title="Second"), POSTER)
        applications.apply(job.id, WORKER)
        applications.apply(second_job.id, WORKER)
        applications.apply(job.id, OTHER_WORKER)

        assert len(applications.list_for_job(job.id)) == 2
        assert {a.job_id for a in applications.list_for_worker(WORKER)} == {job.id, second_job.id}
        assert applications.list_for_job(job.id, status=ApplicationStatus.ACCEPTED) == []

    def test_list_for_missing_job(self, applications):
        with pytest.raises(JobNotFoundError):
            applications.list_for_job("missing")

    def test_closed_job_rejects_applications(self, applications, jobs, job):
        jobs.update_status(job.id, JobStatus.CANCELED, POSTER)
        with pytest.raises(JobNotOpenError):
            applications.apply(job.id, WORKER)
