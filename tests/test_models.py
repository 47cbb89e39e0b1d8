"""Tests for marketplace data models."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from gigmarket.applications.models import Application, ApplicationStatus
from gigmarket.earnings.models import Earning, EarningStatus
from gigmarket.jobs.models import (
    TERMINAL_STATUSES,
    VALID_JOB_TRANSITIONS,
    Job,
    JobStateTransition,
    JobStatus,
    normalize_skills,
)
from gigmarket.payments.models import Payment, PaymentKind, PaymentStatus
from gigmarket.reviews.models import Review
from gigmarket.tasks.models import Task


def _job(**overrides) -> Job:
    values = {
        "id": "job-1",
        "poster_id": "poster-1",
        "title": "Paint a fence",
        "description": "Two coats, white",
        "payment_amount": Decimal("80.00"),
    }
    values.update(overrides)
    return Job(**values)


class TestJob:
    """Tests for Job dataclass."""

    def test_create_basic_job(self):
        job = _job()
        assert job.status == "open"
        assert job.payment_type == "fixed"
        assert job.service_fee == Decimal("2.50")
        assert job.worker_id is None
        assert job.version == 1

    def test_total_amount_is_payment_plus_fee(self):
        job = _job(payment_amount=Decimal("100"), service_fee=Decimal("2.5"))
        assert job.total_amount == Decimal("102.50")

    def test_money_is_rounded_to_cents(self):
        job = _job(payment_amount="19.999", service_fee=1.005)
        assert job.payment_amount == Decimal("20.00")
        assert job.service_fee.as_tuple().exponent == -2

    def test_status_enum_stored_as_value(self):
        job = _job(status=JobStatus.PENDING_PAYMENT)
        assert job.status == "pending_payment"

    def test_invalid_status(self):
        with pytest.raises(ValueError, match="Invalid status"):
            _job(status="flying")

    def test_empty_title(self):
        with pytest.raises(ValueError, match="Title cannot be empty"):
            _job(title="   ")

    def test_title_too_long(self):
        with pytest.raises(ValueError, match="Title too long"):
            _job(title="x" * 201)

    def test_payment_must_be_positive(self):
        with pytest.raises(ValueError, match="Payment amount must be positive"):
            _job(payment_amount=Decimal("0"))

    def test_negative_fee_rejected(self):
        with pytest.raises(ValueError, match="Service fee cannot be negative"):
            _job(service_fee=Decimal("-1"))

    def test_latitude_range(self):
        with pytest.raises(ValueError, match="Latitude"):
            _job(latitude=91.0)

    def test_assigned_job_requires_worker(self):
        with pytest.raises(ValueError, match="must have a worker"):
            _job(status="assigned")

    def test_open_job_cannot_have_worker(self):
        with pytest.raises(ValueError, match="cannot have a worker"):
            _job(worker_id="worker-1")

    def test_skills_normalized(self):
        job = _job(required_skills=["Lifting", " lifting ", "", "Driving"])
        assert job.required_skills == ["lifting", "driving"]

    def test_is_party(self):
        job = _job(status="assigned", worker_id="worker-1")
        assert job.is_party("poster-1")
        assert job.is_party("worker-1")
        assert not job.is_party("someone-else")
        assert not job.is_party(None)

    def test_to_dict_uses_floats_and_iso_dates(self):
        posted = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        data = _job(date_posted=posted).to_dict()
        assert data["payment_amount"] == 80.0
        assert data["total_amount"] == 82.5
        assert data["date_posted"].startswith("2024-05-01T12:00:00")

    def test_from_dict_round_trip(self):
        job = _job(status="in_progress", worker_id="worker-1", required_skills=["painting"])
        restored = Job.from_dict(job.to_dict())
        assert restored == job


class TestJobTransitions:
    """Tests for the job status table."""

    def test_terminal_statuses_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert VALID_JOB_TRANSITIONS.get(status, set()) == set()

    def test_happy_path_is_allowed(self):
        path = [
            JobStatus.PENDING_PAYMENT,
            JobStatus.OPEN,
            JobStatus.ASSIGNED,
            JobStatus.IN_PROGRESS,
            JobStatus.COMPLETED,
        ]
        for current, nxt in zip(path, path[1:]):
            assert nxt in VALID_JOB_TRANSITIONS[current]

    def test_payment_failed_can_retry_or_cancel(self):
        job = _job(status="payment_failed")
        assert job.can_transition_to(JobStatus.OPEN)
        assert job.can_transition_to(JobStatus.CANCELED)
        assert not job.can_transition_to(JobStatus.ASSIGNED)

    def test_cannot_skip_assignment(self):
        assert not _job().can_transition_to(JobStatus.IN_PROGRESS)

    def test_cancelable(self):
        assert _job().is_cancelable
        assert _job(status="in_progress", worker_id="w").is_cancelable
        assert not _job(status="completed", worker_id="w").is_cancelable
        assert not _job(status="canceled").is_cancelable


class TestApplication:
    """Tests for Application dataclass."""

    def test_defaults(self):
        app = Application(id="app-1", job_id="job-1", worker_id="worker-1")
        assert app.is_pending
        assert app.is_live
        assert app.message == ""

    def test_only_pending_can_change(self):
        app = Application(id="app-1", job_id="job-1", worker_id="worker-1", status="rejected")
        assert not app.can_transition_to(ApplicationStatus.ACCEPTED)
        assert not app.is_live

    def test_hourly_rate_must_be_positive(self):
        with pytest.raises(ValueError):
            Application(id="app-1", job_id="job-1", worker_id="worker-1", hourly_rate=Decimal("0"))


class TestTask:
    """Tests for Task dataclass."""

    def test_required_task_is_outstanding_until_done(self):
        task = Task(id="t-1", job_id="job-1", description="Sweep")
        assert task.is_outstanding
        task.is_completed = True
        assert not task.is_outstanding

    def test_optional_task_never_outstanding(self):
        task = Task(id="t-1", job_id="job-1", description="Tidy", is_optional=True)
        assert not task.is_outstanding

    def test_blank_description_rejected(self):
        with pytest.raises(ValueError):
            Task(id="t-1", job_id="job-1", description="  ")

    def test_negative_position_rejected(self):
        with pytest.raises(ValueError):
            Task(id="t-1", job_id="job-1", description="Sweep", position=-1)


class TestEarningPaymentReview:
    """Tests for money records and reviews."""

    def test_earning_defaults_to_pending(self):
        earning = Earning(id="e-1", job_id="job-1", worker_id="worker-1", amount="100")
        assert earning.status == EarningStatus.PENDING.value
        assert earning.amount == Decimal("100.00")

    def test_payment_kind_and_status(self):
        payment = Payment(
            id="p-1",
            job_id="job-1",
            payer_id="poster-1",
            kind=PaymentKind.CHARGE,
            amount=Decimal("102.50"),
            status=PaymentStatus.SUCCEEDED,
        )
        assert payment.kind == "charge"
        assert payment.succeeded

    def test_review_rating_bounds(self):
        with pytest.raises(ValueError, match="Rating"):
            Review(id="r-1", job_id="job-1", reviewer_id="a", reviewee_id="b", rating=6)

    def test_review_self_rejected(self):
        with pytest.raises(ValueError, match="Cannot review yourself"):
            Review(id="r-1", job_id="job-1", reviewer_id="a", reviewee_id="a", rating=5)

    def test_transition_to_dict(self):
        transition = JobStateTransition(
            id="tr-1", job_id="job-1", to_status="open", actor_id="poster-1", metadata={"k": "v"}
        )
        data = transition.to_dict()
        assert data["from_status"] is None
        assert data["metadata"] == {"k": "v"}


def test_normalize_skills_handles_none():
    assert normalize_skills(None) == []
