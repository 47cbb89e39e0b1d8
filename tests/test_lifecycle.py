"""End-to-end tests for the lifecycle controller."""

import threading
from decimal import Decimal

import pytest

from gigmarket.errors import (
    DuplicateApplicationError,
    IncompleteTasksError,
    InvalidRequestError,
    InvalidTransitionError,
    JobNotOpenError,
    MarketplaceError,
    NotFoundError,
    PaymentGatewayError,
    PayoutAccountRequiredError,
    UnauthorizedError,
)
from gigmarket.jobs.models import PaymentType
from gigmarket.lifecycle import PAYMENT_PENDING_MESSAGE, PAYMENT_SENT_MESSAGE, LifecycleController
from gigmarket.payments.gateway import InMemoryPaymentGateway
from gigmarket.payments.models import PaymentKind
from gigmarket.storage import SQLiteStorage

from support import CARD, DECLINED_CARD, OTHER_WORKER, POSTER, STRANGER, WORKER, make_draft


def _finish(controller, job):
    controller.complete_all_tasks(job.id, WORKER)
    return controller.complete_job(job.id, WORKER)


class TestHappyPath:
    """A job from posting to payout."""

    def test_full_lifecycle(self, controller, gateway):
        job = controller.post_job(POSTER, make_draft(), tasks=["Load truck", "Unload truck"], payment_method_id=CARD)
        assert job.status == "open"
        assert job.service_fee == Decimal("2.50")
        assert job.total_amount == Decimal("102.50")

        mine = controller.apply_to_job(job.id, WORKER, "I have a truck")
        theirs = controller.apply_to_job(job.id, OTHER_WORKER, "Me too")
        with pytest.raises(DuplicateApplicationError):
            controller.apply_to_job(job.id, WORKER, "Again")

        job, accepted = controller.accept_application(mine.id, POSTER)
        assert job.status == "assigned"
        assert job.worker_id == WORKER
        assert accepted.status == "accepted"
        assert controller.applications.get(theirs.id).status == "rejected"

        tasks = controller.list_tasks(job.id)
        for task in tasks:
            controller.complete_task(task.id, WORKER)
        assert controller.get_job(job.id).status == "in_progress"

        result = controller.complete_job(job.id, WORKER)
        assert result.job.status == "completed"
        assert result.payment_status == "paid"
        assert result.message == PAYMENT_SENT_MESSAGE
        assert result.earning.amount == Decimal("100.00")
        assert result.earning.transaction_id in gateway.transfers

        statuses = [(t.from_status, t.to_status) for t in controller.get_job_history(job.id)]
        assert statuses == [
            (None, "pending_payment"),
            ("pending_payment", "open"),
            ("open", "assigned"),
            ("assigned", "in_progress"),
            ("in_progress", "completed"),
        ]

    def test_completion_is_idempotent(self, controller, gateway, assigned_job):
        first = _finish(controller, assigned_job)
        second = controller.complete_job(assigned_job.id, WORKER)
        assert second.already_completed is True
        assert second.earning.id == first.earning.id
        assert len(gateway.transfers) == 1
        assert len(controller.list_earnings_for_job(assigned_job.id, POSTER)) == 1

    def test_job_without_tasks_completes(self, controller):
        job = controller.post_job(POSTER, make_draft(), payment_method_id=CARD)
        application = controller.apply_to_job(job.id, WORKER)
        controller.accept_application(application.id, POSTER)
        assert controller.complete_job(job.id, WORKER).job.status == "completed"

    def test_hourly_job_opens_without_payment(self, controller):
        job = controller.post_job(POSTER, make_draft(payment_type=PaymentType.HOURLY))
        assert job.status == "open"


class TestCompletionGating:
    def test_outstanding_tasks_block_completion(self, controller, assigned_job):
        first = controller.list_tasks(assigned_job.id)[0]
        controller.complete_task(first.id, WORKER)
        with pytest.raises(IncompleteTasksError) as exc_info:
            controller.complete_job(assigned_job.id, WORKER)
        assert len(exc_info.value.outstanding) == 2
        assert controller.get_job(assigned_job.id).status == "in_progress"
        assert controller.earnings.list_for_job(assigned_job.id) == []

    def test_only_assigned_worker_completes(self, controller, assigned_job):
        controller.complete_all_tasks(assigned_job.id, WORKER)
        with pytest.raises(UnauthorizedError):
            controller.complete_job(assigned_job.id, OTHER_WORKER)
        with pytest.raises(UnauthorizedError):
            controller.complete_job(assigned_job.id, POSTER)

    def test_open_job_cannot_be_completed(self, controller, open_job):
        with pytest.raises(UnauthorizedError):
            controller.complete_job(open_job.id, WORKER)

    def test_task_completion_starts_job_implicitly(self, controller, assigned_job):
        task = controller.list_tasks(assigned_job.id)[0]
        controller.complete_task(task.id, WORKER)
        last = controller.get_job_history(assigned_job.id)[-1]
        assert last.to_status == "in_progress"
        assert last.metadata == {"implicit": True}

    def test_only_worker_completes_tasks(self, controller, assigned_job):
        task = controller.list_tasks(assigned_job.id)[0]
        with pytest.raises(UnauthorizedError):
            controller.complete_task(task.id, POSTER)
        assert not controller.tasks.get(task.id).is_completed

    def test_explicit_start(self, controller, assigned_job):
        job = controller.start_job(assigned_job.id, WORKER)
        assert job.status == "in_progress"
        with pytest.raises(InvalidTransitionError):
            controller.start_job(assigned_job.id, WORKER)


class TestPayouts:
    """Payout failures leave earnings pending, never undo completion."""

    def test_failed_payout_leaves_earning_pending(self, controller, gateway, assigned_job):
        gateway.fail_payouts = True
        result = _finish(controller, assigned_job)
        assert result.job.status == "completed"
        assert result.payment_status == "pending"
        assert result.message == PAYMENT_PENDING_MESSAGE
        transfers = [p for p in controller.ledger.list_for_job(assigned_job.id) if p.kind == "transfer"]
        assert [p.status for p in transfers] == ["failed"]

    def test_retry_payout(self, controller, gateway, assigned_job):
        gateway.fail_payouts = True
        earning = _finish(controller, assigned_job).earning

        with pytest.raises(PaymentGatewayError):
            controller.retry_payout(earning.id, WORKER)
        assert controller.earnings.get(earning.id).is_pending

        gateway.fail_payouts = False
        paid = controller.retry_payout(earning.id, WORKER)
        assert paid.status == "paid"
        assert paid.date_paid is not None
        with pytest.raises(InvalidTransitionError):
            controller.retry_payout(earning.id)

    def test_retry_payout_by_someone_else(self, controller, gateway, assigned_job):
        gateway.fail_payouts = True
        earning = _finish(controller, assigned_job).earning
        with pytest.raises(UnauthorizedError):
            controller.retry_payout(earning.id, POSTER)

    def test_retry_pending_payouts(self, controller, gateway, assigned_job):
        gateway.fail_payouts = True
        earning = _finish(controller, assigned_job).earning
        [(still_pending, paid)] = controller.retry_pending_payouts()
        assert still_pending.id == earning.id
        assert paid is False

        gateway.fail_payouts = False
        [(retried, paid)] = controller.retry_pending_payouts()
        assert paid is True
        assert retried.status == "paid"
        assert controller.earnings.list_pending() == []

    def test_gateway_exception_treated_as_failure(self, controller, gateway, assigned_job):
        controller.complete_all_tasks(assigned_job.id, WORKER)
        gateway.unavailable = True
        result = controller.complete_job(assigned_job.id, WORKER)
        assert result.job.status == "completed"
        assert result.payment_status == "pending"

    def test_earnings_visibility(self, controller, assigned_job):
        _finish(controller, assigned_job)
        assert len(controller.list_earnings_for_worker(WORKER, WORKER)) == 1
        with pytest.raises(UnauthorizedError):
            controller.list_earnings_for_worker(WORKER, POSTER)
        with pytest.raises(UnauthorizedError):
            controller.list_earnings_for_job(assigned_job.id, STRANGER)


class TestPayments:
    def test_declined_card_then_retry(self, controller):
        job = controller.post_job(POSTER, make_draft(), payment_method_id=DECLINED_CARD)
        assert job.status == "payment_failed"
        with pytest.raises(JobNotOpenError):
            controller.apply_to_job(job.id, WORKER)

        job, payment = controller.process_payment(job.id, POSTER, CARD)
        assert job.status == "open"
        assert payment.status == "succeeded"
        assert [p.status for p in controller.ledger.list_for_job(job.id)] == ["failed", "succeeded"]

    def test_amount_must_match_total(self, controller):
        job = controller.post_job(POSTER, make_draft())
        with pytest.raises(InvalidRequestError, match="does not match"):
            controller.process_payment(job.id, POSTER, CARD, amount=Decimal("100"))
        job, _ = controller.process_payment(job.id, POSTER, CARD, amount=Decimal("102.50"))
        assert job.status == "open"

    def test_paid_job_cannot_be_paid_again(self, controller, open_job):
        with pytest.raises(InvalidTransitionError):
            controller.process_payment(open_job.id, POSTER, CARD)

    def test_only_poster_pays(self, controller):
        job = controller.post_job(POSTER, make_draft())
        with pytest.raises(UnauthorizedError):
            controller.process_payment(job.id, STRANGER, CARD)

    def test_payment_method_required(self, controller):
        job = controller.post_job(POSTER, make_draft())
        with pytest.raises(InvalidRequestError):
            controller.process_payment(job.id, POSTER, "")

    def test_receipt(self, controller, open_job):
        receipt = controller.generate_receipt(open_job.id, POSTER)
        assert receipt.total_amount == Decimal("102.50")
        assert receipt.service_fee == Decimal("2.50")
        assert receipt.transaction_id.startswith("pi_")
        assert "Total charged:  102.50 USD" in receipt.render_text()
        with pytest.raises(UnauthorizedError):
            controller.generate_receipt(open_job.id, STRANGER)

    def test_receipt_requires_a_charge(self, controller):
        job = controller.post_job(POSTER, make_draft(payment_type=PaymentType.HOURLY))
        with pytest.raises(NotFoundError):
            controller.generate_receipt(job.id, POSTER)


class TestPayoutAccounts:
    def test_unverified_worker_cannot_apply(self, controller, gateway, open_job):
        with pytest.raises(PayoutAccountRequiredError):
            controller.apply_to_job(open_job.id, "worker-3")
        account = controller.create_payout_account("worker-3", "w3@example.com")
        assert account.is_verified is False
        assert account.requirements_currently_due

        gateway.verify_account("worker-3")
        assert controller.payout_account_status("worker-3").is_verified
        assert controller.apply_to_job(open_job.id, "worker-3").status == "pending"

    def test_gateway_down_blocks_application(self, controller, gateway, open_job):
        gateway.unavailable = True
        with pytest.raises(PaymentGatewayError):
            controller.apply_to_job(open_job.id, WORKER)
        assert controller.applications.list_for_job(open_job.id) == []


class TestApplications:
    def test_only_poster_accepts(self, controller, open_job):
        application = controller.apply_to_job(open_job.id, WORKER)
        with pytest.raises(UnauthorizedError):
            controller.accept_application(application.id, OTHER_WORKER)
        assert controller.get_job(open_job.id).status == "open"

    def test_second_accept_fails(self, controller, open_job):
        first = controller.apply_to_job(open_job.id, WORKER)
        second = controller.apply_to_job(open_job.id, OTHER_WORKER)
        controller.accept_application(first.id, POSTER)
        with pytest.raises(JobNotOpenError):
            controller.accept_application(second.id, POSTER)

    def test_set_application_status(self, controller, open_job):
        application = controller.apply_to_job(open_job.id, WORKER)
        assert controller.set_application_status(application.id, POSTER, "rejected").status == "rejected"
        with pytest.raises(InvalidRequestError):
            controller.set_application_status(application.id, POSTER, "withdrawn")

    def test_application_listings_are_scoped(self, controller, open_job):
        controller.apply_to_job(open_job.id, WORKER)
        assert len(controller.list_applications_for_job(open_job.id, POSTER)) == 1
        assert len(controller.list_applications_for_worker(WORKER, WORKER)) == 1
        with pytest.raises(UnauthorizedError):
            controller.list_applications_for_job(open_job.id, WORKER)
        with pytest.raises(UnauthorizedError):
            controller.list_applications_for_worker(WORKER, OTHER_WORKER)

    def test_concurrent_accepts_have_one_winner(self, controller, open_job):
        applications = [
            controller.apply_to_job(open_job.id, WORKER),
            controller.apply_to_job(open_job.id, OTHER_WORKER),
        ]
        barrier = threading.Barrier(len(applications))
        outcomes = []

        def accept(application_id):
            barrier.wait()
            try:
                controller.accept_application(application_id, POSTER)
                outcomes.append("won")
            except MarketplaceError as e:
                outcomes.append(e.code)

        threads = [threading.Thread(target=accept, args=(a.id,)) for a in applications]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert outcomes.count("won") == 1
        job = controller.get_job(open_job.id)
        assert job.status == "assigned"
        statuses = sorted(a.status for a in controller.applications.list_for_job(open_job.id))
        assert statuses == ["accepted", "rejected"]


class TestCancellation:
    """Cancel rules and refunds."""

    def test_cancel_open_job_refunds_charge(self, controller, gateway, open_job):
        application = controller.apply_to_job(open_job.id, WORKER)
        job = controller.cancel_job(open_job.id, POSTER, reason="Plans changed")
        assert job.status == "canceled"
        assert controller.applications.get(application.id).status == "rejected"
        assert len(gateway.refunds) == 1
        kinds = [p.kind for p in controller.ledger.list_for_job(open_job.id)]
        assert kinds == [PaymentKind.CHARGE.value, PaymentKind.REFUND.value]
        assert controller.get_job_history(open_job.id)[-1].metadata == {"reason": "Plans changed"}

    def test_cancel_assigned_job_clears_worker(self, controller, gateway, assigned_job):
        job = controller.cancel_job(assigned_job.id, POSTER)
        assert job.worker_id is None
        assert len(gateway.refunds) == 1

    def test_cancel_started_job_keeps_charge(self, controller, gateway, assigned_job):
        controller.start_job(assigned_job.id, WORKER)
        controller.cancel_job(assigned_job.id, POSTER)
        assert gateway.refunds == {}

    def test_failed_refund_still_cancels(self, controller, gateway, open_job):
        gateway.fail_refunds = True
        assert controller.cancel_job(open_job.id, POSTER).status == "canceled"
        refund = controller.ledger.list_for_job(open_job.id)[-1]
        assert refund.kind == "refund"
        assert refund.status == "failed"

    def test_cancel_rules(self, controller, assigned_job):
        with pytest.raises(UnauthorizedError):
            controller.cancel_job(assigned_job.id, WORKER)
        _finish(controller, assigned_job)
        with pytest.raises(InvalidTransitionError):
            controller.cancel_job(assigned_job.id, POSTER)

    def test_canceled_job_rejects_work(self, controller, open_job):
        controller.cancel_job(open_job.id, POSTER)
        with pytest.raises(JobNotOpenError):
            controller.apply_to_job(open_job.id, WORKER)
        with pytest.raises(InvalidTransitionError):
            controller.cancel_job(open_job.id, POSTER)


class TestJobEditing:
    def test_only_poster_edits(self, controller, open_job):
        with pytest.raises(UnauthorizedError):
            controller.update_job_details(open_job.id, WORKER, {"title": "Mine now"})
        edited = controller.update_job_details(open_job.id, POSTER, {"title": "Move a sofa"})
        assert edited.title == "Move a sofa"

    def test_task_management_is_poster_only(self, controller, open_job):
        with pytest.raises(UnauthorizedError):
            controller.add_task(open_job.id, WORKER, "Sneaky task")
        task = controller.add_task(open_job.id, POSTER, "Bring blankets")
        assert task.position == 3
        controller.update_task(task.id, POSTER, {"notes": "Moving blankets"})
        controller.delete_task(task.id, POSTER)
        ids = [t.id for t in controller.list_tasks(open_job.id)]
        reordered = controller.reorder_tasks(open_job.id, POSTER, list(reversed(ids)))
        assert [t.position for t in reordered] == [0, 1, 2]


class TestReviews:
    def test_both_parties_review_once(self, controller, assigned_job):
        with pytest.raises(InvalidTransitionError):
            controller.submit_review(assigned_job.id, POSTER, 5)
        _finish(controller, assigned_job)

        review = controller.submit_review(assigned_job.id, POSTER, 5, "Careful and quick")
        assert review.reviewee_id == WORKER
        controller.submit_review(assigned_job.id, WORKER, 4)
        with pytest.raises(MarketplaceError) as exc_info:
            controller.submit_review(assigned_job.id, POSTER, 3)
        assert exc_info.value.code == "duplicate_review"
        with pytest.raises(UnauthorizedError):
            controller.submit_review(assigned_job.id, STRANGER, 1)

        summary = controller.reviews.summary_for_user(WORKER)
        assert summary.count == 1
        assert summary.average == 5.0

    def test_rating_range(self, controller, assigned_job):
        _finish(controller, assigned_job)
        with pytest.raises(InvalidRequestError):
            controller.submit_review(assigned_job.id, POSTER, 6)


class HookedGateway(InMemoryPaymentGateway):
    """In-memory gateway that runs a callback once, just before the next charge or transfer."""

    def __init__(self):
        super().__init__()
        self.verify_account(WORKER)
        self.during_charge = None
        self.during_payout = None

    def process_payment(self, job_id, payer_id, payment_method_id, amount):
        hook, self.during_charge = self.during_charge, None
        if hook:
            hook()
        return super().process_payment(job_id, payer_id, payment_method_id, amount)

    def pay_worker(self, job_id, worker_id, amount):
        hook, self.during_payout = self.during_payout, None
        if hook:
            hook()
        return super().pay_worker(job_id, worker_id, amount)


class GatedGateway(InMemoryPaymentGateway):
    """In-memory gateway whose charges block until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def process_payment(self, job_id, payer_id, payment_method_id, amount):
        self.entered.set()
        self.release.wait(timeout=10)
        return super().process_payment(job_id, payer_id, payment_method_id, amount)


class TestGatewayCallsOutsideTransactions:
    """Gateway I/O never holds the storage write lock."""

    def test_slow_charge_does_not_block_other_writes(self, tmp_path, config):
        storage = SQLiteStorage(tmp_path / "slow.db", busy_timeout_ms=200)
        gateway = GatedGateway()
        controller = LifecycleController(storage, gateway, config)
        job = controller.post_job(POSTER, make_draft())

        outcomes = []
        payer = threading.Thread(target=lambda: outcomes.append(controller.process_payment(job.id, POSTER, CARD)))
        payer.start()
        try:
            assert gateway.entered.wait(timeout=5)
            other = controller.post_job("poster-2", make_draft(title="Paint a fence"))
            assert other.status == "pending_payment"
        finally:
            gateway.release.set()
            payer.join(timeout=10)
            storage.close()

        [(paid_job, charge)] = outcomes
        assert paid_job.status == "open"
        assert charge.status == "succeeded"

    def test_cancel_during_charge_refunds_it(self, storage, config):
        gateway = HookedGateway()
        controller = LifecycleController(storage, gateway, config)
        job = controller.post_job(POSTER, make_draft())
        gateway.during_charge = lambda: controller.cancel_job(job.id, POSTER)

        with pytest.raises(InvalidTransitionError, match="concurrently"):
            controller.process_payment(job.id, POSTER, CARD)

        assert controller.get_job(job.id).status == "canceled"
        ledger = [(p.kind, p.status) for p in controller.ledger.list_for_job(job.id)]
        assert ledger == [("charge", "succeeded"), ("refund", "succeeded")]
        assert len(gateway.refunds) == 1

    def test_double_payment_refunds_the_loser(self, storage, config):
        gateway = HookedGateway()
        controller = LifecycleController(storage, gateway, config)
        job = controller.post_job(POSTER, make_draft())
        winner = []
        gateway.during_charge = lambda: winner.append(controller.process_payment(job.id, POSTER, CARD))

        with pytest.raises(InvalidTransitionError):
            controller.process_payment(job.id, POSTER, CARD)

        [(opened, winning_charge)] = winner
        assert opened.status == "open"
        assert controller.get_job(job.id).status == "open"
        assert len(gateway.charges) == 2
        assert len(gateway.refunds) == 1
        assert controller.ledger.successful_charge(job.id).id == winning_charge.id
        assert controller.generate_receipt(job.id, POSTER).transaction_id == winning_charge.transaction_id

    def test_concurrent_retry_of_same_payout(self, storage, config):
        gateway = HookedGateway()
        controller = LifecycleController(storage, gateway, config)
        job = controller.post_job(POSTER, make_draft(), tasks=["Carry couch"], payment_method_id=CARD)
        application = controller.apply_to_job(job.id, WORKER, "I have a truck")
        controller.accept_application(application.id, POSTER)
        gateway.fail_payouts = True
        earning = _finish(controller, job).earning
        gateway.fail_payouts = False

        second = []

        def retry_again():
            try:
                controller.retry_payout(earning.id)
            except InvalidTransitionError as e:
                second.append(str(e))

        gateway.during_payout = retry_again
        paid = controller.retry_payout(earning.id)

        assert paid.status == "paid"
        assert len(second) == 1 and "in progress" in second[0]
        assert len(gateway.transfers) == 1
