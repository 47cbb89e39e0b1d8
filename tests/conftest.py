"""
Pytest fixtures and test configuration for gigmarket tests.
"""

import pytest

from gigmarket.config import MarketplaceConfig
from gigmarket.lifecycle import LifecycleController
from gigmarket.payments.gateway import InMemoryPaymentGateway
from gigmarket.storage import InMemoryStorage, SQLiteStorage

from support import CARD, OTHER_WORKER, POSTER, WORKER, make_draft


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Storage backend; every storage-dependent test runs against both."""
    if request.param == "memory":
        yield InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "marketplace.db")
        yield backend
        backend.close()


@pytest.fixture
def config(tmp_path):
    return MarketplaceConfig(db_path=tmp_path / "marketplace.db")


@pytest.fixture
def gateway():
    """In-memory gateway with verified payout accounts for both workers."""
    gw = InMemoryPaymentGateway()
    gw.verify_account(WORKER)
    gw.verify_account(OTHER_WORKER)
    return gw


@pytest.fixture
def controller(storage, gateway, config):
    return LifecycleController(storage, gateway, config)


@pytest.fixture
def open_job(controller):
    """A paid, open job with three required tasks."""
    return controller.post_job(
        POSTER,
        make_draft(),
        tasks=["Measure doorway", "Carry couch", "Sweep stairs"],
        payment_method_id=CARD,
    )


@pytest.fixture
def assigned_job(controller, open_job):
    """The open job with WORKER hired."""
    application = controller.apply_to_job(open_job.id, WORKER, "I have a truck")
    job, _ = controller.accept_application(application.id, POSTER)
    return job
