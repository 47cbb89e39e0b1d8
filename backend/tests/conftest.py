"""Pytest configuration and fixtures."""

import os
import secrets

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("PAYMENTS_BASE_URL", None)

from app.auth import create_access_token  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.database import get_controller  # noqa: E402
from app.main import app  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from gigmarket.config import MarketplaceConfig  # noqa: E402
from gigmarket.lifecycle import LifecycleController  # noqa: E402
from gigmarket.payments.gateway import InMemoryPaymentGateway  # noqa: E402
from gigmarket.storage import InMemoryStorage  # noqa: E402

from api_support import OTHER_WORKER, POSTER, WORKER  # noqa: E402


@pytest.fixture
def gateway():
    gw = InMemoryPaymentGateway()
    gw.verify_account(WORKER)
    gw.verify_account(OTHER_WORKER)
    return gw


@pytest.fixture
def controller(gateway):
    """Fresh in-memory controller per test."""
    return LifecycleController(InMemoryStorage(), gateway, MarketplaceConfig())


@pytest.fixture
def client(controller):
    """Create a test client wired to the per-test controller."""
    app.dependency_overrides[get_controller] = lambda: controller
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    """Build auth headers for an arbitrary user id."""
    settings = get_settings()

    def build(user_id: str) -> dict:
        token = create_access_token(user_id, settings)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def poster(headers_for):
    return headers_for(POSTER)


@pytest.fixture
def worker(headers_for):
    return headers_for(WORKER)


@pytest.fixture
def open_job(client, poster):
    """A paid job with two tasks, open for applications."""
    response = client.post(
        "/jobs",
        headers=poster,
        json={
            "title": "Assemble a wardrobe",
            "description": "Flat-pack wardrobe, tools provided",
            "payment_amount": "80.00",
            "category": "assembly",
            "tasks": [{"description": "Unpack"}, {"description": "Assemble"}],
            "payment_method_id": "pm_card_visa",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def assigned_job(client, open_job, poster, worker):
    """The open job with WORKER hired."""
    applied = client.post("/applications", headers=worker, json={"job_id": open_job["id"], "message": "Done it before"})
    assert applied.status_code == 201, applied.text
    accepted = client.patch(f"/applications/{applied.json()['id']}", headers=poster, json={"status": "accepted"})
    assert accepted.status_code == 200, accepted.text
    return client.get(f"/jobs/{open_job['id']}", headers=poster).json()
