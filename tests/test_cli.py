"""Tests for the gigmarket CLI."""

import json

import pytest

from gigmarket.cli.__main__ import main
from gigmarket.config import MarketplaceConfig
from gigmarket.lifecycle import LifecycleController
from gigmarket.payments.gateway import InMemoryPaymentGateway
from gigmarket.storage import SQLiteStorage

from support import CARD, POSTER, WORKER, make_draft


@pytest.fixture(autouse=True)
def no_payments_service(monkeypatch):
    monkeypatch.delenv("GIGMARKET_PAYMENTS_BASE_URL", raising=False)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture
def seeded(db_path):
    """A database with one completed job whose payout failed."""
    gateway = InMemoryPaymentGateway()
    gateway.verify_account(WORKER)
    controller = LifecycleController(SQLiteStorage(db_path), gateway, MarketplaceConfig(db_path=db_path))
    job = controller.post_job(POSTER, make_draft(), tasks=["Carry couch"], payment_method_id=CARD)
    application = controller.apply_to_job(job.id, WORKER)
    controller.accept_application(application.id, POSTER)
    controller.complete_all_tasks(job.id, WORKER)
    gateway.fail_payouts = True
    result = controller.complete_job(job.id, WORKER)
    return result


def run(db_path, *args):
    main(["--db", str(db_path), *args])


class TestCli:
    def test_init_db(self, db_path, capsys):
        run(db_path, "init-db")
        assert "Database ready" in capsys.readouterr().out
        assert db_path.exists()

    def test_jobs_list(self, db_path, seeded, capsys):
        run(db_path, "jobs", "list")
        out = capsys.readouterr().out
        assert seeded.job.id in out
        assert "completed" in out

    def test_jobs_list_json_filtered(self, db_path, seeded, capsys):
        run(db_path, "jobs", "list", "--status", "open", "--json")
        assert json.loads(capsys.readouterr().out) == []

    def test_jobs_show_json(self, db_path, seeded, capsys):
        run(db_path, "jobs", "show", seeded.job.id, "--json")
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "completed"
        assert [t["description"] for t in data["tasks"]] == ["Carry couch"]

    def test_jobs_history(self, db_path, seeded, capsys):
        run(db_path, "jobs", "history", seeded.job.id, "--json")
        history = json.loads(capsys.readouterr().out)
        assert history[-1]["to_status"] == "completed"

    def test_payouts_pending(self, db_path, seeded, capsys):
        run(db_path, "payouts", "pending")
        assert seeded.earning.id in capsys.readouterr().out

    def test_retry_all_exits_nonzero_when_still_pending(self, db_path, seeded, capsys):
        # A fresh in-memory gateway has no payout account for the worker
        with pytest.raises(SystemExit) as exc_info:
            run(db_path, "payouts", "retry")
        assert exc_info.value.code == 2
        assert "1 still pending" in capsys.readouterr().out

    def test_unknown_job_exits_1(self, db_path):
        with pytest.raises(SystemExit) as exc_info:
            run(db_path, "jobs", "show", "missing")
        assert exc_info.value.code == 1

    def test_invalid_status_exits_1(self, db_path):
        with pytest.raises(SystemExit) as exc_info:
            run(db_path, "jobs", "list", "--status", "bogus")
        assert exc_info.value.code == 1
