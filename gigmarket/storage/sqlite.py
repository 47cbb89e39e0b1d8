"""
SQLite storage backend for gigmarket.

Connections are opened per operation. ``transaction()`` opens one connection
with ``BEGIN IMMEDIATE`` so that writers are serialized by SQLite's reserved
lock; while it is active on a thread, every storage call on that thread
reuses the same connection and joins the transaction.
"""

import contextlib
import json
import logging
import sqlite3
import threading
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from gigmarket.applications.models import Application, ApplicationStatus
from gigmarket.earnings.models import Earning, EarningStatus
from gigmarket.jobs.models import Job, JobStateTransition, JobStatus
from gigmarket.payments.models import Payment
from gigmarket.reviews.models import Review
from gigmarket.storage.schema import init_db, validate_table_name
from gigmarket.tasks.models import Task
from gigmarket.types import VersionConflictError, format_datetime, utc_now

logger = logging.getLogger(__name__)


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return status.value if hasattr(status, "value") else status


def _row_to_job(row: sqlite3.Row) -> Job:
    data = dict(row)
    data["required_skills"] = json.loads(data.get("required_skills") or "[]")
    return Job.from_dict(data)


def _row_to_transition(row: sqlite3.Row) -> JobStateTransition:
    data = dict(row)
    data["metadata"] = json.loads(data.get("metadata") or "{}")
    return JobStateTransition.from_dict(data)


class SQLiteStorage:
    """SQLite-backed marketplace storage."""

    def __init__(self, db_path: Union[str, Path], busy_timeout_ms: int = 5000):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()

        conn = self._get_conn()
        try:
            init_db(conn)
        finally:
            conn.close()
        logger.debug(f"SQLite storage ready at {self.db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout_ms / 1000)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @property
    def _active_conn(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "conn", None)

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection, committing on success and closing afterwards.

        Inside ``transaction()`` the active connection is yielded untouched;
        commit and rollback are left to the transaction.
        """
        active = self._active_conn
        if active is not None:
            yield active
            return

        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextlib.contextmanager
    def transaction(self):
        if self._active_conn is not None:
            yield self
            return

        conn = self._get_conn()
        conn.execute("BEGIN IMMEDIATE")
        self._local.conn = conn
        try:
            yield self
            conn.commit()
        except BaseException as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()

    def ping(self) -> bool:
        try:
            with self._connect() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as e:
            logger.warning(f"SQLite ping failed: {e}")
            return False

    def close(self):
        """Connections are per operation; nothing persistent to close."""
        pass

    def _fetch_by_id(self, table: str, record_id: str) -> Optional[sqlite3.Row]:
        table = validate_table_name(table)
        with self._connect() as conn:
            return conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()

    def _insert(self, conn: sqlite3.Connection, table: str, values: Dict[str, Any]) -> None:
        table = validate_table_name(table)
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        conn.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(values.values()))

    # === Jobs ===

    def _job_values(self, job: Job) -> Dict[str, Any]:
        return {
            "id": job.id,
            "poster_id": job.poster_id,
            "title": job.title,
            "description": job.description,
            "category": job.category,
            "payment_type": job.payment_type,
            "payment_amount": _money(job.payment_amount),
            "service_fee": _money(job.service_fee),
            "status": job.status,
            "worker_id": job.worker_id,
            "location": job.location,
            "latitude": job.latitude,
            "longitude": job.longitude,
            "date_needed": format_datetime(job.date_needed),
            "required_skills": json.dumps(job.required_skills),
            "equipment_provided": 1 if job.equipment_provided else 0,
            "date_posted": format_datetime(job.date_posted or utc_now()),
            "date_completed": format_datetime(job.date_completed),
            "assigned_at": format_datetime(job.assigned_at),
            "started_at": format_datetime(job.started_at),
            "canceled_at": format_datetime(job.canceled_at),
            "updated_at": format_datetime(job.updated_at),
            "version": job.version,
        }

    def save_job(self, job: Job) -> str:
        with self._connect() as conn:
            self._insert(conn, "jobs", self._job_values(job))
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        row = self._fetch_by_id("jobs", job_id)
        return _row_to_job(row) if row else None

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        poster_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        clauses = []
        params: List[Any] = []
        for column, value in (
            ("status", _status_value(status)),
            ("poster_id", poster_id),
            ("worker_id", worker_id),
            ("category", category),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM jobs {where} ORDER BY date_posted DESC, rowid DESC LIMIT ? OFFSET ?",
                params,
            ).fetchall()
        return [_row_to_job(r) for r in rows]

    def update_job(self, job: Job, expected_version: Optional[int] = None) -> bool:
        if expected_version is None:
            expected_version = job.version
        now = utc_now()

        with self._connect() as conn:
            current = conn.execute("SELECT version FROM jobs WHERE id = ?", (job.id,)).fetchone()
            if not current:
                return False
            if current["version"] != expected_version:
                raise VersionConflictError("jobs", job.id, expected_version, current["version"])

            values = self._job_values(job)
            values["updated_at"] = format_datetime(now)
            for key in ("id", "version", "date_posted"):
                values.pop(key)
            assignments = ", ".join(f"{column} = ?" for column in values)
            cursor = conn.execute(
                f"UPDATE jobs SET {assignments}, version = version + 1 WHERE id = ? AND version = ?",
                (*values.values(), job.id, expected_version),
            )
            if cursor.rowcount == 0:
                new_current = conn.execute("SELECT version FROM jobs WHERE id = ?", (job.id,)).fetchone()
                actual = new_current["version"] if new_current else -1
                raise VersionConflictError("jobs", job.id, expected_version, actual)

        job.version = expected_version + 1
        job.updated_at = now
        return True

    # === Applications ===

    def _application_values(self, app: Application) -> Dict[str, Any]:
        return {
            "id": app.id,
            "job_id": app.job_id,
            "worker_id": app.worker_id,
            "message": app.message,
            "status": app.status,
            "hourly_rate": _money(app.hourly_rate),
            "expected_duration": app.expected_duration,
            "cover_letter": app.cover_letter,
            "date_applied": format_datetime(app.date_applied or utc_now()),
            "decided_at": format_datetime(app.decided_at),
        }

    def save_application(self, application: Application) -> str:
        with self._connect() as conn:
            self._insert(conn, "applications", self._application_values(application))
        return application.id

    def get_application(self, application_id: str) -> Optional[Application]:
        row = self._fetch_by_id("applications", application_id)
        return Application.from_dict(dict(row)) if row else None

    def list_applications(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        status: Optional[ApplicationStatus] = None,
        limit: int = 100,
    ) -> List[Application]:
        clauses = []
        params: List[Any] = []
        for column, value in (("job_id", job_id), ("worker_id", worker_id), ("status", _status_value(status))):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM applications {where} ORDER BY date_applied ASC, rowid ASC LIMIT ?",
                params,
            ).fetchall()
        return [Application.from_dict(dict(r)) for r in rows]

    def update_application(self, application: Application) -> bool:
        values = self._application_values(application)
        values.pop("id")
        assignments = ", ".join(f"{column} = ?" for column in values)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE applications SET {assignments} WHERE id = ?",
                (*values.values(), application.id),
            )
            return cursor.rowcount > 0

    # === Tasks ===

    def _task_values(self, task: Task) -> Dict[str, Any]:
        return {
            "id": task.id,
            "job_id": task.job_id,
            "description": task.description,
            "position": task.position,
            "is_optional": 1 if task.is_optional else 0,
            "is_completed": 1 if task.is_completed else 0,
            "completed_at": format_datetime(task.completed_at),
            "completed_by": task.completed_by,
            "due_time": format_datetime(task.due_time),
            "location": task.location,
            "bonus_amount": _money(task.bonus_amount),
            "estimated_duration": task.estimated_duration,
            "notes": task.notes,
            "created_at": format_datetime(task.created_at or utc_now()),
        }

    def save_tasks(self, tasks: List[Task]) -> List[str]:
        with self._connect() as conn:
            for task in tasks:
                self._insert(conn, "tasks", self._task_values(task))
        return [t.id for t in tasks]

    def get_task(self, task_id: str) -> Optional[Task]:
        row = self._fetch_by_id("tasks", task_id)
        return Task.from_dict(dict(row)) if row else None

    def list_tasks(self, job_id: str) -> List[Task]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE job_id = ? ORDER BY position ASC, rowid ASC",
                (job_id,),
            ).fetchall()
        return [Task.from_dict(dict(r)) for r in rows]

    def update_tasks(self, tasks: List[Task]) -> None:
        with self._connect() as conn:
            for task in tasks:
                values = self._task_values(task)
                values.pop("id")
                assignments = ", ".join(f"{column} = ?" for column in values)
                cursor = conn.execute(
                    f"UPDATE tasks SET {assignments} WHERE id = ?",
                    (*values.values(), task.id),
                )
                if cursor.rowcount == 0:
                    raise KeyError(f"Unknown task id: {task.id}")

    def delete_task(self, task_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            return cursor.rowcount > 0

    # === Earnings ===

    def _earning_values(self, earning: Earning) -> Dict[str, Any]:
        return {
            "id": earning.id,
            "job_id": earning.job_id,
            "worker_id": earning.worker_id,
            "amount": _money(earning.amount),
            "service_fee": _money(earning.service_fee),
            "status": earning.status,
            "date_earned": format_datetime(earning.date_earned or utc_now()),
            "date_paid": format_datetime(earning.date_paid),
            "transaction_id": earning.transaction_id,
            "description": earning.description,
        }

    def save_earning(self, earning: Earning) -> str:
        with self._connect() as conn:
            self._insert(conn, "earnings", self._earning_values(earning))
        return earning.id

    def get_earning(self, earning_id: str) -> Optional[Earning]:
        row = self._fetch_by_id("earnings", earning_id)
        return Earning.from_dict(dict(row)) if row else None

    def list_earnings(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        status: Optional[EarningStatus] = None,
    ) -> List[Earning]:
        clauses = []
        params: List[Any] = []
        for column, value in (("job_id", job_id), ("worker_id", worker_id), ("status", _status_value(status))):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM earnings {where} ORDER BY date_earned DESC, rowid DESC",
                params,
            ).fetchall()
        return [Earning.from_dict(dict(r)) for r in rows]

    def update_earning(self, earning: Earning) -> bool:
        values = self._earning_values(earning)
        values.pop("id")
        assignments = ", ".join(f"{column} = ?" for column in values)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE earnings SET {assignments} WHERE id = ?",
                (*values.values(), earning.id),
            )
            return cursor.rowcount > 0

    # === Payments ===

    def save_payment(self, payment: Payment) -> str:
        with self._connect() as conn:
            self._insert(
                conn,
                "payments",
                {
                    "id": payment.id,
                    "job_id": payment.job_id,
                    "payer_id": payment.payer_id,
                    "payee_id": payment.payee_id,
                    "kind": payment.kind,
                    "amount": _money(payment.amount),
                    "service_fee": _money(payment.service_fee),
                    "status": payment.status,
                    "transaction_id": payment.transaction_id,
                    "error": payment.error,
                    "created_at": format_datetime(payment.created_at or utc_now()),
                },
            )
        return payment.id

    def list_payments(self, job_id: str) -> List[Payment]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM payments WHERE job_id = ? ORDER BY created_at ASC, rowid ASC",
                (job_id,),
            ).fetchall()
        return [Payment.from_dict(dict(r)) for r in rows]

    # === Reviews ===

    def save_review(self, review: Review) -> str:
        with self._connect() as conn:
            self._insert(
                conn,
                "reviews",
                {
                    "id": review.id,
                    "job_id": review.job_id,
                    "reviewer_id": review.reviewer_id,
                    "reviewee_id": review.reviewee_id,
                    "rating": review.rating,
                    "comment": review.comment,
                    "date_reviewed": format_datetime(review.date_reviewed or utc_now()),
                },
            )
        return review.id

    def list_reviews(
        self,
        job_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        reviewee_id: Optional[str] = None,
    ) -> List[Review]:
        clauses = []
        params: List[Any] = []
        for column, value in (("job_id", job_id), ("reviewer_id", reviewer_id), ("reviewee_id", reviewee_id)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM reviews {where} ORDER BY date_reviewed DESC, rowid DESC",
                params,
            ).fetchall()
        return [Review.from_dict(dict(r)) for r in rows]

    # === Transitions ===

    def save_transition(self, transition: JobStateTransition) -> str:
        with self._connect() as conn:
            self._insert(
                conn,
                "job_transitions",
                {
                    "id": transition.id,
                    "job_id": transition.job_id,
                    "from_status": transition.from_status,
                    "to_status": transition.to_status,
                    "actor_id": transition.actor_id,
                    "metadata": json.dumps(transition.metadata, default=str),
                    "created_at": format_datetime(transition.created_at or utc_now()),
                },
            )
        return transition.id

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM job_transitions WHERE job_id = ? ORDER BY created_at ASC, rowid ASC",
                (job_id,),
            ).fetchall()
        return [_row_to_transition(r) for r in rows]
