"""
Application store.

Workers apply to open jobs; the poster accepts one application and every
other pending application for the job is rejected with it.
"""

import logging
import uuid
from typing import TYPE_CHECKING, List, Optional

from gigmarket.applications.models import Application, ApplicationStatus
from gigmarket.errors import (
    ApplicationNotFoundError,
    DuplicateApplicationError,
    InvalidRequestError,
    InvalidTransitionError,
    JobNotOpenError,
    UnauthorizedError,
)
from gigmarket.jobs.store import JobStore
from gigmarket.types import utc_now

if TYPE_CHECKING:
    from gigmarket.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class ApplicationStore:
    """Worker applications tied to a job."""

    def __init__(self, storage: "MarketplaceStorage", jobs: JobStore):
        self.storage = storage
        self.jobs = jobs

    def apply(
        self,
        job_id: str,
        worker_id: str,
        message: str = "",
        hourly_rate=None,
        expected_duration: Optional[str] = None,
        cover_letter: Optional[str] = None,
    ) -> Application:
        """Submit an application to an open job.

        Raises:
            JobNotFoundError: If job doesn't exist
            JobNotOpenError: If job is not open
            UnauthorizedError: If the poster applies to their own job
            DuplicateApplicationError: If a live application already exists
        """
        with self.storage.transaction():
            job = self.jobs.get_by_id(job_id)
            if not job.is_open:
                raise JobNotOpenError(f"Job is not open for applications (status: {job.status})")
            if job.poster_id == worker_id:
                raise UnauthorizedError("Cannot apply to your own job")

            existing = self.storage.list_applications(job_id=job_id, worker_id=worker_id)
            if any(a.is_live for a in existing):
                raise DuplicateApplicationError(f"Worker {worker_id} already applied to job {job_id}")

            try:
                application = Application(
                    id=str(uuid.uuid4()),
                    job_id=job_id,
                    worker_id=worker_id,
                    message=message,
                    hourly_rate=hourly_rate,
                    expected_duration=expected_duration,
                    cover_letter=cover_letter,
                    date_applied=utc_now(),
                )
            except ValueError as e:
                raise InvalidRequestError(str(e)) from e
            self.storage.save_application(application)

        logger.info(f"Worker {worker_id} applied to job {job_id} (application {application.id})")
        return application

    def get(self, application_id: str) -> Application:
        """Get an application by ID.

        Raises:
            ApplicationNotFoundError: If application doesn't exist
        """
        application = self.storage.get_application(application_id)
        if not application:
            raise ApplicationNotFoundError(application_id)
        return application

    def set_status(self, application_id: str, status: ApplicationStatus) -> Application:
        """Accept or reject a pending application.

        Does not touch the job; accepting as a whole is the lifecycle
        controller's job so the application and job change together.
        """
        try:
            status = ApplicationStatus(status)
        except ValueError as e:
            raise InvalidRequestError(f"Invalid status: {status}") from e

        with self.storage.transaction():
            application = self.get(application_id)
            if not application.can_transition_to(status):
                raise InvalidTransitionError(
                    f"Cannot change application from {application.status} to {status.value}"
                )
            application.status = status.value
            application.decided_at = utc_now()
            self.storage.update_application(application)

        logger.info(f"Application {application_id} -> {status.value}")
        return application

    def reject_pending_siblings(self, job_id: str, accepted_id: Optional[str] = None) -> List[Application]:
        """Reject every pending application for a job except ``accepted_id``."""
        rejected = []
        with self.storage.transaction():
            for application in self.storage.list_applications(job_id=job_id, status=ApplicationStatus.PENDING):
                if application.id == accepted_id:
                    continue
                application.status = ApplicationStatus.REJECTED.value
                application.decided_at = utc_now()
                self.storage.update_application(application)
                rejected.append(application)
        if rejected:
            logger.info(f"Rejected {len(rejected)} competing application(s) for job {job_id}")
        return rejected

    def list_for_job(self, job_id: str, status: Optional[ApplicationStatus] = None) -> List[Application]:
        self.jobs.get_by_id(job_id)
        return self.storage.list_applications(job_id=job_id, status=status)

    def list_for_worker(self, worker_id: str, status: Optional[ApplicationStatus] = None) -> List[Application]:
        return self.storage.list_applications(worker_id=worker_id, status=status)
