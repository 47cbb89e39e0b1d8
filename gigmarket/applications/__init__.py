"""Worker applications to jobs."""

from gigmarket.applications.models import Application, ApplicationStatus
from gigmarket.applications.store import ApplicationStore

__all__ = ["Application", "ApplicationStatus", "ApplicationStore"]
