"""
Gigmarket - job lifecycle backend for a gig marketplace.

Posters publish jobs with task checklists, workers apply, and the lifecycle
controller enforces every job, application, task and payout transition.
"""

from .config import MarketplaceConfig
from .lifecycle import CompletionResult, LifecycleController

try:
    from importlib.metadata import version

    __version__ = version("gigmarket")
except Exception:
    __version__ = "0.0.0"

__all__ = ["LifecycleController", "CompletionResult", "MarketplaceConfig"]
