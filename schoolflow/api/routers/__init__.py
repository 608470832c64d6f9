"""API routers for SchoolFlow."""

from . import approvals
from . import health
from . import workflows

__all__ = [
    "approvals",
    "health",
    "workflows",
]
