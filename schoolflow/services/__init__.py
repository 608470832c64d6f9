"""Side-effect services for SchoolFlow approvals."""

from schoolflow.services.audit import AuditLogger
from schoolflow.services.notifications import NotificationService

__all__ = [
    "AuditLogger",
    "NotificationService",
]
