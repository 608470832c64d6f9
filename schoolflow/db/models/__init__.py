"""Database models for SchoolFlow."""

from schoolflow.db.models.workflow import WorkflowTemplate
from schoolflow.db.models.approval import ApprovalRequest, ApprovalTransitionRecord
from schoolflow.db.models.audit import AuditLog, AuditSeverity
from schoolflow.db.models.notification import (
    WebhookConfig,
    NotificationLog,
    NotificationChannel,
    NotificationEventType,
)

__all__ = [
    "WorkflowTemplate",
    "ApprovalRequest",
    "ApprovalTransitionRecord",
    "AuditLog",
    "AuditSeverity",
    "WebhookConfig",
    "NotificationLog",
    "NotificationChannel",
    "NotificationEventType",
]
