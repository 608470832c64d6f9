"""Webhook subscriptions and notification delivery log."""

import uuid
from enum import Enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Boolean, Text, Integer, Uuid
from sqlalchemy.orm import relationship

from schoolflow.db.base import Base, utcnow


class NotificationChannel(str, Enum):
    """Available notification channels."""
    WEBHOOK = "webhook"
    IN_APP = "in_app"


class NotificationEventType(str, Enum):
    """Events that can trigger notifications."""
    APPROVAL_PENDING = "approval_pending"
    APPROVAL_ADVANCED = "approval_advanced"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"
    APPROVAL_CANCELLED = "approval_cancelled"


class WebhookConfig(Base):
    """
    Webhook configuration for external integrations.
    
    Lets a school forward approval events to SMS gateways, chat tools, etc.
    """
    __tablename__ = "webhook_configs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    
    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    method = Column(String(10), default="POST")  # POST, PUT
    
    # Authentication
    auth_type = Column(String(50), nullable=True)  # bearer, header
    auth_value = Column(Text, nullable=True)
    headers = Column(JSON, default=dict)
    
    subscribed_events = Column(JSON, default=list)
    
    # Jinja2 template rendering to a JSON payload
    payload_template = Column(Text, nullable=True)
    
    # Status
    is_active = Column(Boolean, default=True)
    last_triggered_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    failure_count = Column(Integer, default=0)
    
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    
    def __repr__(self) -> str:
        return f"<WebhookConfig {self.name}>"


class NotificationLog(Base):
    """
    Log of emitted notifications for audit and debugging.
    """
    __tablename__ = "notification_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    
    channel = Column(String(50), nullable=False)
    event_type = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=False)  # role name or webhook name
    
    webhook_id = Column(Uuid(as_uuid=True), ForeignKey("webhook_configs.id", ondelete="SET NULL"), nullable=True)
    approval_request_id = Column(
        Uuid(as_uuid=True), ForeignKey("approval_requests.id", ondelete="SET NULL"), nullable=True, index=True
    )
    
    payload = Column(JSON, nullable=True)
    
    status = Column(String(50), nullable=False, default="pending")  # pending, sent, failed
    error_message = Column(Text, nullable=True)
    
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    
    webhook = relationship("WebhookConfig")
    
    def __repr__(self) -> str:
        return f"<NotificationLog {self.event_type} to {self.recipient}>"
