"""Audit log model for SchoolFlow.

This table is IMMUTABLE - on PostgreSQL, database triggers prevent UPDATE and
DELETE operations. Entries are written inside the same transaction as the
approval change they describe.
"""

import uuid
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON, Uuid, Index

from schoolflow.db.base import Base, utcnow


class AuditSeverity(str, Enum):
    """Severity levels for audit log entries."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLog(Base):
    """
    Immutable audit log entry.
    
    Records every approval submission and transition for compliance.
    """
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    
    # Tenant scope
    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    
    # Actor information
    actor_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    actor_role = Column(String(50), nullable=True)
    
    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=False)
    resource_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    
    # Change tracking
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    details = Column(JSON, nullable=True)
    
    severity = Column(String(20), nullable=False, default="info")
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        Index("ix_audit_logs_tenant_created", "tenant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.resource_type} by {self.actor_id}>"
    
    @classmethod
    def create_entry(
        cls,
        tenant_id: uuid.UUID,
        action: str,
        resource_type: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
        actor_role: Optional[str] = None,
        resource_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.
        
        Args:
            tenant_id: Owning school
            action: Action performed (e.g., 'approval.submit', 'approval.approve')
            resource_type: Type of resource (e.g., 'approval_request')
            actor_id: ID of the acting user (None for system actions)
            actor_role: Role the actor acted under
            resource_id: ID of affected resource
            old_values: Previous values
            new_values: New values
            details: Additional context
            severity: Log severity level
        """
        return cls(
            tenant_id=tenant_id,
            action=action,
            resource_type=resource_type,
            actor_id=actor_id,
            actor_role=actor_role,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
            details=details,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
        )
