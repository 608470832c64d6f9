import uuid
from sqlalchemy import Column, String, DateTime, JSON, Boolean, Integer, Text, Uuid, UniqueConstraint

from schoolflow.db.base import Base, utcnow


class WorkflowTemplate(Base):
    """Tenant-specific approval chain for a request type, selected by payload conditions."""
    __tablename__ = "workflow_templates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    request_type = Column(String(50), nullable=False, index=True)
    approval_levels = Column(JSON, nullable=False, default=list)  # ordered role identifiers
    conditions = Column(JSON, nullable=False, default=list)  # [{field, operator, value}]
    priority_order = Column(Integer, nullable=False, default=100)  # lower is tried first
    default_sla_hours = Column(Integer, nullable=False, default=72)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "request_type", "name", name="uq_workflow_templates_tenant_type_name"),
    )

    def __repr__(self) -> str:
        return f"<WorkflowTemplate {self.name} ({self.request_type})>"
