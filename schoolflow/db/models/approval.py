"""Approval workflow database models.

Stores approval requests and the ordered record of every transition applied
to them. Requests are never deleted; terminal requests are kept for audit.
"""

import uuid
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Integer, Index, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from schoolflow.db.base import Base, utcnow


class ApprovalRequest(Base):
    """
    A request travelling through an approval chain.
    
    ``required_chain`` is frozen at creation; ``current_level`` indexes into it.
    ``version`` is bumped on every committed state change and guards against
    concurrent transitions. ``deadline`` is fixed at submission from
    ``sla_hours``.
    """
    __tablename__ = "approval_requests"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    
    # Request classification
    request_type = Column(String(50), nullable=False)  # leave, recruitment, expense, ...
    title = Column(String(255), nullable=False)
    priority = Column(String(20), nullable=False, default="normal")
    payload = Column(JSON, nullable=False, default=dict)
    
    # Workflow state
    state = Column(String(20), nullable=False, default="pending")
    current_level = Column(Integer, nullable=False, default=0)
    required_chain = Column(JSON, nullable=False)
    workflow_template_id = Column(
        Uuid(as_uuid=True), ForeignKey("workflow_templates.id", ondelete="SET NULL"), nullable=True
    )
    version = Column(Integer, nullable=False, default=1)

    # SLA; status is derived from the deadline when read
    sla_hours = Column(Integer, nullable=False, default=72)
    deadline = Column(DateTime(timezone=True), nullable=True, index=True)

    # Request tracking
    created_by = Column(Uuid(as_uuid=True), nullable=False, index=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    
    # Relationships
    history = relationship(
        "ApprovalTransitionRecord",
        back_populates="request",
        order_by="ApprovalTransitionRecord.sequence",
    )
    workflow_template = relationship("WorkflowTemplate")
    
    __table_args__ = (
        Index("ix_approval_requests_tenant_state", "tenant_id", "state"),
        Index("ix_approval_requests_tenant_type", "tenant_id", "request_type"),
    )
    
    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.request_type} {self.id} [{self.state} @ {self.current_level}]>"


class ApprovalTransitionRecord(Base):
    """
    One committed transition of an approval request.
    
    Append-only: rows are inserted together with the state update they
    describe and never modified afterwards.
    """
    __tablename__ = "approval_transitions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = Column(
        Uuid(as_uuid=True), ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence = Column(Integer, nullable=False)
    
    # Decision
    level = Column(Integer, nullable=False)
    decision = Column(String(20), nullable=False)  # approve, reject, cancel
    from_state = Column(String(20), nullable=False)
    to_state = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    
    # Actor
    actor_id = Column(Uuid(as_uuid=True), nullable=False)
    actor_role = Column(String(50), nullable=False)
    
    created_at = Column(DateTime(timezone=True), default=utcnow)
    
    request = relationship("ApprovalRequest", back_populates="history")
    
    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_approval_transitions_request_sequence"),
    )
    
    def __repr__(self) -> str:
        return f"<ApprovalTransitionRecord L{self.level} {self.decision}: {self.from_state} -> {self.to_state}>"
