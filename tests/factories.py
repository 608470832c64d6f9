"""Factory functions for creating test actors and database records.

Record factories add the instance to the session and flush so that
generated fields (id, created_at, ...) are populated. All fields have
sensible defaults but can be overridden via keyword arguments.

Usage::

    from tests.factories import create_request, make_actor

    def test_something(db_session):
        request = create_request(db_session, request_type="leave")
        assert request.required_chain == ["principal"]
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from schoolflow.core.approval import Actor
from schoolflow.core.approval.policy import DEFAULT_CHAINS
from schoolflow.db.models import (
    ApprovalRequest,
    ApprovalTransitionRecord,
    WebhookConfig,
    WorkflowTemplate,
)


_counter = 0


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


# ---------------------------------------------------------------------------
# Actor
# ---------------------------------------------------------------------------


def make_actor(role: str, tenant_id: Optional[uuid.UUID] = None) -> Actor:
    return Actor(tenant_id=tenant_id or uuid.uuid4(), actor_id=uuid.uuid4(), role=role)


# ---------------------------------------------------------------------------
# WorkflowTemplate
# ---------------------------------------------------------------------------


def create_template(
    session: Session,
    *,
    tenant_id: uuid.UUID,
    request_type: str = "expense",
    approval_levels: Optional[List[str]] = None,
    conditions: Optional[List[Dict[str, Any]]] = None,
    name: Optional[str] = None,
    priority_order: int = 100,
    default_sla_hours: int = 72,
    is_active: bool = True,
) -> WorkflowTemplate:
    n = _next_id()
    template = WorkflowTemplate(
        tenant_id=tenant_id,
        name=name or f"Workflow {n}",
        request_type=request_type,
        approval_levels=approval_levels or ["principal"],
        conditions=conditions or [],
        priority_order=priority_order,
        default_sla_hours=default_sla_hours,
        is_active=is_active,
    )
    session.add(template)
    session.flush()
    return template


# ---------------------------------------------------------------------------
# ApprovalRequest
# ---------------------------------------------------------------------------


def create_request(
    session: Session,
    *,
    tenant_id: Optional[uuid.UUID] = None,
    created_by: Optional[uuid.UUID] = None,
    request_type: str = "leave",
    payload: Optional[Dict[str, Any]] = None,
    required_chain: Optional[List[str]] = None,
    state: str = "pending",
    current_level: int = 0,
    version: int = 1,
    deadline: Optional[datetime] = None,
) -> ApprovalRequest:
    n = _next_id()
    request = ApprovalRequest(
        tenant_id=tenant_id or uuid.uuid4(),
        request_type=request_type,
        title=f"Test request {n}",
        payload=payload or {},
        state=state,
        current_level=current_level,
        required_chain=required_chain or list(DEFAULT_CHAINS[request_type]),
        version=version,
        deadline=deadline,
        created_by=created_by or uuid.uuid4(),
    )
    session.add(request)
    session.flush()
    return request


def add_transition(
    session: Session,
    request: ApprovalRequest,
    *,
    actor_id: Optional[uuid.UUID] = None,
    actor_role: str = "principal",
    decision: str = "approve",
    level: int = 0,
    from_state: str = "pending",
    to_state: str = "in_review",
    sequence: int = 1,
    notes: Optional[str] = None,
) -> ApprovalTransitionRecord:
    record = ApprovalTransitionRecord(
        request_id=request.id,
        sequence=sequence,
        level=level,
        decision=decision,
        from_state=from_state,
        to_state=to_state,
        notes=notes,
        actor_id=actor_id or uuid.uuid4(),
        actor_role=actor_role,
    )
    session.add(record)
    session.flush()
    return record


# ---------------------------------------------------------------------------
# WebhookConfig
# ---------------------------------------------------------------------------


def create_webhook(
    session: Session,
    *,
    tenant_id: uuid.UUID,
    url: str = "https://hooks.example.test/approvals",
    subscribed_events: Optional[List[str]] = None,
    payload_template: Optional[str] = None,
    auth_type: Optional[str] = None,
    auth_value: Optional[str] = None,
    method: str = "POST",
    is_active: bool = True,
) -> WebhookConfig:
    n = _next_id()
    webhook = WebhookConfig(
        tenant_id=tenant_id,
        name=f"webhook-{n}",
        url=url,
        method=method,
        auth_type=auth_type,
        auth_value=auth_value,
        headers={},
        subscribed_events=subscribed_events if subscribed_events is not None else ["approval_pending"],
        payload_template=payload_template,
        is_active=is_active,
        failure_count=0,
    )
    session.add(webhook)
    session.flush()
    return webhook
