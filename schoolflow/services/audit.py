"""Audit trail writer for approval activity.

Entries are staged on the caller's session so they commit atomically with
the change they describe. Errors are never swallowed here: a failed audit
write must abort the surrounding transition.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from schoolflow.db.models import ApprovalRequest, ApprovalTransitionRecord, AuditLog, AuditSeverity, WorkflowTemplate

RESOURCE_TYPE = "approval_request"


class AuditLogger:
    """Append-only recorder of approval activity and workflow configuration changes."""
    
    def record_submission(self, session: Session, request: ApprovalRequest) -> AuditLog:
        entry = AuditLog.create_entry(
            tenant_id=request.tenant_id,
            action="approval.submit",
            resource_type=RESOURCE_TYPE,
            actor_id=request.created_by,
            resource_id=request.id,
            new_values={
                "state": request.state,
                "current_level": request.current_level,
                "required_chain": list(request.required_chain),
                "deadline": request.deadline.isoformat() if request.deadline else None,
            },
            details={"request_type": request.request_type, "title": request.title},
        )
        session.add(entry)
        session.flush()
        return entry
    
    def record(self, session: Session, request: ApprovalRequest, record: ApprovalTransitionRecord) -> AuditLog:
        """Record one committed-to-be transition of ``request``."""
        severity = AuditSeverity.WARNING if record.decision == "reject" else AuditSeverity.INFO
        entry = AuditLog.create_entry(
            tenant_id=request.tenant_id,
            action=f"approval.{record.decision}",
            resource_type=RESOURCE_TYPE,
            actor_id=record.actor_id,
            actor_role=record.actor_role,
            resource_id=request.id,
            old_values={"state": record.from_state, "current_level": record.level},
            new_values={"state": record.to_state, "current_level": request.current_level},
            details={
                "sequence": record.sequence,
                "notes": record.notes,
                "request_type": request.request_type,
            },
            severity=severity,
        )
        session.add(entry)
        session.flush()
        return entry
    
    def record_workflow_change(
        self,
        session: Session,
        actor_id: UUID,
        actor_role: str,
        action: str,
        template: WorkflowTemplate,
        old_values: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Record creation, update or deactivation of a workflow template."""
        entry = AuditLog.create_entry(
            tenant_id=template.tenant_id,
            action=f"workflow.{action}",
            resource_type="workflow_template",
            actor_id=actor_id,
            actor_role=actor_role,
            resource_id=template.id,
            old_values=old_values,
            new_values=workflow_snapshot(template),
            details={"request_type": template.request_type, "name": template.name},
        )
        session.add(entry)
        session.flush()
        return entry


def workflow_snapshot(template: WorkflowTemplate) -> Dict[str, Any]:
    return {
        "approval_levels": list(template.approval_levels or []),
        "conditions": list(template.conditions or []),
        "priority_order": template.priority_order,
        "default_sla_hours": template.default_sla_hours,
        "is_active": template.is_active,
    }
