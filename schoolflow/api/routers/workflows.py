"""Workflow template management API endpoints.

Templates let a school override the default approval chain for a request
type, optionally only when the request payload matches a set of conditions.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schoolflow.api.deps import get_current_actor, get_db, require_workflow_admin
from schoolflow.api.schemas.workflows import (
    WorkflowTemplateCreate,
    WorkflowTemplateListResponse,
    WorkflowTemplateResponse,
    WorkflowTemplateUpdate,
)
from schoolflow.core.approval import Actor, ApprovalValidationError
from schoolflow.core.approval.machine import validate_chain
from schoolflow.core.approval.policy import validate_conditions, validate_request_type
from schoolflow.db.models import WorkflowTemplate
from schoolflow.services.audit import AuditLogger, workflow_snapshot

router = APIRouter(prefix="/workflows", tags=["workflows"])

audit = AuditLogger()


def get_template(db: Session, actor: Actor, template_id: UUID) -> WorkflowTemplate:
    template = db.query(WorkflowTemplate).filter(
        and_(WorkflowTemplate.id == template_id, WorkflowTemplate.tenant_id == actor.tenant_id)
    ).first()
    if not template:
        raise HTTPException(status_code=404, detail="Workflow template not found")
    return template


def invalid(e: ApprovalValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)


@router.get("", response_model=WorkflowTemplateListResponse)
def list_workflows(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    request_type: Optional[str] = None,
    active_only: bool = False,
):
    """List workflow templates for the caller's school."""
    query = db.query(WorkflowTemplate).filter(WorkflowTemplate.tenant_id == actor.tenant_id)
    
    if request_type:
        query = query.filter(WorkflowTemplate.request_type == request_type)
    if active_only:
        query = query.filter(WorkflowTemplate.is_active == True)
    
    templates = query.order_by(WorkflowTemplate.priority_order, WorkflowTemplate.name).all()
    
    return WorkflowTemplateListResponse(
        items=[WorkflowTemplateResponse.model_validate(t) for t in templates],
        total=len(templates),
    )


@router.post("", response_model=WorkflowTemplateResponse, status_code=status.HTTP_201_CREATED)
def create_workflow(
    data: WorkflowTemplateCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_workflow_admin),
):
    """Create a workflow template."""
    try:
        request_type = validate_request_type(data.request_type)
        levels = validate_chain(data.approval_levels)
        conditions = validate_conditions(data.conditions)
    except ApprovalValidationError as e:
        raise invalid(e)
    
    template = WorkflowTemplate(
        tenant_id=actor.tenant_id,
        name=data.name,
        description=data.description,
        request_type=request_type,
        approval_levels=levels,
        conditions=conditions,
        priority_order=data.priority_order,
        default_sla_hours=data.default_sla_hours,
        is_active=data.is_active,
        created_by=actor.actor_id,
    )
    db.add(template)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A workflow with this name already exists for the request type",
        )
    audit.record_workflow_change(db, actor.actor_id, actor.role, "create", template)
    db.commit()
    db.refresh(template)
    
    return WorkflowTemplateResponse.model_validate(template)


@router.get("/{template_id}", response_model=WorkflowTemplateResponse)
def get_workflow(
    template_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Get a specific workflow template."""
    return WorkflowTemplateResponse.model_validate(get_template(db, actor, template_id))


@router.patch("/{template_id}", response_model=WorkflowTemplateResponse)
def update_workflow(
    template_id: UUID,
    data: WorkflowTemplateUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_workflow_admin),
):
    """Update a workflow template. Requests already submitted keep their chain."""
    template = get_template(db, actor, template_id)
    old_values = workflow_snapshot(template)
    
    update = data.model_dump(exclude_unset=True)
    try:
        if update.get("approval_levels") is not None:
            update["approval_levels"] = validate_chain(update["approval_levels"])
        if update.get("conditions") is not None:
            update["conditions"] = validate_conditions(update["conditions"])
    except ApprovalValidationError as e:
        raise invalid(e)
    
    for field, value in update.items():
        if value is not None:
            setattr(template, field, value)
    
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A workflow with this name already exists for the request type",
        )
    audit.record_workflow_change(db, actor.actor_id, actor.role, "update", template, old_values)
    db.commit()
    db.refresh(template)
    
    return WorkflowTemplateResponse.model_validate(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_workflow(
    template_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_workflow_admin),
):
    """Deactivate a workflow template; the row is kept for existing requests."""
    template = get_template(db, actor, template_id)
    old_values = workflow_snapshot(template)
    template.is_active = False
    audit.record_workflow_change(db, actor.actor_id, actor.role, "deactivate", template, old_values)
    db.commit()
