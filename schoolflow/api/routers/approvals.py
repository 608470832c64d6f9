"""Approval workflow API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from schoolflow.api.deps import get_approval_service, get_current_actor
from schoolflow.api.schemas.approvals import (
    ApprovalCancel,
    ApprovalDecision,
    ApprovalListResponse,
    ApprovalRejection,
    ApprovalRequestResponse,
    ApprovalSubmit,
    ApprovalSummaryResponse,
    TransitionRecordResponse,
)
from schoolflow.api.schemas.common import ErrorResponse
from schoolflow.core.approval import Actor, ApprovalFilters, ApprovalResult, ApprovalService, ErrorCode

router = APIRouter(prefix="/approvals", tags=["approvals"])

STATUS_BY_ERROR = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATE_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.WRONG_APPROVAL_LEVEL: status.HTTP_403_FORBIDDEN,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def unwrap(result: ApprovalResult):
    """Return the result data or raise the matching HTTP error."""
    if result.success:
        return result.data
    error = result.error
    raise HTTPException(
        status_code=STATUS_BY_ERROR.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=ErrorResponse(error=error.code.value, detail=error.message, code=error.code.value).model_dump(),
    )


@router.post("", response_model=ApprovalRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_request(
    body: ApprovalSubmit,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Submit a new approval request for the caller's school."""
    return unwrap(service.submit(
        actor,
        body.request_type,
        body.payload,
        title=body.title,
        priority=body.priority,
    ))


@router.get("", response_model=ApprovalListResponse)
def list_requests(
    actor: Actor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
    state: Optional[str] = None,
    request_type: Optional[str] = None,
    created_by: Optional[UUID] = None,
    awaiting_role: Optional[str] = None,
    mine: bool = Query(False, description="Only requests awaiting the caller's role"),
    overdue: bool = Query(False, description="Only open requests past their deadline"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List approval requests for the caller's school."""
    filters = ApprovalFilters(
        state=state,
        request_type=request_type,
        created_by=created_by,
        awaiting_role=actor.role if mine else awaiting_role,
        overdue=overdue,
        limit=limit,
        offset=offset,
    )
    return unwrap(service.list(actor.tenant_id, filters))


@router.get("/summary", response_model=ApprovalSummaryResponse)
def approval_summary(
    actor: Actor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Counts of the school's requests by state, type and SLA standing."""
    return unwrap(service.summary(actor.tenant_id))


@router.get("/{request_id}", response_model=ApprovalRequestResponse)
def get_request(
    request_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Get a specific approval request with its history."""
    return unwrap(service.get(actor, request_id))


@router.get("/{request_id}/history", response_model=list[TransitionRecordResponse])
def get_request_history(
    request_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Get the transition history for an approval request."""
    return unwrap(service.get(actor, request_id))["history"]


@router.post("/{request_id}/approve", response_model=ApprovalRequestResponse)
def approve_request(
    request_id: UUID,
    body: ApprovalDecision,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Approve the current level of a request."""
    return unwrap(service.approve(actor, request_id, level=body.level, notes=body.notes))


@router.post("/{request_id}/reject", response_model=ApprovalRequestResponse)
def reject_request(
    request_id: UUID,
    body: ApprovalRejection,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Reject a request at its current level."""
    return unwrap(service.reject(actor, request_id, body.reason, level=body.level))


@router.post("/{request_id}/cancel", response_model=ApprovalRequestResponse)
def cancel_request(
    request_id: UUID,
    body: ApprovalCancel,
    actor: Actor = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Withdraw a pending request (requester only)."""
    return unwrap(service.cancel(actor, request_id, reason=body.reason))
