"""Request/response schemas for approval endpoints."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Priority = Literal["low", "normal", "high", "urgent", "critical"]


class ApprovalSubmit(BaseModel):
    request_type: str = Field(..., min_length=1, max_length=50)
    payload: Dict[str, Any] = Field(default_factory=dict)
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    priority: Priority = "normal"


class ApprovalDecision(BaseModel):
    level: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class ApprovalRejection(BaseModel):
    reason: str = Field(..., min_length=1)
    level: Optional[int] = Field(None, ge=0)


class ApprovalCancel(BaseModel):
    reason: Optional[str] = None


class TransitionRecordResponse(BaseModel):
    sequence: int
    level: int
    actor_id: str
    actor_role: str
    decision: str
    from_state: str
    to_state: str
    notes: Optional[str]
    timestamp: Optional[str]


class ApprovalRequestResponse(BaseModel):
    id: str
    tenant_id: str
    request_type: str
    title: str
    priority: str
    payload: Dict[str, Any]
    state: str
    current_level: int
    required_chain: List[str]
    awaiting_role: Optional[str]
    workflow_template_id: Optional[str]
    version: int
    sla_hours: int
    deadline: Optional[str]
    sla_status: Optional[str]
    created_by: str
    created_at: Optional[str]
    updated_at: Optional[str]
    history: Optional[List[TransitionRecordResponse]] = None
    available_actions: Optional[List[str]] = None


class ApprovalListResponse(BaseModel):
    items: List[ApprovalRequestResponse]
    total: int
    limit: int
    offset: int


class ApprovalSummaryResponse(BaseModel):
    total: int
    open: int
    overdue: int
    at_risk: int
    by_state: Dict[str, int]
    by_type: Dict[str, int]
