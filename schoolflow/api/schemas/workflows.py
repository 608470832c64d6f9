"""Schemas for workflow template management."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class WorkflowTemplateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    request_type: str = Field(..., min_length=1, max_length=50)
    approval_levels: List[str] = Field(..., min_length=1)
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    priority_order: int = 100
    default_sla_hours: int = Field(72, ge=1, le=8760)
    is_active: bool = True


class WorkflowTemplateCreate(WorkflowTemplateBase):
    pass


class WorkflowTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    approval_levels: Optional[List[str]] = Field(None, min_length=1)
    conditions: Optional[List[Dict[str, Any]]] = None
    priority_order: Optional[int] = None
    default_sla_hours: Optional[int] = Field(None, ge=1, le=8760)
    is_active: Optional[bool] = None


class WorkflowTemplateResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    description: Optional[str]
    request_type: str
    approval_levels: List[str]
    conditions: List[Dict[str, Any]]
    priority_order: int
    default_sla_hours: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class WorkflowTemplateListResponse(BaseModel):
    items: List[WorkflowTemplateResponse]
    total: int
