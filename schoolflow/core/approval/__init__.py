"""Approval workflow engine for SchoolFlow.

Implements the multi-level approval state machine, chain resolution,
persistence, and the service facade used by the HTTP layer.
"""

from .actor import Actor
from .errors import (
    ErrorCode,
    ApprovalError,
    NotFoundError,
    ConflictError,
    InvalidStateTransitionError,
    WrongApprovalLevelError,
    ApprovalValidationError,
    ForbiddenError,
    InternalError,
)
from .states import ApprovalState, ApprovalAction, VALID_TRANSITIONS, TERMINAL_STATES, OPEN_STATES
from .machine import ApprovalStateMachine, TransitionOutcome
from .policy import PolicyResolver, RequestType, DEFAULT_CHAINS
from .result import ApprovalResult
from .store import RequestStore, ApprovalFilters
from .service import ApprovalService

__all__ = [
    "Actor",
    "ErrorCode",
    "ApprovalError",
    "NotFoundError",
    "ConflictError",
    "InvalidStateTransitionError",
    "WrongApprovalLevelError",
    "ApprovalValidationError",
    "ForbiddenError",
    "InternalError",
    "ApprovalState",
    "ApprovalAction",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "OPEN_STATES",
    "ApprovalStateMachine",
    "TransitionOutcome",
    "PolicyResolver",
    "RequestType",
    "DEFAULT_CHAINS",
    "ApprovalResult",
    "RequestStore",
    "ApprovalFilters",
    "ApprovalService",
]
