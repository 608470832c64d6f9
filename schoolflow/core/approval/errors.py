"""Error taxonomy for the approval engine.

Every failure the engine reports carries an ``ErrorCode``. Callers receive
these inside an ``ApprovalResult`` rather than as raised exceptions.
"""

from enum import Enum
from typing import Any, Dict


class ErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    WRONG_APPROVAL_LEVEL = "wrong_approval_level"
    VALIDATION_ERROR = "validation_error"
    FORBIDDEN = "forbidden"
    INTERNAL_ERROR = "internal_error"


class ApprovalError(Exception):
    """Base class for errors raised inside the approval engine."""
    
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    
    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details
    
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class NotFoundError(ApprovalError):
    """Unknown request id, or a request owned by another tenant."""
    code = ErrorCode.NOT_FOUND


class ConflictError(ApprovalError):
    """The request changed between read and write."""
    code = ErrorCode.CONFLICT


class InvalidStateTransitionError(ApprovalError):
    """The action is not allowed from the request's current state or level."""
    code = ErrorCode.INVALID_STATE_TRANSITION


class WrongApprovalLevelError(ApprovalError):
    """The actor does not hold the role required at the current level."""
    code = ErrorCode.WRONG_APPROVAL_LEVEL


class ApprovalValidationError(ApprovalError):
    """Malformed payload, chain, or arguments."""
    code = ErrorCode.VALIDATION_ERROR


class ForbiddenError(ApprovalError):
    """The actor may not perform this action on the request at all."""
    code = ErrorCode.FORBIDDEN


class InternalError(ApprovalError):
    """Storage or audit failure; the operation was rolled back."""
    code = ErrorCode.INTERNAL_ERROR
