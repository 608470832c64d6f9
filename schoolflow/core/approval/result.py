"""Result object returned by every approval engine operation."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import ApprovalError


@dataclass
class ApprovalResult:
    """``{success, data | error}`` envelope handed back to callers."""
    success: bool
    data: Any = None
    error: Optional[ApprovalError] = None
    
    @classmethod
    def ok(cls, data: Any = None) -> "ApprovalResult":
        return cls(success=True, data=data)
    
    @classmethod
    def fail(cls, error: ApprovalError) -> "ApprovalResult":
        return cls(success=False, error=error)
    
    @property
    def error_code(self) -> Optional[str]:
        return self.error.code.value if self.error else None
    
    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error.to_dict()}
