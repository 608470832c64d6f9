"""Approval chain resolution.

Determines, for a request type and payload, the ordered roles that must
approve it. A school's active workflow templates are tried first (lowest
``priority_order`` first, then by name); the first whose conditions all
match the payload supplies the chain. Otherwise the built-in default chain
for the request type is used.

Resolution is deterministic: the chain is frozen into the request at
submission and never recomputed.
"""

import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence
from uuid import UUID

from .errors import ApprovalValidationError
from .machine import validate_chain
from .sla import DEFAULT_SLA_HOURS

REQUEST_TYPE_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


class RequestType(str, Enum):
    """Request types with built-in approval chains. Others may be added per school."""
    LEAVE = "leave"
    RECRUITMENT = "recruitment"
    EXPENSE = "expense"
    FEE_ASSIGNMENT = "fee_assignment"
    POLICY = "policy"


DEFAULT_CHAINS: Dict[str, List[str]] = {
    RequestType.LEAVE.value: ["principal"],
    RequestType.RECRUITMENT.value: ["hr", "principal"],
    RequestType.EXPENSE.value: ["finance", "principal"],
    RequestType.FEE_ASSIGNMENT.value: ["finance", "principal"],
    RequestType.POLICY.value: ["principal", "school_director"],
}

# Extra level appended to large expenses
EXPENSE_ESCALATION_ROLE = "school_director"
DEFAULT_EXPENSE_ESCALATION_THRESHOLD = 100000.0


class ConditionOperator(str, Enum):
    """Operators for template conditions."""
    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"


class ResolvedChain(NamedTuple):
    roles: List[str]
    template_id: Optional[UUID] = None
    sla_hours: int = DEFAULT_SLA_HOURS


def validate_conditions(conditions: Any) -> List[Dict[str, Any]]:
    """Check a template's condition list and return it normalised."""
    if conditions is None:
        return []
    if not isinstance(conditions, list):
        raise ApprovalValidationError("Template conditions must be a list")
    normalised = []
    for condition in conditions:
        if not isinstance(condition, Mapping) or not condition.get("field"):
            raise ApprovalValidationError("Each condition needs a field", condition=condition)
        try:
            operator = ConditionOperator(condition.get("operator", "eq"))
        except ValueError:
            raise ApprovalValidationError(f"Unknown condition operator: {condition.get('operator')}")
        normalised.append({"field": condition["field"], "operator": operator.value, "value": condition.get("value")})
    return normalised


def condition_matches(condition: Mapping[str, Any], payload: Mapping[str, Any]) -> bool:
    """Evaluate one ``{field, operator, value}`` condition against a payload."""
    operator = ConditionOperator(condition.get("operator", "eq"))
    field = condition["field"]
    expected = condition.get("value")
    
    if operator == ConditionOperator.EXISTS:
        return payload.get(field) is not None
    if operator == ConditionOperator.NOT_EXISTS:
        return payload.get(field) is None
    if field not in payload or payload[field] is None:
        return False
    actual = payload[field]
    
    try:
        if operator == ConditionOperator.EQUALS:
            return actual == expected
        elif operator == ConditionOperator.NOT_EQUALS:
            return actual != expected
        elif operator == ConditionOperator.GREATER_THAN:
            return actual > expected
        elif operator == ConditionOperator.GREATER_THAN_OR_EQUAL:
            return actual >= expected
        elif operator == ConditionOperator.LESS_THAN:
            return actual < expected
        elif operator == ConditionOperator.LESS_THAN_OR_EQUAL:
            return actual <= expected
        elif operator == ConditionOperator.IN:
            return actual in expected
        elif operator == ConditionOperator.NOT_IN:
            return actual not in expected
    except TypeError:
        # Incomparable types never match
        return False
    return False


def validate_request_type(request_type: Any) -> str:
    if not isinstance(request_type, str) or not REQUEST_TYPE_PATTERN.match(request_type):
        raise ApprovalValidationError(f"Invalid request type: {request_type!r}")
    return request_type


class PolicyResolver:
    """
    Resolves the approval chain for a submission.
    
    Args:
        default_chains: Built-in chains keyed by request type
        expense_escalation_threshold: Expense amounts at or above this add
            a ``school_director`` level to the default expense chain; None
            disables escalation
        default_sla_hours: Hours allowed for a decision when the matching
            template does not set its own
    """
    
    def __init__(
        self,
        default_chains: Optional[Mapping[str, Sequence[str]]] = None,
        *,
        expense_escalation_threshold: Optional[float] = DEFAULT_EXPENSE_ESCALATION_THRESHOLD,
        default_sla_hours: int = DEFAULT_SLA_HOURS,
    ):
        chains = DEFAULT_CHAINS if default_chains is None else default_chains
        self.default_chains = {key: list(value) for key, value in chains.items()}
        self.expense_escalation_threshold = expense_escalation_threshold
        self.default_sla_hours = default_sla_hours
    
    def resolve(
        self,
        tenant_id: UUID,
        request_type: str,
        payload: Mapping[str, Any],
        templates: Iterable[Any] = (),
    ) -> ResolvedChain:
        """
        Determine the chain for a request.
        
        Args:
            tenant_id: School the request belongs to
            request_type: Request type slug
            payload: Request payload
            templates: The school's workflow templates (inactive ones and
                other tenants' or types' templates are ignored)
            
        Raises:
            ApprovalValidationError: Unknown request type or an unusable chain
        """
        validate_request_type(request_type)
        
        candidates = sorted(
            (
                t for t in templates
                if t.is_active and t.tenant_id == tenant_id and t.request_type == request_type
            ),
            key=lambda t: (t.priority_order, t.name),
        )
        for template in candidates:
            conditions = template.conditions or []
            if all(condition_matches(c, payload) for c in conditions):
                return ResolvedChain(
                    validate_chain(template.approval_levels),
                    template.id,
                    template.default_sla_hours or self.default_sla_hours,
                )
        
        if request_type not in self.default_chains:
            raise ApprovalValidationError(f"No approval workflow configured for request type {request_type!r}")
        
        chain = list(self.default_chains[request_type])
        if request_type == RequestType.EXPENSE.value and self._needs_escalation(payload):
            chain.append(EXPENSE_ESCALATION_ROLE)
        return ResolvedChain(validate_chain(chain), None, self.default_sla_hours)
    
    def resolve_chain(
        self,
        tenant_id: UUID,
        request_type: str,
        payload: Mapping[str, Any],
        templates: Iterable[Any] = (),
    ) -> List[str]:
        """Ordered roles for a request; see ``resolve``."""
        return self.resolve(tenant_id, request_type, payload, templates).roles
    
    def _needs_escalation(self, payload: Mapping[str, Any]) -> bool:
        if self.expense_escalation_threshold is None:
            return False
        amount = payload.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            return False
        return amount >= self.expense_escalation_threshold
