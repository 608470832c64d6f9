"""Approval workflow states and transitions.

State Machine Diagram:

    ┌──────────┐  cancel (creator)   ┌───────────┐
    │ PENDING  │────────────────────►│ CANCELLED │
    └────┬─────┘                     └───────────┘
         │ approve (level 0 role)
         │                 reject (current level role)
    ┌────▼──────┐◄──┐     ┌──────────┐
    │ IN_REVIEW │───┘────►│ REJECTED │
    └────┬──────┘ approve └──────────┘
         │ (more levels remain)
         │
    ┌────▼─────┐
    │ APPROVED │ (last level approved)
    └──────────┘

An approval at level L moves ``current_level`` to L + 1; when that equals the
length of the required chain the request becomes APPROVED, otherwise it sits
IN_REVIEW. PENDING can also be rejected directly at level 0.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class ApprovalState(str, Enum):
    """States in the approval workflow."""
    
    PENDING = "pending"           # Submitted, no level decided yet
    IN_REVIEW = "in_review"       # At least one level approved, more remain
    
    # Terminal states
    APPROVED = "approved"         # Every level approved
    REJECTED = "rejected"         # Rejected at some level
    CANCELLED = "cancelled"       # Withdrawn by the requester before any decision


class ApprovalAction(str, Enum):
    """Actions that trigger state transitions."""
    
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


class ActorGuard(str, Enum):
    """Who may perform a transition."""
    
    CURRENT_LEVEL_ROLE = "current_level_role"  # role == required_chain[current_level]
    CREATOR = "creator"                        # actor == created_by


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: ApprovalState
    action: ApprovalAction
    to_state: ApprovalState
    guard: ActorGuard
    requires_notes: bool = False


# IN_REVIEW as the target of an approval is promoted to APPROVED by the
# state machine once the final level has been approved.
TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ApprovalState.PENDING, ApprovalAction.APPROVE, ApprovalState.IN_REVIEW,
                   ActorGuard.CURRENT_LEVEL_ROLE),
    TransitionRule(ApprovalState.IN_REVIEW, ApprovalAction.APPROVE, ApprovalState.IN_REVIEW,
                   ActorGuard.CURRENT_LEVEL_ROLE),
    TransitionRule(ApprovalState.PENDING, ApprovalAction.REJECT, ApprovalState.REJECTED,
                   ActorGuard.CURRENT_LEVEL_ROLE, requires_notes=True),
    TransitionRule(ApprovalState.IN_REVIEW, ApprovalAction.REJECT, ApprovalState.REJECTED,
                   ActorGuard.CURRENT_LEVEL_ROLE, requires_notes=True),
    TransitionRule(ApprovalState.PENDING, ApprovalAction.CANCEL, ApprovalState.CANCELLED,
                   ActorGuard.CREATOR),
]

VALID_TRANSITIONS: Dict[ApprovalState, Set[ApprovalAction]] = {}
TRANSITION_TARGETS: Dict[tuple[ApprovalState, ApprovalAction], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.action)
    TRANSITION_TARGETS[(rule.from_state, rule.action)] = rule


# No outgoing transitions
TERMINAL_STATES: Set[ApprovalState] = {
    ApprovalState.APPROVED,
    ApprovalState.REJECTED,
    ApprovalState.CANCELLED,
}

# Awaiting a decision from the role at the current level
OPEN_STATES: Set[ApprovalState] = {
    ApprovalState.PENDING,
    ApprovalState.IN_REVIEW,
}


def can_transition(from_state: ApprovalState, action: ApprovalAction) -> bool:
    """Check if an action is valid from the given state."""
    return action in VALID_TRANSITIONS.get(from_state, set())


def get_transition_rule(from_state: ApprovalState, action: ApprovalAction) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((from_state, action))
