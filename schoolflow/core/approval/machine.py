"""Approval state machine implementation.

Validates a requested action against the transition table, the approval
chain, and the acting user, and computes the resulting state. The machine
is pure: it never touches storage. ``ApprovalService`` persists the outcome.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence
from uuid import UUID

from schoolflow.db.base import utcnow

from .actor import Actor
from .errors import (
    ApprovalValidationError,
    ForbiddenError,
    InvalidStateTransitionError,
    WrongApprovalLevelError,
)
from .states import (
    ActorGuard,
    ApprovalAction,
    ApprovalState,
    TERMINAL_STATES,
    TransitionRule,
    get_transition_rule,
)


@dataclass(frozen=True)
class TransitionOutcome:
    """A validated transition, ready to be persisted as one history record."""
    action: ApprovalAction
    level: int
    from_state: ApprovalState
    to_state: ApprovalState
    new_level: int
    actor_id: UUID
    actor_role: str
    notes: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    
    @property
    def is_terminal(self) -> bool:
        return self.to_state in TERMINAL_STATES


def validate_chain(chain: Sequence[str]) -> list[str]:
    """Return ``chain`` as a list of role names, or raise if it is unusable."""
    if not isinstance(chain, (list, tuple)) or not chain:
        raise ApprovalValidationError("Approval chain must be a non-empty list of roles")
    roles = []
    for role in chain:
        if not isinstance(role, str) or not role.strip():
            raise ApprovalValidationError("Approval chain roles must be non-empty strings", chain=list(chain))
        roles.append(role.strip())
    return roles


class ApprovalStateMachine:
    """
    State machine for one approval request.
    
    Built from a snapshot of the request (state, level, chain, creator and the
    actors who approved earlier levels) and enforces:
    - the transition table in ``states``
    - that only the role at the current level may approve or reject
    - that levels are decided in order, each by a different actor
    - that only the creator may cancel, and only while untouched
    """
    
    def __init__(
        self,
        state: ApprovalState,
        current_level: int,
        required_chain: Sequence[str],
        created_by: UUID,
        *,
        prior_approvers: Iterable[UUID] = (),
    ):
        self._state = ApprovalState(state)
        self.required_chain = validate_chain(required_chain)
        if not 0 <= current_level <= len(self.required_chain):
            raise ApprovalValidationError(
                f"Level {current_level} is outside a chain of {len(self.required_chain)} levels"
            )
        self._level = current_level
        self.created_by = created_by
        self.prior_approvers = set(prior_approvers)
    
    @classmethod
    def from_request(cls, request) -> "ApprovalStateMachine":
        """Build a machine from an ``ApprovalRequest`` row and its history."""
        return cls(
            ApprovalState(request.state),
            request.current_level,
            request.required_chain,
            request.created_by,
            prior_approvers=[
                record.actor_id for record in request.history
                if record.decision == ApprovalAction.APPROVE.value
            ],
        )
    
    @property
    def state(self) -> ApprovalState:
        return self._state
    
    @property
    def current_level(self) -> int:
        return self._level
    
    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES
    
    @property
    def awaiting_role(self) -> Optional[str]:
        """Role that must act next, or None once the request is closed."""
        if self.is_terminal:
            return None
        return self.required_chain[self._level]
    
    def can_perform(self, action: ApprovalAction, actor: Actor) -> bool:
        """Check if ``actor`` could perform ``action`` right now."""
        try:
            self._check(action, actor, level=None)
        except (InvalidStateTransitionError, WrongApprovalLevelError, ForbiddenError):
            return False
        return True
    
    def available_actions(self, actor: Actor) -> list[ApprovalAction]:
        return [action for action in ApprovalAction if self.can_perform(action, actor)]
    
    def transition(
        self,
        action: ApprovalAction,
        actor: Actor,
        *,
        level: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TransitionOutcome:
        """
        Validate and apply a transition.
        
        Args:
            action: The action to perform
            actor: The acting user
            level: Level the caller believes it is deciding; None means current
            notes: Comment or reason (required for rejections)
            
        Returns:
            The outcome describing the transition
            
        Raises:
            InvalidStateTransitionError: Terminal state, disallowed action, or a level already decided
            WrongApprovalLevelError: Role mismatch, out-of-order level, or repeat approver
            ForbiddenError: Cancel by someone other than the creator
            ApprovalValidationError: Missing rejection reason
        """
        rule = self._check(action, actor, level=level)
        
        if rule.requires_notes and not (notes and notes.strip()):
            raise ApprovalValidationError(f"A reason is required to {action.value} a request")
        
        from_state = self._state
        acted_level = self._level
        to_state = rule.to_state
        new_level = acted_level
        
        if action == ApprovalAction.APPROVE:
            new_level = acted_level + 1
            if new_level == len(self.required_chain):
                to_state = ApprovalState.APPROVED
            self.prior_approvers.add(actor.actor_id)
        
        self._state = to_state
        self._level = new_level
        
        return TransitionOutcome(
            action=action,
            level=acted_level,
            from_state=from_state,
            to_state=to_state,
            new_level=new_level,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            notes=notes,
        )
    
    def _check(self, action: ApprovalAction, actor: Actor, *, level: Optional[int]) -> TransitionRule:
        if self.is_terminal:
            raise InvalidStateTransitionError(
                f"Cannot {action.value} a request that is already {self._state.value}",
                state=self._state.value,
            )
        
        if level is not None and level < self._level:
            raise InvalidStateTransitionError(
                f"Level {level} has already been decided; request is at level {self._level}",
                state=self._state.value,
                current_level=self._level,
            )
        
        rule = get_transition_rule(self._state, action)
        if rule is None:
            raise InvalidStateTransitionError(
                f"Cannot {action.value} a request in state {self._state.value}",
                state=self._state.value,
            )
        
        if rule.guard == ActorGuard.CREATOR:
            if actor.actor_id != self.created_by:
                raise ForbiddenError(f"Only the requester may {action.value} this request")
            return rule
        
        if level is not None and level > self._level:
            raise WrongApprovalLevelError(
                f"Level {level} cannot be decided before level {self._level}",
                current_level=self._level,
            )
        
        required_role = self.required_chain[self._level]
        if actor.role != required_role:
            raise WrongApprovalLevelError(
                f"Level {self._level} requires role {required_role!r}, not {actor.role!r}",
                current_level=self._level,
                required_role=required_role,
            )
        
        if action == ApprovalAction.APPROVE and actor.actor_id in self.prior_approvers:
            raise WrongApprovalLevelError(
                "An earlier level of this request was already approved by the same user",
                current_level=self._level,
            )
        
        return rule
