"""Approval service: the engine the HTTP layer calls.

Provides submit/approve/reject/cancel/get/list over the state machine with
database persistence, an audit trail written inside the same transaction,
and best-effort notifications after commit. Every public method returns an
``ApprovalResult``; nothing is retried internally.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence
from uuid import UUID

from schoolflow.db.base import utcnow
from schoolflow.db.models import ApprovalRequest, ApprovalTransitionRecord
from schoolflow.services.audit import AuditLogger

from .actor import Actor
from .errors import ApprovalError, ApprovalValidationError, InternalError
from .machine import ApprovalStateMachine
from .policy import PolicyResolver, RequestType
from .result import ApprovalResult
from .sla import as_utc, compute_deadline, sla_status
from .states import ApprovalAction, ApprovalState, TERMINAL_STATES
from .store import ApprovalFilters, RequestStore

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "normal", "high", "urgent", "critical")

# Called with (request, transition); transition is None for a new submission
Notifier = Callable[[Dict[str, Any], Optional[Dict[str, Any]]], Any]


class ApprovalService:
    """
    High-level service for approval workflows.
    
    Args:
        store: Request store (owns the database session factory)
        resolver: Policy resolver for approval chains
        audit: Audit writer with ``record_submission`` and ``record``; its
            failures abort the operation
        notifiers: Callables invoked after each commit; their failures are
            logged and ignored
        clock: Current time, used for deadlines and SLA status
    """
    
    def __init__(
        self,
        store: RequestStore,
        resolver: Optional[PolicyResolver] = None,
        *,
        audit=None,
        notifiers: Sequence[Notifier] = (),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.resolver = resolver or PolicyResolver()
        self.audit = audit or AuditLogger()
        self.notifiers = list(notifiers)
        self.clock = clock
    
    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    
    def submit(
        self,
        actor: Actor,
        request_type: str,
        payload: Mapping[str, Any],
        *,
        title: Optional[str] = None,
        priority: str = "normal",
    ) -> ApprovalResult:
        """
        Create a new approval request in ``pending``.
        
        The approval chain is resolved once here and frozen into the request.
        """
        try:
            self._validate_submission(request_type, payload, title, priority)
            with self.store.transaction() as tx:
                templates = tx.list_templates(actor.tenant_id, request_type)
                resolved = self.resolver.resolve(actor.tenant_id, request_type, payload, templates)
                submitted_at = self.clock()
                
                request = ApprovalRequest(
                    tenant_id=actor.tenant_id,
                    request_type=request_type,
                    title=(title or f"{request_type.replace('_', ' ').capitalize()} request").strip(),
                    priority=priority,
                    payload=dict(payload),
                    state=ApprovalState.PENDING.value,
                    current_level=0,
                    required_chain=resolved.roles,
                    workflow_template_id=resolved.template_id,
                    version=1,
                    sla_hours=resolved.sla_hours,
                    deadline=compute_deadline(submitted_at, resolved.sla_hours),
                    created_by=actor.actor_id,
                    created_at=submitted_at,
                    updated_at=submitted_at,
                )
                tx.create(request)
                self._audit(lambda: self.audit.record_submission(tx.session, request))
                data = request_to_dict(request, actor=actor, now=submitted_at)
        except ApprovalError as e:
            logger.warning(f"Submission of {request_type!r} by {actor.actor_id} refused: {e.message}")
            return ApprovalResult.fail(e)
        
        logger.info(f"Approval request {data['id']} submitted ({request_type}, chain={data['required_chain']})")
        self._notify(data, None)
        return ApprovalResult.ok(data)
    
    def approve(
        self,
        actor: Actor,
        request_id: UUID,
        *,
        level: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> ApprovalResult:
        """Approve the current level; the request advances or becomes ``approved``."""
        return self._transition(actor, request_id, ApprovalAction.APPROVE, level=level, notes=notes)
    
    def reject(
        self,
        actor: Actor,
        request_id: UUID,
        reason: str,
        *,
        level: Optional[int] = None,
    ) -> ApprovalResult:
        """Reject at the current level; rejection is terminal."""
        return self._transition(actor, request_id, ApprovalAction.REJECT, level=level, notes=reason)
    
    def cancel(self, actor: Actor, request_id: UUID, *, reason: Optional[str] = None) -> ApprovalResult:
        """Withdraw a request; only its creator may, and only while it is untouched."""
        return self._transition(actor, request_id, ApprovalAction.CANCEL, level=None, notes=reason)
    
    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    
    def get(self, actor: Actor, request_id: UUID) -> ApprovalResult:
        """Get a request with its history; requests of other schools are not found."""
        try:
            with self.store.transaction() as tx:
                request = tx.get(actor.tenant_id, request_id)
                data = request_to_dict(request, actor=actor, include_history=True, now=self.clock())
        except ApprovalError as e:
            return ApprovalResult.fail(e)
        return ApprovalResult.ok(data)
    
    def list(self, tenant_id: UUID, filters: Optional[ApprovalFilters] = None) -> ApprovalResult:
        """List a school's requests, newest first."""
        filters = filters or ApprovalFilters()
        try:
            if filters.state and filters.state not in {s.value for s in ApprovalState}:
                raise ApprovalValidationError(f"Unknown state filter: {filters.state!r}")
            with self.store.transaction() as tx:
                now = self.clock()
                items, total = tx.list(tenant_id, filters, now)
                limit, offset = filters.page()
                data = {
                    "items": [request_to_dict(r, now=now) for r in items],
                    "total": total,
                    "limit": limit,
                    "offset": offset,
                }
        except ApprovalError as e:
            return ApprovalResult.fail(e)
        return ApprovalResult.ok(data)
    
    def summary(self, tenant_id: UUID) -> ApprovalResult:
        """Counts of a school's requests by state, type and SLA standing."""
        try:
            with self.store.transaction() as tx:
                data = tx.summary(tenant_id, self.clock())
        except ApprovalError as e:
            return ApprovalResult.fail(e)
        return ApprovalResult.ok(data)
    
    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    
    def _transition(
        self,
        actor: Actor,
        request_id: UUID,
        action: ApprovalAction,
        *,
        level: Optional[int],
        notes: Optional[str],
    ) -> ApprovalResult:
        try:
            with self.store.transaction() as tx:
                request = tx.get(actor.tenant_id, request_id)
                machine = ApprovalStateMachine.from_request(request)
                outcome = machine.transition(action, actor, level=level, notes=notes)
                
                # The conditional update settles a race before any history is written
                tx.update_state(
                    request.id,
                    outcome.to_state,
                    outcome.new_level,
                    expected_version=request.version,
                )
                record = tx.append_transition(request.id, outcome)
                tx.refresh(request)
                self._audit(lambda: self.audit.record(tx.session, request, record))
                
                data = request_to_dict(request, actor=actor, include_history=True, now=self.clock())
                transition = record_to_dict(record)
        except ApprovalError as e:
            logger.warning(
                f"{action.value} on approval request {request_id} by {actor.actor_id} "
                f"({actor.role}) refused: {e.code.value}: {e.message}"
            )
            return ApprovalResult.fail(e)
        
        logger.info(
            f"Approval request {request_id}: {action.value} at level {outcome.level} by "
            f"{actor.actor_id} ({actor.role}), {outcome.from_state.value} -> {outcome.to_state.value}"
        )
        self._notify(data, transition)
        return ApprovalResult.ok(data)
    
    def _audit(self, write: Callable[[], Any]) -> None:
        """Run an audit write; any failure aborts the surrounding transaction."""
        try:
            write()
        except ApprovalError:
            raise
        except Exception as e:
            logger.exception("Audit log write failed; rolling back")
            raise InternalError(f"Audit log write failed: {e}")
    
    def _notify(self, request: Dict[str, Any], transition: Optional[Dict[str, Any]]) -> None:
        """Invoke notifiers after commit; failures never undo the transition."""
        for notifier in self.notifiers:
            try:
                notifier(request, transition)
            except Exception:
                logger.exception(f"Notification failed for approval request {request['id']}")
    
    def _validate_submission(
        self,
        request_type: str,
        payload: Mapping[str, Any],
        title: Optional[str],
        priority: str,
    ) -> None:
        if not isinstance(payload, Mapping):
            raise ApprovalValidationError("Payload must be an object")
        if priority not in PRIORITIES:
            raise ApprovalValidationError(f"Priority must be one of {', '.join(PRIORITIES)}")
        if title is not None and (not title.strip() or len(title) > 255):
            raise ApprovalValidationError("Title must be 1-255 characters")
        if request_type == RequestType.EXPENSE.value:
            amount = payload.get("amount")
            if amount is None or isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount < 0:
                raise ApprovalValidationError("Expense requests need a non-negative numeric amount")


def record_to_dict(record: ApprovalTransitionRecord) -> Dict[str, Any]:
    return {
        "sequence": record.sequence,
        "level": record.level,
        "actor_id": str(record.actor_id),
        "actor_role": record.actor_role,
        "decision": record.decision,
        "from_state": record.from_state,
        "to_state": record.to_state,
        "notes": record.notes,
        "timestamp": record.created_at.isoformat() if record.created_at else None,
    }


def request_to_dict(
    request: ApprovalRequest,
    *,
    actor: Optional[Actor] = None,
    include_history: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Convert an ApprovalRequest model to a dictionary; ``sla_status`` is evaluated at ``now``."""
    state = ApprovalState(request.state)
    deadline = as_utc(request.deadline)
    status = sla_status(request.state, deadline, now or utcnow())
    chain = list(request.required_chain)
    data = {
        "id": str(request.id),
        "tenant_id": str(request.tenant_id),
        "request_type": request.request_type,
        "title": request.title,
        "priority": request.priority,
        "payload": request.payload,
        "state": state.value,
        "current_level": request.current_level,
        "required_chain": chain,
        "awaiting_role": None if state in TERMINAL_STATES else chain[request.current_level],
        "workflow_template_id": str(request.workflow_template_id) if request.workflow_template_id else None,
        "version": request.version,
        "sla_hours": request.sla_hours,
        "deadline": deadline.isoformat() if deadline else None,
        "sla_status": status.value if status else None,
        "created_by": str(request.created_by),
        "created_at": request.created_at.isoformat() if request.created_at else None,
        "updated_at": request.updated_at.isoformat() if request.updated_at else None,
    }
    if include_history:
        data["history"] = [record_to_dict(r) for r in request.history]
    if actor is not None:
        machine = ApprovalStateMachine.from_request(request)
        data["available_actions"] = [a.value for a in machine.available_actions(actor)]
    return data
