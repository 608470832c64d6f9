"""Persistence for approval requests.

``RequestStore`` owns the session factory and hands out ``StoreTransaction``
units of work. Everything staged in one transaction (state update, history
record, audit entry) commits together or not at all. Concurrent transitions
on the same request are detected with an optimistic ``version`` check: the
second writer's update matches no row and fails with ``ConflictError``.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from schoolflow.db.base import utcnow
from schoolflow.db.models import ApprovalRequest, ApprovalTransitionRecord, WorkflowTemplate

from .errors import ApprovalError, ConflictError, InternalError, NotFoundError
from .machine import TransitionOutcome
from .sla import AT_RISK_WINDOW
from .states import ApprovalState, OPEN_STATES

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class ApprovalFilters:
    """Filters for listing a school's approval requests."""
    state: Optional[str] = None
    request_type: Optional[str] = None
    created_by: Optional[UUID] = None
    awaiting_role: Optional[str] = None  # open requests whose current level needs this role
    overdue: bool = False  # only open requests past their deadline
    limit: int = 20
    offset: int = 0
    
    def page(self) -> Tuple[int, int]:
        """``(limit, offset)`` clamped to the allowed range."""
        return max(1, min(self.limit, MAX_PAGE_SIZE)), max(0, self.offset)


class StoreTransaction:
    """Operations staged on one database transaction."""
    
    def __init__(self, session: Session):
        self.session = session
    
    def create(self, request: ApprovalRequest) -> UUID:
        """Stage a new request and return its id."""
        self.session.add(request)
        self.session.flush()
        return request.id
    
    def get(self, tenant_id: UUID, request_id: UUID) -> ApprovalRequest:
        """Load a request owned by ``tenant_id``; other tenants' requests are invisible."""
        request = self.session.query(ApprovalRequest).filter(
            and_(
                ApprovalRequest.id == request_id,
                ApprovalRequest.tenant_id == tenant_id,
            )
        ).first()
        if request is None:
            raise NotFoundError(f"Approval request {request_id} not found")
        return request
    
    def append_transition(self, request_id: UUID, outcome: TransitionOutcome) -> ApprovalTransitionRecord:
        """
        Stage the history record for a transition.

        Call after ``update_state`` so the version check settles races first.

        Raises:
            ConflictError: Another transaction recorded the same sequence number
        """
        record = ApprovalTransitionRecord(
            request_id=request_id,
            sequence=self.next_sequence(request_id),
            level=outcome.level,
            decision=outcome.action.value,
            from_state=outcome.from_state.value,
            to_state=outcome.to_state.value,
            notes=outcome.notes,
            actor_id=outcome.actor_id,
            actor_role=outcome.actor_role,
            created_at=outcome.timestamp,
        )
        self.session.add(record)
        try:
            self.session.flush()
        except IntegrityError:
            raise ConflictError(
                f"Approval request {request_id} history was appended concurrently",
                sequence=record.sequence,
            )
        return record

    def next_sequence(self, request_id: UUID) -> int:
        last = self.session.query(func.max(ApprovalTransitionRecord.sequence)).filter(
            ApprovalTransitionRecord.request_id == request_id
        ).scalar()
        return (last or 0) + 1
    
    def update_state(
        self,
        request_id: UUID,
        new_state: ApprovalState,
        new_level: int,
        *,
        expected_version: int,
    ) -> int:
        """
        Move a request to ``new_state``/``new_level`` if it is still at ``expected_version``.
        
        Returns:
            The new version
            
        Raises:
            ConflictError: The request was modified since it was read
        """
        updated = self.session.query(ApprovalRequest).filter(
            and_(
                ApprovalRequest.id == request_id,
                ApprovalRequest.version == expected_version,
            )
        ).update(
            {
                ApprovalRequest.state: new_state.value,
                ApprovalRequest.current_level: new_level,
                ApprovalRequest.version: expected_version + 1,
                ApprovalRequest.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        if updated != 1:
            raise ConflictError(
                f"Approval request {request_id} was modified concurrently",
                expected_version=expected_version,
            )
        return expected_version + 1
    
    def refresh(self, request: ApprovalRequest) -> ApprovalRequest:
        """Reload a request (and its history) after a bulk update."""
        self.session.refresh(request)
        return request
    
    def list_templates(self, tenant_id: UUID, request_type: Optional[str] = None) -> List[WorkflowTemplate]:
        query = self.session.query(WorkflowTemplate).filter(WorkflowTemplate.tenant_id == tenant_id)
        if request_type:
            query = query.filter(WorkflowTemplate.request_type == request_type)
        return query.order_by(WorkflowTemplate.priority_order.asc(), WorkflowTemplate.name.asc()).all()
    
    def list(
        self,
        tenant_id: UUID,
        filters: ApprovalFilters,
        now: Optional[datetime] = None,
    ) -> Tuple[List[ApprovalRequest], int]:
        """Return one page of a school's requests, newest first, and the total match count."""
        now = now or utcnow()
        query = self.session.query(ApprovalRequest).filter(ApprovalRequest.tenant_id == tenant_id)

        if filters.state:
            query = query.filter(ApprovalRequest.state == filters.state)
        if filters.request_type:
            query = query.filter(ApprovalRequest.request_type == filters.request_type)
        if filters.created_by:
            query = query.filter(ApprovalRequest.created_by == filters.created_by)
        if filters.overdue:
            query = query.filter(
                ApprovalRequest.state.in_([s.value for s in OPEN_STATES]),
                ApprovalRequest.deadline < now,
            )

        query = query.order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.asc())
        limit, offset = filters.page()
        
        if filters.awaiting_role:
            # Role at the current level lives inside the JSON chain; filter in Python
            query = query.filter(ApprovalRequest.state.in_([s.value for s in OPEN_STATES]))
            matches = [
                r for r in query.all()
                if r.current_level < len(r.required_chain)
                and r.required_chain[r.current_level] == filters.awaiting_role
            ]
            return matches[offset:offset + limit], len(matches)
        
        total = query.count()
        return query.offset(offset).limit(limit).all(), total
    
    def summary(self, tenant_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts of a school's requests by state, by request type and by SLA standing."""
        now = now or utcnow()
        by_state = dict(
            self.session.query(ApprovalRequest.state, func.count(ApprovalRequest.id))
            .filter(ApprovalRequest.tenant_id == tenant_id)
            .group_by(ApprovalRequest.state)
            .all()
        )
        by_type = dict(
            self.session.query(ApprovalRequest.request_type, func.count(ApprovalRequest.id))
            .filter(ApprovalRequest.tenant_id == tenant_id)
            .group_by(ApprovalRequest.request_type)
            .all()
        )
        open_requests = self.session.query(ApprovalRequest).filter(
            ApprovalRequest.tenant_id == tenant_id,
            ApprovalRequest.state.in_([s.value for s in OPEN_STATES]),
        )
        overdue = open_requests.filter(ApprovalRequest.deadline < now).count()
        at_risk = open_requests.filter(
            ApprovalRequest.deadline >= now,
            ApprovalRequest.deadline < now + AT_RISK_WINDOW,
        ).count()
        return {
            "total": sum(by_state.values()),
            "open": sum(by_state.get(s.value, 0) for s in OPEN_STATES),
            "overdue": overdue,
            "at_risk": at_risk,
            "by_state": {s.value: by_state.get(s.value, 0) for s in ApprovalState},
            "by_type": by_type,
        }


class RequestStore:
    """
    Request Store backed by a SQLAlchemy session factory.
    
    The factory (and the engine behind it) is created by the application at
    startup and disposed at shutdown.
    """
    
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
    
    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """
        Open a unit of work; commit on success, roll back on any error.
        
        Database errors surface as ``InternalError``.
        """
        session = self.session_factory()
        try:
            yield StoreTransaction(session)
            session.commit()
        except ApprovalError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Approval store transaction failed")
            raise InternalError(f"Storage failure: {e.__class__.__name__}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
    
    def create(self, request: ApprovalRequest) -> UUID:
        with self.transaction() as tx:
            return tx.create(request)
    
    def get(self, tenant_id: UUID, request_id: UUID) -> ApprovalRequest:
        with self.transaction() as tx:
            request = tx.get(tenant_id, request_id)
            # Load history before the session closes
            list(request.history)
            return request
