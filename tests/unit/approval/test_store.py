"""Tests for the request store and its units of work."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from schoolflow.core.approval import ApprovalFilters
from schoolflow.core.approval.errors import ConflictError, InternalError, NotFoundError
from schoolflow.core.approval.machine import TransitionOutcome
from schoolflow.core.approval.states import ApprovalAction, ApprovalState
from schoolflow.core.approval.store import StoreTransaction
from schoolflow.db.models import ApprovalRequest, ApprovalTransitionRecord
from tests.factories import add_transition, create_request, create_template


def outcome(actor_id, *, level=0, to_state=ApprovalState.IN_REVIEW):
    return TransitionOutcome(
        action=ApprovalAction.APPROVE,
        level=level,
        from_state=ApprovalState.PENDING,
        to_state=to_state,
        new_level=level + 1,
        actor_id=actor_id,
        actor_role="hr",
        notes=None,
    )


class TestTransaction:
    
    def test_commit_on_success(self, store, db_session, school_id):
        with store.transaction() as tx:
            request = create_request(tx.session, tenant_id=school_id)
        
        assert db_session.get(ApprovalRequest, request.id) is not None
    
    def test_rollback_on_approval_error(self, store, db_session, school_id):
        with pytest.raises(NotFoundError):
            with store.transaction() as tx:
                request_id = create_request(tx.session, tenant_id=school_id).id
                tx.get(school_id, uuid4())
        
        assert db_session.get(ApprovalRequest, request_id) is None
    
    def test_database_errors_become_internal_errors(self, store):
        with pytest.raises(InternalError):
            with store.transaction():
                raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))
    
    def test_other_errors_propagate_after_rollback(self, store, db_session, school_id):
        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                request_id = create_request(tx.session, tenant_id=school_id).id
                raise RuntimeError("boom")
        
        assert db_session.get(ApprovalRequest, request_id) is None


class TestGet:
    
    def test_get_own_request(self, store, db_session, school_id):
        request = create_request(db_session, tenant_id=school_id)
        db_session.commit()
        
        loaded = store.get(school_id, request.id)
        assert loaded.id == request.id
        assert loaded.history == []
    
    def test_other_tenant_is_not_found(self, store, db_session, school_id):
        request = create_request(db_session, tenant_id=school_id)
        db_session.commit()
        
        with pytest.raises(NotFoundError):
            store.get(uuid4(), request.id)
    
    def test_unknown_id_is_not_found(self, store, school_id):
        with pytest.raises(NotFoundError):
            store.get(school_id, uuid4())


class TestTransitions:
    
    def test_append_assigns_increasing_sequence(self, store, db_session, school_id):
        request = create_request(db_session, tenant_id=school_id, request_type="policy")
        db_session.commit()
        
        with store.transaction() as tx:
            first = tx.append_transition(request.id, outcome(uuid4()))
            second = tx.append_transition(request.id, outcome(uuid4(), level=1, to_state=ApprovalState.APPROVED))
        
        assert (first.sequence, second.sequence) == (1, 2)
        assert second.to_state == "approved"
    
    def test_update_state_bumps_version(self, store, db_session, school_id):
        request = create_request(db_session, tenant_id=school_id, request_type="recruitment")
        db_session.commit()
        
        with store.transaction() as tx:
            new_version = tx.update_state(request.id, ApprovalState.IN_REVIEW, 1, expected_version=1)
        
        assert new_version == 2
        db_session.expire_all()
        stored = db_session.get(ApprovalRequest, request.id)
        assert (stored.state, stored.current_level, stored.version) == ("in_review", 1, 2)
    
    def test_stale_version_conflicts(self, store, db_session, school_id):
        request = create_request(db_session, tenant_id=school_id, version=3)
        db_session.commit()
        
        with pytest.raises(ConflictError):
            with store.transaction() as tx:
                tx.update_state(request.id, ApprovalState.APPROVED, 1, expected_version=2)
    
    def test_conflict_rolls_back_history(self, store, db_session, school_id):
        request = create_request(db_session, tenant_id=school_id, version=2)
        db_session.commit()
        
        with pytest.raises(ConflictError):
            with store.transaction() as tx:
                tx.append_transition(request.id, outcome(uuid4()))
                tx.update_state(request.id, ApprovalState.IN_REVIEW, 1, expected_version=1)
        
        assert db_session.query(ApprovalTransitionRecord).count() == 0
    
    def test_concurrent_writers_one_conflicts(self, store, db_session, school_id, run_in_lockstep):
        """Two transactions read the same version; only the first conditional update matches."""
        request = create_request(db_session, tenant_id=school_id)
        db_session.commit()
        
        def approve(actor_id):
            with store.transaction() as tx:
                current = tx.get(school_id, request.id)
                version = tx.update_state(current.id, ApprovalState.APPROVED, 1, expected_version=current.version)
                tx.append_transition(current.id, outcome(actor_id, to_state=ApprovalState.APPROVED))
                return version
        
        results = run_in_lockstep(lambda: approve(uuid4()), lambda: approve(uuid4()))
        
        assert 2 in results
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        final = store.get(school_id, request.id)
        assert (final.state, final.version) == ("approved", 2)
        assert len(final.history) == 1
    
    def test_duplicate_sequence_is_a_conflict(self, store, db_session, school_id, monkeypatch):
        request = create_request(db_session, tenant_id=school_id)
        add_transition(db_session, request, sequence=1)
        db_session.commit()
        monkeypatch.setattr(StoreTransaction, "next_sequence", lambda self, request_id: 1)
        
        with pytest.raises(ConflictError):
            with store.transaction() as tx:
                tx.append_transition(request.id, outcome(uuid4()))
        
        assert db_session.query(ApprovalTransitionRecord).count() == 1


class TestTemplates:
    
    def test_list_templates_scoped_and_ordered(self, store, db_session, school_id):
        create_template(db_session, tenant_id=school_id, name="b", priority_order=5)
        create_template(db_session, tenant_id=school_id, name="a", priority_order=50)
        create_template(db_session, tenant_id=school_id, name="leave", request_type="leave")
        create_template(db_session, tenant_id=uuid4(), name="foreign")
        db_session.commit()
        
        with store.transaction() as tx:
            names = [t.name for t in tx.list_templates(school_id, "expense")]
            everything = tx.list_templates(school_id)
        
        assert names == ["b", "a"]
        assert len(everything) == 3


class TestListAndSummary:
    
    @pytest.fixture
    def requests(self, db_session, school_id):
        creator = uuid4()
        created = [
            create_request(db_session, tenant_id=school_id, created_by=creator, request_type="leave"),
            create_request(db_session, tenant_id=school_id, request_type="recruitment",
                           state="in_review", current_level=1),
            create_request(db_session, tenant_id=school_id, request_type="expense", state="rejected"),
            create_request(db_session, tenant_id=school_id, request_type="policy"),
            create_request(db_session, tenant_id=uuid4(), request_type="leave"),
        ]
        db_session.commit()
        return creator, created
    
    def test_list_is_tenant_scoped(self, store, school_id, requests):
        with store.transaction() as tx:
            items, total = tx.list(school_id, ApprovalFilters())
        assert total == 4
        assert all(r.tenant_id == school_id for r in items)
    
    def test_filters(self, store, school_id, requests):
        creator, _ = requests
        with store.transaction() as tx:
            _, rejected = tx.list(school_id, ApprovalFilters(state="rejected"))
            _, leave = tx.list(school_id, ApprovalFilters(request_type="leave"))
            mine, _ = tx.list(school_id, ApprovalFilters(created_by=creator))
        assert rejected == 1
        assert leave == 1
        assert [r.created_by for r in mine] == [creator]
    
    def test_awaiting_role_matches_open_requests_at_that_level(self, store, school_id, requests):
        with store.transaction() as tx:
            items, total = tx.list(school_id, ApprovalFilters(awaiting_role="principal"))
        # leave at level 0, recruitment at level 1, policy at level 0
        assert total == 3
        assert {r.request_type for r in items} == {"leave", "recruitment", "policy"}
    
    def test_pagination(self, store, school_id, requests):
        with store.transaction() as tx:
            page, total = tx.list(school_id, ApprovalFilters(limit=2, offset=3))
            capped, _ = tx.list(school_id, ApprovalFilters(limit=500))
        assert total == 4
        assert len(page) == 1
        assert len(capped) == 4
    
    def test_summary(self, store, school_id, requests):
        with store.transaction() as tx:
            summary = tx.summary(school_id)
        assert summary["total"] == 4
        assert summary["open"] == 3
        assert summary["by_state"]["pending"] == 2
        assert summary["by_state"]["approved"] == 0
        assert summary["by_type"] == {"leave": 1, "recruitment": 1, "expense": 1, "policy": 1}


class TestDeadlineQueries:
    
    NOW = datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc)
    
    @pytest.fixture
    def late(self, db_session, school_id):
        late = create_request(db_session, tenant_id=school_id, deadline=self.NOW - timedelta(hours=1))
        create_request(db_session, tenant_id=school_id, deadline=self.NOW + timedelta(hours=5))
        create_request(db_session, tenant_id=school_id, deadline=self.NOW + timedelta(hours=50))
        create_request(db_session, tenant_id=school_id, state="approved", deadline=self.NOW - timedelta(hours=9))
        create_request(db_session, tenant_id=school_id)
        db_session.commit()
        return late
    
    def test_overdue_filter_only_returns_open_requests_past_deadline(self, store, school_id, late):
        with store.transaction() as tx:
            items, total = tx.list(school_id, ApprovalFilters(overdue=True), self.NOW)
        assert total == 1
        assert [r.id for r in items] == [late.id]
    
    def test_summary_counts_sla_standing(self, store, school_id, late):
        with store.transaction() as tx:
            summary = tx.summary(school_id, self.NOW)
        assert summary["open"] == 4
        assert summary["overdue"] == 1
        assert summary["at_risk"] == 1


class TestHistoryRecords:
    
    def test_history_is_ordered_by_sequence(self, store, db_session, school_id):
        request = create_request(db_session, tenant_id=school_id, request_type="policy")
        add_transition(db_session, request, sequence=2, level=1, from_state="in_review", to_state="approved")
        add_transition(db_session, request, sequence=1)
        db_session.commit()
        
        loaded = store.get(school_id, request.id)
        assert [r.sequence for r in loaded.history] == [1, 2]
