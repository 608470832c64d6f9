"""Tests for approval state definitions and the transition table."""

from schoolflow.core.approval.states import (
    ActorGuard,
    ApprovalAction,
    ApprovalState,
    OPEN_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    can_transition,
    get_transition_rule,
)


class TestApprovalStates:
    """Test approval state definitions."""
    
    def test_all_states_defined(self):
        """Test that all expected states exist."""
        assert {s.value for s in ApprovalState} == {
            "pending", "in_review", "approved", "rejected", "cancelled",
        }
    
    def test_terminal_states(self):
        """Terminal states are exactly approved, rejected and cancelled."""
        assert TERMINAL_STATES == {
            ApprovalState.APPROVED,
            ApprovalState.REJECTED,
            ApprovalState.CANCELLED,
        }
    
    def test_open_and_terminal_partition_states(self):
        assert OPEN_STATES.isdisjoint(TERMINAL_STATES)
        assert OPEN_STATES | TERMINAL_STATES == set(ApprovalState)


class TestApprovalTransitions:
    """Test valid state transitions."""
    
    def test_pending_transitions(self):
        """Test valid transitions from PENDING state."""
        assert can_transition(ApprovalState.PENDING, ApprovalAction.APPROVE)
        assert can_transition(ApprovalState.PENDING, ApprovalAction.REJECT)
        assert can_transition(ApprovalState.PENDING, ApprovalAction.CANCEL)
    
    def test_in_review_transitions(self):
        """Cancellation is only possible before the first decision."""
        assert can_transition(ApprovalState.IN_REVIEW, ApprovalAction.APPROVE)
        assert can_transition(ApprovalState.IN_REVIEW, ApprovalAction.REJECT)
        assert not can_transition(ApprovalState.IN_REVIEW, ApprovalAction.CANCEL)
    
    def test_terminal_states_have_no_transitions(self):
        for state in TERMINAL_STATES:
            assert state not in VALID_TRANSITIONS
            for action in ApprovalAction:
                assert not can_transition(state, action)
    
    def test_reject_requires_notes(self):
        rule = get_transition_rule(ApprovalState.IN_REVIEW, ApprovalAction.REJECT)
        assert rule.to_state == ApprovalState.REJECTED
        assert rule.requires_notes is True
    
    def test_cancel_is_guarded_by_creator(self):
        rule = get_transition_rule(ApprovalState.PENDING, ApprovalAction.CANCEL)
        assert rule.guard == ActorGuard.CREATOR
        assert rule.to_state == ApprovalState.CANCELLED
    
    def test_approve_is_guarded_by_level_role(self):
        rule = get_transition_rule(ApprovalState.PENDING, ApprovalAction.APPROVE)
        assert rule.guard == ActorGuard.CURRENT_LEVEL_ROLE
        assert rule.requires_notes is False
    
    def test_unknown_rule_is_none(self):
        assert get_transition_rule(ApprovalState.APPROVED, ApprovalAction.APPROVE) is None
