"""Tests for the relationship lifecycle definitions."""

from accessgraph.core.relationships.states import (
    RelationshipKind,
    RelationshipStatus,
    RelationshipAction,
    VALID_TRANSITIONS,
    TERMINAL_STATES,
    LIVE_STATES,
    KIND_CONTEXT,
    KIND_OBJECT_TYPES,
    PRINCIPAL_OBJECT,
    can_transition,
    get_transition_rule,
    is_terminal,
)


class TestRelationshipStates:
    """Test status definitions."""

    def test_all_statuses_defined(self):
        expected = ["pending", "active", "paused", "declined", "cancelled", "expired", "ended"]
        for name in expected:
            assert hasattr(RelationshipStatus, name.upper())

    def test_terminal_states(self):
        for status in (
            RelationshipStatus.DECLINED,
            RelationshipStatus.CANCELLED,
            RelationshipStatus.EXPIRED,
            RelationshipStatus.ENDED,
        ):
            assert is_terminal(status)
        assert not is_terminal(RelationshipStatus.ACTIVE)
        assert not is_terminal(RelationshipStatus.PENDING)

    def test_terminal_states_have_no_transitions(self):
        for status in TERMINAL_STATES:
            assert VALID_TRANSITIONS.get(status, set()) == set()

    def test_live_and_terminal_partition_statuses(self):
        assert LIVE_STATES | TERMINAL_STATES == frozenset(RelationshipStatus)
        assert not LIVE_STATES & TERMINAL_STATES


class TestTransitions:
    """Test the transition table."""

    def test_invitation_responses(self):
        assert can_transition(RelationshipStatus.PENDING, RelationshipStatus.ACTIVE)
        assert can_transition(RelationshipStatus.PENDING, RelationshipStatus.DECLINED)
        assert can_transition(RelationshipStatus.PENDING, RelationshipStatus.CANCELLED)

    def test_pause_and_resume(self):
        assert can_transition(RelationshipStatus.ACTIVE, RelationshipStatus.PAUSED)
        assert can_transition(RelationshipStatus.PAUSED, RelationshipStatus.ACTIVE)

    def test_cannot_pause_pending(self):
        assert not can_transition(RelationshipStatus.PENDING, RelationshipStatus.PAUSED)

    def test_cannot_decline_active(self):
        assert not can_transition(RelationshipStatus.ACTIVE, RelationshipStatus.DECLINED)

    def test_no_resurrection(self):
        assert not can_transition(RelationshipStatus.CANCELLED, RelationshipStatus.ACTIVE)
        assert not can_transition(RelationshipStatus.EXPIRED, RelationshipStatus.ACTIVE)

    def test_every_live_state_can_expire(self):
        for status in LIVE_STATES:
            assert can_transition(status, RelationshipStatus.EXPIRED)

    def test_transition_rule_actions(self):
        rule = get_transition_rule(RelationshipStatus.PENDING, RelationshipStatus.ACTIVE)
        assert rule.action == RelationshipAction.ACCEPT
        rule = get_transition_rule(RelationshipStatus.PAUSED, RelationshipStatus.ACTIVE)
        assert rule.action == RelationshipAction.RESUME
        assert get_transition_rule(RelationshipStatus.ENDED, RelationshipStatus.ACTIVE) is None


class TestKindTables:
    """Test per-kind context and object tables."""

    def test_ownership_has_no_role_context(self):
        assert RelationshipKind.OWNERSHIP not in KIND_CONTEXT

    def test_every_other_kind_has_context(self):
        for kind in RelationshipKind:
            if kind != RelationshipKind.OWNERSHIP:
                assert kind in KIND_CONTEXT

    def test_delegated_grants_target_principals(self):
        for kind in (
            RelationshipKind.MENTOR_ASSIGNMENT,
            RelationshipKind.ACCOUNTABILITY_PARTNERSHIP,
            RelationshipKind.FAMILY_SUPPORT,
            RelationshipKind.ADVISOR_GRANT,
        ):
            assert KIND_OBJECT_TYPES[kind] == frozenset([PRINCIPAL_OBJECT])

    def test_ownership_targets_any_resource(self):
        assert "document" in KIND_OBJECT_TYPES[RelationshipKind.OWNERSHIP]
        assert "peer_group" in KIND_OBJECT_TYPES[RelationshipKind.OWNERSHIP]
        assert PRINCIPAL_OBJECT not in KIND_OBJECT_TYPES[RelationshipKind.OWNERSHIP]
