"""Relationship kinds, lifecycle states and transitions.

State Machine Diagram (shared by every relationship kind):

    ┌──────────┐
    │ PENDING  │ ← Initial state for invitations
    └────┬─────┘
         │ accept            decline / cancel / expire
         │                ┌──────────────────────────► DECLINED / CANCELLED / EXPIRED
    ┌────▼─────┐          │
    │  ACTIVE  │ ← Initial state for direct grants
    └─┬────▲───┘
      │    │ resume
 pause│  ┌─┴──────┐
      └─►│ PAUSED │
         └────────┘
    ACTIVE / PAUSED ── end / cancel / expire ──► ENDED / CANCELLED / EXPIRED

Terminal states never transition onward.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple, FrozenSet

from accessgraph.core.rbac.permissions import ResourceType
from accessgraph.core.rbac.roles import ContextType


class RelationshipKind(str, Enum):
    """Kinds of access-conferring relationships."""

    OWNERSHIP = "ownership"
    TEAM_MEMBERSHIP = "team_membership"
    DOCUMENT_REVIEW = "document_review"
    MENTOR_ASSIGNMENT = "mentor_assignment"
    ACCOUNTABILITY_PARTNERSHIP = "accountability_partnership"
    FAMILY_SUPPORT = "family_support"
    ADVISOR_GRANT = "advisor_grant"
    GROUP_MEMBERSHIP = "group_membership"


class RelationshipStatus(str, Enum):
    """Lifecycle states of a relationship."""

    PENDING = "pending"       # Invitation sent, awaiting response
    ACTIVE = "active"         # Confers access
    PAUSED = "paused"         # Temporarily suspended

    # Terminal states
    DECLINED = "declined"     # Invitation refused
    CANCELLED = "cancelled"   # Revoked by the grantor
    EXPIRED = "expired"       # Validity window passed
    ENDED = "ended"           # Relationship concluded normally


class RelationshipAction(str, Enum):
    """Actions that trigger status transitions."""

    CREATE = "create"
    ACCEPT = "accept"      # PENDING → ACTIVE
    DECLINE = "decline"    # PENDING → DECLINED
    PAUSE = "pause"        # ACTIVE → PAUSED
    RESUME = "resume"      # PAUSED → ACTIVE
    END = "end"            # ACTIVE/PAUSED → ENDED
    CANCEL = "cancel"      # PENDING/ACTIVE/PAUSED → CANCELLED
    EXPIRE = "expire"      # PENDING/ACTIVE/PAUSED → EXPIRED


# Object kind marker for principal-to-principal relationships
PRINCIPAL_OBJECT = "principal"


class TransitionRule(NamedTuple):
    """Defines a valid status transition."""
    from_status: RelationshipStatus
    to_status: RelationshipStatus
    action: RelationshipAction


TRANSITION_RULES: list[TransitionRule] = [
    # Invitation response
    TransitionRule(RelationshipStatus.PENDING, RelationshipStatus.ACTIVE, RelationshipAction.ACCEPT),
    TransitionRule(RelationshipStatus.PENDING, RelationshipStatus.DECLINED, RelationshipAction.DECLINE),
    TransitionRule(RelationshipStatus.PENDING, RelationshipStatus.CANCELLED, RelationshipAction.CANCEL),
    TransitionRule(RelationshipStatus.PENDING, RelationshipStatus.EXPIRED, RelationshipAction.EXPIRE),

    # Suspension
    TransitionRule(RelationshipStatus.ACTIVE, RelationshipStatus.PAUSED, RelationshipAction.PAUSE),
    TransitionRule(RelationshipStatus.PAUSED, RelationshipStatus.ACTIVE, RelationshipAction.RESUME),

    # Termination
    TransitionRule(RelationshipStatus.ACTIVE, RelationshipStatus.ENDED, RelationshipAction.END),
    TransitionRule(RelationshipStatus.ACTIVE, RelationshipStatus.CANCELLED, RelationshipAction.CANCEL),
    TransitionRule(RelationshipStatus.ACTIVE, RelationshipStatus.EXPIRED, RelationshipAction.EXPIRE),
    TransitionRule(RelationshipStatus.PAUSED, RelationshipStatus.ENDED, RelationshipAction.END),
    TransitionRule(RelationshipStatus.PAUSED, RelationshipStatus.CANCELLED, RelationshipAction.CANCEL),
    TransitionRule(RelationshipStatus.PAUSED, RelationshipStatus.EXPIRED, RelationshipAction.EXPIRE),
]

# Build lookup tables for efficient access
VALID_TRANSITIONS: Dict[RelationshipStatus, Set[RelationshipStatus]] = {}
TRANSITION_TARGETS: Dict[tuple[RelationshipStatus, RelationshipStatus], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_status, set()).add(rule.to_status)
    TRANSITION_TARGETS[(rule.from_status, rule.to_status)] = rule


TERMINAL_STATES: FrozenSet[RelationshipStatus] = frozenset([
    RelationshipStatus.DECLINED,
    RelationshipStatus.CANCELLED,
    RelationshipStatus.EXPIRED,
    RelationshipStatus.ENDED,
])

# States that occupy the subject/object slot (duplicate check)
LIVE_STATES: FrozenSet[RelationshipStatus] = frozenset([
    RelationshipStatus.PENDING,
    RelationshipStatus.ACTIVE,
    RelationshipStatus.PAUSED,
])

# States the expiry sweep moves to EXPIRED
EXPIRABLE_STATES: FrozenSet[RelationshipStatus] = LIVE_STATES


# Role context for each role-bearing kind
KIND_CONTEXT: Dict[RelationshipKind, ContextType] = {
    RelationshipKind.TEAM_MEMBERSHIP: ContextType.TEAM,
    RelationshipKind.GROUP_MEMBERSHIP: ContextType.PEER_GROUP,
    RelationshipKind.DOCUMENT_REVIEW: ContextType.DOCUMENT_REVIEW,
    RelationshipKind.MENTOR_ASSIGNMENT: ContextType.MENTOR_ASSIGNMENT,
    RelationshipKind.ACCOUNTABILITY_PARTNERSHIP: ContextType.ACCOUNTABILITY_PARTNERSHIP,
    RelationshipKind.FAMILY_SUPPORT: ContextType.FAMILY_SUPPORT,
    RelationshipKind.ADVISOR_GRANT: ContextType.ADVISOR_GRANT,
}

# What each kind's object must be
KIND_OBJECT_TYPES: Dict[RelationshipKind, FrozenSet[str]] = {
    RelationshipKind.OWNERSHIP: frozenset(t.value for t in ResourceType),
    RelationshipKind.TEAM_MEMBERSHIP: frozenset([ResourceType.TEAM.value]),
    RelationshipKind.GROUP_MEMBERSHIP: frozenset([ResourceType.PEER_GROUP.value]),
    RelationshipKind.DOCUMENT_REVIEW: frozenset([ResourceType.DOCUMENT.value]),
    RelationshipKind.MENTOR_ASSIGNMENT: frozenset([PRINCIPAL_OBJECT]),
    RelationshipKind.ACCOUNTABILITY_PARTNERSHIP: frozenset([PRINCIPAL_OBJECT]),
    RelationshipKind.FAMILY_SUPPORT: frozenset([PRINCIPAL_OBJECT]),
    RelationshipKind.ADVISOR_GRANT: frozenset([PRINCIPAL_OBJECT]),
}


def can_transition(from_status: RelationshipStatus, to_status: RelationshipStatus) -> bool:
    """Check if a status is reachable in one step."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def get_transition_rule(
    from_status: RelationshipStatus, to_status: RelationshipStatus
) -> Optional[TransitionRule]:
    """Get the rule for a status pair."""
    return TRANSITION_TARGETS.get((from_status, to_status))


def is_terminal(status: RelationshipStatus) -> bool:
    return status in TERMINAL_STATES
