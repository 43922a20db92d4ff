"""Relationship store and lifecycle state machine."""

from .states import (
    RelationshipKind,
    RelationshipStatus,
    RelationshipAction,
    PRINCIPAL_OBJECT,
    TERMINAL_STATES,
    LIVE_STATES,
    can_transition,
)
from .store import RelationshipStore, ActiveRelationships

__all__ = [
    "RelationshipKind",
    "RelationshipStatus",
    "RelationshipAction",
    "PRINCIPAL_OBJECT",
    "TERMINAL_STATES",
    "LIVE_STATES",
    "can_transition",
    "RelationshipStore",
    "ActiveRelationships",
]
