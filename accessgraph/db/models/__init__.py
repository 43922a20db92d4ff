"""Database models for AccessGraph."""

from accessgraph.db.models.relationship import Relationship, RelationshipHistory
from accessgraph.db.models.audit import AuditEntry

__all__ = [
    "Relationship",
    "RelationshipHistory",
    "AuditEntry",
]
