"""Relationship database models.

A relationship is a durable fact connecting a subject principal to a
resource or another principal. Rows are never hard-deleted while history
references them; they move to a terminal status instead.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Index, Uuid, text
from sqlalchemy.orm import relationship

from accessgraph.core.clock import utcnow
from accessgraph.db.base import Base

# Statuses that still occupy the subject/object slot
LIVE_STATUS_SQL = "status IN ('pending', 'active', 'paused')"


class Relationship(Base):
    """
    A grant-bearing link between a principal and an object.

    ``object_type`` is either ``principal`` (mentor -> candidate,
    supporter -> candidate, ...) or a resource type (team, document,
    peer_group). ``context_id`` scopes principal-to-principal links to a
    team where the original relationship lives inside one.
    """
    __tablename__ = "relationships"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kind = Column(String(50), nullable=False, index=True)

    # Who is granted, and over what
    subject_id = Column(Uuid, nullable=False, index=True)
    object_type = Column(String(50), nullable=False)
    object_id = Column(Uuid, nullable=False, index=True)
    context_id = Column(Uuid, nullable=True, index=True)

    # Role or delegated access level, plus explicit overrides
    role = Column(String(50), nullable=True)
    capability_overrides = Column(JSON, nullable=False, default=dict)

    # Lifecycle
    status = Column(String(20), nullable=False, default="pending", index=True)
    valid_from = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)

    created_by = Column(Uuid, nullable=True)
    extra_data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    history = relationship(
        "RelationshipHistory",
        back_populates="record",
        order_by="RelationshipHistory.created_at",
    )

    __table_args__ = (
        Index(
            "uq_relationships_live_link",
            "kind", "subject_id", "object_type", "object_id",
            unique=True,
            sqlite_where=text(LIVE_STATUS_SQL),
            postgresql_where=text(LIVE_STATUS_SQL),
        ),
        Index("ix_relationships_subject_kind_status", "subject_id", "kind", "status"),
        Index("ix_relationships_object_kind_status", "object_type", "object_id", "kind", "status"),
    )

    def is_live(self, now: Optional[datetime] = None) -> bool:
        """Active AND inside its validity window. Checked at evaluation time."""
        now = now or utcnow()
        if self.status != "active":
            return False
        if self.valid_from is not None and self.valid_from > now:
            return False
        if self.expires_at is not None and self.expires_at <= now:
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"<Relationship {self.kind} {self.subject_id} -> "
            f"{self.object_type}:{self.object_id} [{self.status}]>"
        )


class RelationshipHistory(Base):
    """
    Records every status transition of a relationship.

    Provides the trail behind accepted/ended timestamps and end reasons.
    """
    __tablename__ = "relationship_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    relationship_id = Column(Uuid, ForeignKey("relationships.id"), nullable=False, index=True)

    from_status = Column(String(20), nullable=True)  # None for creation
    to_status = Column(String(20), nullable=False)
    action = Column(String(20), nullable=False)

    actor_id = Column(Uuid, nullable=True)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    record = relationship("Relationship", back_populates="history")

    def __repr__(self) -> str:
        return f"<RelationshipHistory {self.from_status} -> {self.to_status}>"
