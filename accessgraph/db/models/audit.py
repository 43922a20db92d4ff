"""Decision audit model for AccessGraph.

Entries are append-only: the ORM refuses updates. Rows are removed only
by the retention purge, and never when flagged for compliance.
"""

import uuid
from typing import Optional, Dict, Any

from sqlalchemy import Column, String, DateTime, JSON, Boolean, Uuid, event
from sqlalchemy.orm import Mapper

from accessgraph.core.clock import utcnow
from accessgraph.db.base import Base


class AuditEntry(Base):
    """
    Persisted copy of one access decision.

    Records actor, target, capability, outcome and the grant that
    justified it, plus caller-supplied context metadata.
    """
    __tablename__ = "audit_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor
    actor_id = Column(Uuid, nullable=False, index=True)

    # Target
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(Uuid, nullable=False, index=True)
    capability = Column(String(50), nullable=False)

    # Outcome
    allowed = Column(Boolean, nullable=False, index=True)
    grant_source = Column(String(50), nullable=True)
    granting_relationship_id = Column(Uuid, nullable=True)
    evaluated_at = Column(DateTime, nullable=False)

    # Call-site context
    context = Column(JSON, nullable=True)
    request_id = Column(String(64), nullable=True)
    compliance = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        verdict = "allow" if self.allowed else "deny"
        return f"<AuditEntry {verdict} {self.capability} on {self.resource_type} by {self.actor_id}>"

    @classmethod
    def create_entry(
        cls,
        actor_id: uuid.UUID,
        resource_type: str,
        resource_id: uuid.UUID,
        capability: str,
        allowed: bool,
        evaluated_at,
        *,
        grant_source: Optional[str] = None,
        granting_relationship_id: Optional[uuid.UUID] = None,
        context: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
        compliance: bool = False,
    ) -> "AuditEntry":
        """Factory method to create a new audit entry."""
        return cls(
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            capability=capability,
            allowed=allowed,
            evaluated_at=evaluated_at,
            grant_source=grant_source,
            granting_relationship_id=granting_relationship_id,
            context=context,
            request_id=request_id,
            compliance=compliance,
        )


@event.listens_for(AuditEntry, "before_update")
def _reject_audit_update(mapper: Mapper, connection, target: AuditEntry) -> None:
    raise ValueError("Audit entries are immutable")
