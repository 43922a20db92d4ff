"""Evaluation inputs and outputs: resource references, verdicts, decisions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple
from uuid import UUID

from accessgraph.core.rbac.permissions import Capability, ResourceType


@dataclass(frozen=True)
class ResourceRef:
    """
    A protected entity, by type and id.

    A profile's id is its candidate's principal id. A review's id is the
    id of the document-review relationship it stands for. ``owner_id`` is
    a hint from the calling resource module, consulted only when the store
    records no owner. ``team_id`` scopes a profile to a team.
    """
    resource_type: ResourceType
    resource_id: UUID
    owner_id: Optional[UUID] = None
    team_id: Optional[UUID] = None

    @property
    def key(self) -> Tuple[str, UUID]:
        return (ResourceType(self.resource_type).value, self.resource_id)

    def __str__(self) -> str:
        return f"{ResourceType(self.resource_type).value}:{self.resource_id}"


class VerdictKind(str, Enum):
    """A resolver either grants or declines to opine. It never denies."""
    GRANT = "grant"
    ABSTAIN = "abstain"


@dataclass(frozen=True)
class Verdict:
    kind: VerdictKind
    source: Optional[str] = None
    relationship_id: Optional[UUID] = None
    reason: str = ""

    @property
    def granted(self) -> bool:
        return self.kind == VerdictKind.GRANT

    @classmethod
    def grant(cls, source: str, relationship_id: Optional[UUID] = None, reason: str = "") -> "Verdict":
        return cls(VerdictKind.GRANT, source, relationship_id, reason)

    @classmethod
    def abstain(cls, reason: str = "") -> "Verdict":
        return cls(VerdictKind.ABSTAIN, reason=reason)


ABSTAIN = Verdict.abstain()


@dataclass
class Decision:
    """Result of one evaluation. Persisted only through the audit log."""
    allowed: bool
    principal_id: UUID
    resource: ResourceRef
    capability: Capability
    evaluated_at: datetime
    grant_source: Optional[str] = None
    granting_relationship_id: Optional[UUID] = None
    trace: List[Tuple[str, Verdict]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "principal_id": str(self.principal_id),
            "resource_type": ResourceType(self.resource.resource_type).value,
            "resource_id": str(self.resource.resource_id),
            "capability": Capability(self.capability).value,
            "grant_source": self.grant_source,
            "granting_relationship_id": (
                str(self.granting_relationship_id) if self.granting_relationship_id else None
            ),
            "evaluated_at": self.evaluated_at.isoformat(),
        }
