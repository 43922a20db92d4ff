"""Decision schemas for the AccessGraph API."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from uuid import UUID

from pydantic import BaseModel

from accessgraph.core.authz.decision import Decision, ResourceRef
from accessgraph.core.rbac.permissions import Capability, ResourceType


class ResourceRefSchema(BaseModel):
    """
    A protected resource.

    Ownership is never taken from the request: the engine reads it from
    the store. A review is addressed by its document-review relationship id.
    """
    resource_type: ResourceType
    resource_id: UUID
    team_id: Optional[UUID] = None

    def to_ref(self) -> ResourceRef:
        return ResourceRef(
            resource_type=self.resource_type,
            resource_id=self.resource_id,
            team_id=self.team_id,
        )


class DecisionRequest(BaseModel):
    resource: ResourceRefSchema
    capability: Capability
    audit: bool = False
    context: Optional[Dict[str, Any]] = None


class CapabilitiesRequest(BaseModel):
    resource: ResourceRefSchema
    capabilities: Optional[List[Capability]] = None


class DecisionResponse(BaseModel):
    allowed: bool
    principal_id: UUID
    resource_type: ResourceType
    resource_id: UUID
    capability: Capability
    grant_source: Optional[str] = None
    granting_relationship_id: Optional[UUID] = None
    evaluated_at: datetime

    @classmethod
    def from_decision(cls, decision: Decision) -> "DecisionResponse":
        return cls(
            allowed=decision.allowed,
            principal_id=decision.principal_id,
            resource_type=decision.resource.resource_type,
            resource_id=decision.resource.resource_id,
            capability=decision.capability,
            grant_source=decision.grant_source,
            granting_relationship_id=decision.granting_relationship_id,
            evaluated_at=decision.evaluated_at,
        )


class VerdictResponse(BaseModel):
    resolver: str
    verdict: str
    source: Optional[str] = None
    relationship_id: Optional[UUID] = None
    reason: str = ""


class ExplainResponse(DecisionResponse):
    trace: List[VerdictResponse]

    @classmethod
    def from_decision(cls, decision: Decision) -> "ExplainResponse":
        base = DecisionResponse.from_decision(decision).model_dump()
        trace = [
            VerdictResponse(
                resolver=kind,
                verdict=verdict.kind.value,
                source=verdict.source,
                relationship_id=verdict.relationship_id,
                reason=verdict.reason,
            )
            for kind, verdict in decision.trace
        ]
        return cls(**base, trace=trace)


class CapabilitiesResponse(BaseModel):
    principal_id: UUID
    resource_type: ResourceType
    resource_id: UUID
    capabilities: List[Capability]
