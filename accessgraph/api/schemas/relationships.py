"""Relationship schemas for the AccessGraph API."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from uuid import UUID

from pydantic import BaseModel, Field

from accessgraph.core.rbac.roles import Role
from accessgraph.core.relationships.states import RelationshipKind, RelationshipStatus


class RelationshipCreate(BaseModel):
    """Request to create a relationship (an invitation unless pre-accepted)."""
    kind: RelationshipKind
    subject_id: UUID
    object_id: UUID
    object_type: Optional[str] = None
    context_id: Optional[UUID] = None
    role: Optional[Role] = None
    overrides: Optional[Dict[str, bool]] = None
    requires_acceptance: bool = True
    valid_from: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None


class RelationshipTransition(BaseModel):
    status: RelationshipStatus
    expected_status: Optional[RelationshipStatus] = None
    reason: Optional[str] = Field(None, max_length=1000)


class OverridesUpdate(BaseModel):
    """Replace a relationship's capability overrides. None clears them."""
    overrides: Optional[Dict[str, bool]] = None


class RelationshipResponse(BaseModel):
    id: UUID
    kind: str
    subject_id: UUID
    object_type: str
    object_id: UUID
    context_id: Optional[UUID]
    role: Optional[str]
    capability_overrides: Dict[str, bool]
    status: str
    valid_from: Optional[datetime]
    expires_at: Optional[datetime]
    created_by: Optional[UUID]
    extra_data: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class HistoryEntryResponse(BaseModel):
    id: UUID
    relationship_id: UUID
    from_status: Optional[str]
    to_status: str
    action: str
    actor_id: Optional[UUID]
    reason: Optional[str]
    created_at: Optional[datetime]


class RelationshipListResponse(BaseModel):
    items: List[RelationshipResponse]
    total: int
