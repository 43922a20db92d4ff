"""Relationship API endpoints.

Invitation and acceptance flows create relationships here and move them
through their lifecycle. Every write is authorized against the acting
principal before it reaches the store.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from accessgraph.api.deps import get_grant_policy, get_principal_id, get_store
from accessgraph.api.schemas.relationships import (
    HistoryEntryResponse,
    OverridesUpdate,
    RelationshipCreate,
    RelationshipListResponse,
    RelationshipResponse,
    RelationshipTransition,
)
from accessgraph.core.authz import GrantPolicy
from accessgraph.core.exceptions import InvalidCapability
from accessgraph.core.relationships import RelationshipKind, RelationshipStore
from accessgraph.db.models.relationship import Relationship

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/relationships", tags=["relationships"])


def _get_visible(
    relationship_id: UUID, store: RelationshipStore, policy: GrantPolicy, principal_id: UUID
) -> Relationship:
    relationship = store.get(relationship_id)
    if not policy.may_view(principal_id, relationship):
        # Indistinguishable from a missing relationship
        raise HTTPException(status_code=404, detail="Relationship not found")
    return relationship


@router.post("", response_model=RelationshipResponse, status_code=status.HTTP_201_CREATED)
async def create_relationship(
    data: RelationshipCreate,
    store: RelationshipStore = Depends(get_store),
    policy: GrantPolicy = Depends(get_grant_policy),
    principal_id: UUID = Depends(get_principal_id),
):
    """Create a relationship (pending until the subject accepts, by default)."""
    try:
        object_type = store.resolve_object_type(data.kind, data.object_type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if not policy.may_create(
        principal_id, data.kind, data.subject_id, object_type, data.object_id,
        context_id=data.context_id,
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not allowed to create {data.kind.value} relationship",
        )

    try:
        relationship = store.create_relationship(
            data.kind,
            data.subject_id,
            data.object_id,
            object_type=object_type,
            role=data.role,
            overrides=data.overrides,
            requires_acceptance=data.requires_acceptance,
            expires_at=data.expires_at,
            valid_from=data.valid_from,
            context_id=data.context_id,
            created_by=principal_id,
            metadata=data.metadata,
        )
    except InvalidCapability:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return relationship


@router.get("", response_model=RelationshipListResponse)
async def list_active_relationships(
    kind: Optional[RelationshipKind] = None,
    store: RelationshipStore = Depends(get_store),
    principal_id: UUID = Depends(get_principal_id),
):
    """List the caller's live relationships, optionally of one kind."""
    items = [
        RelationshipResponse.model_validate(r)
        for r in store.list_active_relationships(principal_id, kind)
    ]
    return RelationshipListResponse(items=items, total=len(items))


@router.get("/{relationship_id}", response_model=RelationshipResponse)
async def get_relationship(
    relationship_id: UUID,
    store: RelationshipStore = Depends(get_store),
    policy: GrantPolicy = Depends(get_grant_policy),
    principal_id: UUID = Depends(get_principal_id),
):
    return _get_visible(relationship_id, store, policy, principal_id)


@router.get("/{relationship_id}/history", response_model=List[HistoryEntryResponse])
async def get_relationship_history(
    relationship_id: UUID,
    store: RelationshipStore = Depends(get_store),
    policy: GrantPolicy = Depends(get_grant_policy),
    principal_id: UUID = Depends(get_principal_id),
):
    """Status history of a relationship, oldest first."""
    _get_visible(relationship_id, store, policy, principal_id)
    return store.history(relationship_id)


@router.post("/{relationship_id}/transition", response_model=RelationshipResponse)
async def transition_relationship(
    relationship_id: UUID,
    data: RelationshipTransition,
    store: RelationshipStore = Depends(get_store),
    policy: GrantPolicy = Depends(get_grant_policy),
    principal_id: UUID = Depends(get_principal_id),
):
    """Accept, decline, pause, resume, end or cancel a relationship."""
    relationship = _get_visible(relationship_id, store, policy, principal_id)

    if not policy.may_transition(principal_id, relationship, data.status):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not allowed to move relationship to {data.status.value}",
        )

    updated = store.transition(
        relationship_id,
        data.status,
        expected_status=data.expected_status,
        actor_id=principal_id,
        reason=data.reason,
    )
    logger.info(
        f"Relationship {relationship_id} moved to {data.status.value} by {principal_id}"
    )
    return updated


@router.put("/{relationship_id}/overrides", response_model=RelationshipResponse)
async def update_overrides(
    relationship_id: UUID,
    data: OverridesUpdate,
    store: RelationshipStore = Depends(get_store),
    policy: GrantPolicy = Depends(get_grant_policy),
    principal_id: UUID = Depends(get_principal_id),
):
    """Replace per-relationship capability overrides."""
    relationship = _get_visible(relationship_id, store, policy, principal_id)

    if not policy.may_set_overrides(principal_id, relationship):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to change permissions on this relationship",
        )

    return store.set_overrides(relationship_id, data.overrides, actor_id=principal_id)
