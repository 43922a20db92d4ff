"""Who may create and transition relationships.

Creating a review grant requires owning the document. That ownership
fact is read with a privileged lookup rather than a document
evaluation, because document visibility itself consults review grants.
"""

import logging
from typing import Optional
from uuid import UUID

from accessgraph.core.rbac.permissions import Capability, ResourceType
from accessgraph.core.relationships.states import (
    RelationshipKind,
    RelationshipStatus,
    PRINCIPAL_OBJECT,
)
from accessgraph.db.models.relationship import Relationship
from .aggregator import PermissionAggregator
from .context import EvalContext
from .decision import ResourceRef

logger = logging.getLogger(__name__)

# Responding to an invitation is the invitee's call
INVITEE_ONLY = frozenset([RelationshipStatus.ACTIVE, RelationshipStatus.DECLINED])

# Capability on the object that lets someone other than the parties manage a membership
MANAGING_CAPABILITY = {
    RelationshipKind.TEAM_MEMBERSHIP: (ResourceType.TEAM, Capability.REMOVE_MEMBER),
    RelationshipKind.GROUP_MEMBERSHIP: (ResourceType.PEER_GROUP, Capability.MODERATE),
}


class GrantPolicy:
    """Authorization rules for the relationship write surface."""

    def __init__(self, aggregator: PermissionAggregator):
        self.aggregator = aggregator

    def may_create(
        self,
        actor_id: UUID,
        kind: RelationshipKind,
        subject_id: UUID,
        object_type: str,
        object_id: UUID,
        *,
        context_id: Optional[UUID] = None,
    ) -> bool:
        """
        Whether ``actor_id`` may create this relationship.

        - ownership: never through this surface (resource modules register it)
        - team membership: team ``invite``
        - group membership: joining yourself, or group ``invite``
        - document review: owning the document, naming someone else as reviewer
        - delegated grants: the candidate themselves; a mentor assignment may
          also come from a team member holding ``edit_candidates``
        """
        kind = RelationshipKind(kind)

        if kind == RelationshipKind.OWNERSHIP:
            return False

        if kind == RelationshipKind.TEAM_MEMBERSHIP:
            return self._allowed(actor_id, ResourceType.TEAM, object_id, Capability.INVITE)

        if kind == RelationshipKind.GROUP_MEMBERSHIP:
            if actor_id == subject_id:
                return True
            return self._allowed(actor_id, ResourceType.PEER_GROUP, object_id, Capability.INVITE)

        if kind == RelationshipKind.DOCUMENT_REVIEW:
            if subject_id == actor_id:
                return False
            document = ResourceRef(ResourceType.DOCUMENT, object_id)
            ctx = EvalContext(self.aggregator, actor_id, document, self.aggregator.clock())
            return ctx.owner_of(document) == actor_id

        if object_type != PRINCIPAL_OBJECT:
            return False
        if actor_id == object_id:
            return True
        if kind == RelationshipKind.MENTOR_ASSIGNMENT and context_id is not None:
            return self._allowed(actor_id, ResourceType.TEAM, context_id, Capability.EDIT_CANDIDATES)
        return False

    def may_view(self, actor_id: UUID, relationship: Relationship) -> bool:
        """Parties, the grantor, and managers of the object may read a relationship."""
        return self._is_party(actor_id, relationship) or self._manages(actor_id, relationship)

    def may_transition(
        self, actor_id: UUID, relationship: Relationship, new_status: RelationshipStatus
    ) -> bool:
        """
        Whether ``actor_id`` may move ``relationship`` to ``new_status``.

        Accepting or declining belongs to the subject. Other transitions are
        open to either party, the grantor, or a manager of the object.
        """
        new_status = RelationshipStatus(new_status)

        if relationship.status == RelationshipStatus.PENDING.value and new_status in INVITEE_ONLY:
            return relationship.subject_id == actor_id

        return self._is_party(actor_id, relationship) or self._manages(actor_id, relationship)

    def may_set_overrides(self, actor_id: UUID, relationship: Relationship) -> bool:
        """
        Custom permissions on a team membership are a team ``change_role``
        decision; on a delegated grant they belong to the candidate.
        """
        kind = RelationshipKind(relationship.kind)
        if kind == RelationshipKind.TEAM_MEMBERSHIP:
            return self._allowed(
                actor_id, ResourceType.TEAM, relationship.object_id, Capability.CHANGE_ROLE
            )
        if relationship.object_type == PRINCIPAL_OBJECT:
            return relationship.object_id == actor_id
        return self._manages(actor_id, relationship)

    @staticmethod
    def _is_party(actor_id: UUID, relationship: Relationship) -> bool:
        if relationship.subject_id == actor_id or relationship.created_by == actor_id:
            return True
        return relationship.object_type == PRINCIPAL_OBJECT and relationship.object_id == actor_id

    def _manages(self, actor_id: UUID, relationship: Relationship) -> bool:
        kind = RelationshipKind(relationship.kind)
        if kind == RelationshipKind.DOCUMENT_REVIEW:
            document = ResourceRef(ResourceType.DOCUMENT, relationship.object_id)
            ctx = EvalContext(self.aggregator, actor_id, document, self.aggregator.clock())
            return ctx.owner_of(document) == actor_id

        managing = MANAGING_CAPABILITY.get(kind)
        if managing is None:
            return False
        resource_type, capability = managing
        return self._allowed(actor_id, resource_type, relationship.object_id, capability)

    def _allowed(
        self, actor_id: UUID, resource_type: ResourceType, resource_id: UUID, capability: Capability
    ) -> bool:
        decision = self.aggregator.evaluate(
            actor_id, ResourceRef(resource_type, resource_id), capability
        )
        return decision.allowed
