"""Cycle-safe evaluation context.

Resolvers often need facts about a resource other than the one being
evaluated (a document's owner while deciding a review, a candidate's
team membership while deciding a profile). Those facts are read through
``privileged_lookup``, which goes straight to the relationship store and
never re-enters the aggregator. Only facts about the resource under
evaluation may be asked through ``evaluate``. Together these rules make
mutual-dependency cycles impossible.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Union
from uuid import UUID

from accessgraph.core.exceptions import CrossResourceEvaluation
from accessgraph.core.rbac.permissions import Capability, ResourceType
from accessgraph.core.relationships.states import RelationshipKind
from accessgraph.db.models.relationship import Relationship
from .decision import ResourceRef

if TYPE_CHECKING:
    from .aggregator import PermissionAggregator

logger = logging.getLogger(__name__)

# Same-resource sub-evaluations nest at most this deep
MAX_NESTING = 8


@dataclass(frozen=True)
class OwnerOf:
    """Who owns a resource."""
    resource_type: str
    resource_id: UUID


@dataclass(frozen=True)
class LiveRelationship:
    """The live relationship of a kind from subject to object, if any."""
    kind: RelationshipKind
    subject_id: UUID
    object_type: str
    object_id: UUID


@dataclass(frozen=True)
class LiveRelationshipsTo:
    """All live relationships of a kind pointing at an object."""
    kind: RelationshipKind
    object_type: str
    object_id: UUID


@dataclass(frozen=True)
class RelationshipRecord:
    """A relationship row by id, whatever its status."""
    relationship_id: UUID


FactQuery = Union[OwnerOf, LiveRelationship, LiveRelationshipsTo, RelationshipRecord]


class EvalContext:
    """
    Request-scoped state for one top-level evaluation.

    Holds the evaluation time, memoized facts, and the set of capability
    checks currently in flight for the root resource.
    """

    def __init__(
        self,
        aggregator: "PermissionAggregator",
        principal_id: UUID,
        root: ResourceRef,
        now: datetime,
    ):
        self.aggregator = aggregator
        self.store = aggregator.store
        self.role_defaults = aggregator.role_defaults
        self.principal_id = principal_id
        self.root = root
        self.now = now
        self.lookup_count = 0
        self._facts: Dict[FactQuery, Any] = {}
        self._in_flight: Set[Capability] = set()
        self._stack: List[Capability] = []

    def privileged_lookup(self, query: FactQuery) -> Any:
        """
        Answer a narrow factual question directly from the store.

        Returns:
            OwnerOf: ``(owner_id, relationship_id)`` or None
            LiveRelationship: a Relationship or None
            LiveRelationshipsTo: list of Relationships
            RelationshipRecord: a Relationship or None
        """
        if query in self._facts:
            return self._facts[query]

        self.lookup_count += 1
        if isinstance(query, OwnerOf):
            result = self.store.owner_of(query.resource_type, query.resource_id, now=self.now)
        elif isinstance(query, LiveRelationship):
            result = self.store.find_live(
                query.kind, query.subject_id, query.object_type, query.object_id, now=self.now
            )
        elif isinstance(query, LiveRelationshipsTo):
            result = self.store.find_live_for_object(
                query.kind, query.object_type, query.object_id, now=self.now
            )
        elif isinstance(query, RelationshipRecord):
            result = self.store.find(query.relationship_id)
        else:
            raise TypeError(f"Unsupported fact query: {query!r}")

        self._facts[query] = result
        return result

    def owner_of(self, resource: ResourceRef) -> Optional[UUID]:
        """
        Owner principal of a resource.

        A profile is owned by its candidate. Otherwise a stored ownership
        relationship wins; a review with none belongs to its document's
        owner. The caller-supplied ``owner_id`` is used only when the store
        knows no owner at all.
        """
        resource_type = ResourceType(resource.resource_type)
        if resource_type == ResourceType.PROFILE:
            return resource.resource_id
        found = self.privileged_lookup(OwnerOf(resource_type.value, resource.resource_id))
        if found:
            return found[0]
        review = self.review_record(resource)
        if review is not None:
            document_owner = self.document_owner(review)
            if document_owner is not None:
                return document_owner
        return resource.owner_id

    def review_record(self, resource: ResourceRef) -> Optional[Relationship]:
        """The document-review relationship a review resource stands for."""
        if ResourceType(resource.resource_type) != ResourceType.REVIEW:
            return None
        record = self.privileged_lookup(RelationshipRecord(resource.resource_id))
        if record is None or record.kind != RelationshipKind.DOCUMENT_REVIEW.value:
            return None
        return record

    def document_owner(self, review: Relationship) -> Optional[UUID]:
        """Owner of the document a review relationship points at."""
        found = self.privileged_lookup(OwnerOf(review.object_type, review.object_id))
        return found[0] if found else None

    def evaluate(self, resource: ResourceRef, capability: Capability) -> bool:
        """
        Sub-evaluate another capability on the resource under evaluation.

        A check already in flight answers False instead of recursing.

        Raises:
            CrossResourceEvaluation: If ``resource`` is not the root resource
        """
        if resource.key != self.root.key:
            raise CrossResourceEvaluation(
                f"Cannot evaluate {resource} while deciding {self.root}; "
                f"use privileged_lookup for facts about other resources"
            )
        capability = Capability(capability)
        if capability in self._in_flight or len(self._stack) >= MAX_NESTING:
            logger.debug(
                "Cycle detected evaluating %s on %s for %s; answering deny",
                capability.value, self.root, self.principal_id,
            )
            return False
        return self.aggregator._resolve(self, self.root, capability).allowed

    def enter(self, capability: Capability) -> None:
        self._in_flight.add(capability)
        self._stack.append(capability)

    def exit(self, capability: Capability) -> None:
        self._stack.pop()
        self._in_flight.discard(capability)
