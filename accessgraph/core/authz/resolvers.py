"""Grant resolvers.

Each resolver answers one question: does a live relationship of its kind
grant ``capability`` on ``resource`` to ``principal``? It returns a Grant
or Abstains; it never denies. Status and expiry are re-checked on every
call, so a cancelled or expired row can never grant.
"""

import logging
from typing import FrozenSet, Optional
from uuid import UUID

from accessgraph.core.rbac.checker import CapabilityChecker, parse_overrides
from accessgraph.core.rbac.permissions import (
    Capability,
    ResourceType,
    DERIVED_CAPABILITIES,
    TEAM_PROFILE_CAPABILITIES,
    TEAM_REVIEW_CAPABILITIES,
)
from accessgraph.core.rbac.roles import Role, CONTEXT_RESOURCE
from accessgraph.core.relationships.states import (
    RelationshipKind,
    KIND_CONTEXT,
    PRINCIPAL_OBJECT,
)
from accessgraph.db.models.relationship import Relationship
from .context import EvalContext, LiveRelationship, OwnerOf
from .decision import ResourceRef, Verdict, ABSTAIN

logger = logging.getLogger(__name__)


class GrantResolver:
    """Base class: one resolver per relationship kind."""

    kind: RelationshipKind
    resource_types: FrozenSet[ResourceType] = frozenset()

    def resolve(
        self,
        principal_id: UUID,
        resource: ResourceRef,
        capability: Capability,
        ctx: EvalContext,
    ) -> Verdict:
        raise NotImplementedError

    def applies_to(self, resource_type: ResourceType) -> bool:
        return ResourceType(resource_type) in self.resource_types

    def _checker(self, ctx: EvalContext, relationship: Relationship) -> CapabilityChecker:
        """Role defaults merged with the relationship's overrides."""
        context = KIND_CONTEXT[self.kind]
        overrides = parse_overrides(CONTEXT_RESOURCE[context], relationship.capability_overrides)
        return CapabilityChecker(ctx.role_defaults, context, Role(relationship.role), overrides)

    def _grant(self, relationship: Optional[Relationship], reason: str) -> Verdict:
        return Verdict.grant(
            self.kind.value, relationship.id if relationship is not None else None, reason
        )


class OwnershipResolver(GrantResolver):
    """Owners hold every capability on their own resources."""

    kind = RelationshipKind.OWNERSHIP
    resource_types = frozenset(ResourceType)

    def resolve(self, principal_id, resource, capability, ctx):
        owner_id = ctx.owner_of(resource)
        if owner_id is None or owner_id != principal_id:
            return ABSTAIN

        relationship_id: Optional[UUID] = None
        resource_type = ResourceType(resource.resource_type)
        if resource_type != ResourceType.PROFILE:
            found = ctx.privileged_lookup(OwnerOf(resource_type.value, resource.resource_id))
            if found and found[0] == owner_id:
                relationship_id = found[1]
        return Verdict.grant(self.kind.value, relationship_id, f"owner of {resource}")


class TeamRoleResolver(GrantResolver):
    """
    Team membership: role defaults plus per-member overrides.

    Governs the team itself, a member candidate's profile when the
    profile is evaluated in that team's scope, and reviews requested in
    the team's scope (the review's ``context_id``) on a member's document.
    """

    kind = RelationshipKind.TEAM_MEMBERSHIP
    resource_types = frozenset([ResourceType.TEAM, ResourceType.PROFILE, ResourceType.REVIEW])

    def resolve(self, principal_id, resource, capability, ctx):
        resource_type = ResourceType(resource.resource_type)

        if resource_type == ResourceType.TEAM:
            team_id = resource.resource_id
            team_capability = capability
        elif resource_type == ResourceType.PROFILE:
            team_capability = TEAM_PROFILE_CAPABILITIES.get(capability)
            if resource.team_id is None or team_capability is None:
                return ABSTAIN
            team_id = resource.team_id
            if not self._is_member(ctx, ctx.owner_of(resource), team_id):
                return ABSTAIN
        else:
            team_capability = TEAM_REVIEW_CAPABILITIES.get(capability)
            if team_capability is None:
                return ABSTAIN
            review = ctx.review_record(resource)
            if review is None or review.context_id is None:
                return ABSTAIN
            team_id = review.context_id
            if not self._is_member(ctx, ctx.document_owner(review), team_id):
                return ABSTAIN

        membership = ctx.privileged_lookup(LiveRelationship(
            self.kind, principal_id, ResourceType.TEAM.value, team_id,
        ))
        if membership is None:
            return ABSTAIN

        if self._checker(ctx, membership).has_capability(team_capability):
            return self._grant(
                membership, f"team {membership.role} holds {team_capability.value}"
            )
        return ABSTAIN

    def _is_member(self, ctx: EvalContext, candidate_id: Optional[UUID], team_id: UUID) -> bool:
        if candidate_id is None:
            return False
        return ctx.privileged_lookup(LiveRelationship(
            self.kind, candidate_id, ResourceType.TEAM.value, team_id,
        )) is not None


class DocumentReviewResolver(GrantResolver):
    """
    Reviewer grants on a document, scoped by access level.

    Also decides the review request itself. A review resource is its
    document-review relationship, so only that relationship's subject, while
    it is live, can view the review, comment when the level allows, and
    complete it.
    """

    kind = RelationshipKind.DOCUMENT_REVIEW
    resource_types = frozenset([ResourceType.DOCUMENT, ResourceType.REVIEW])

    def resolve(self, principal_id, resource, capability, ctx):
        if ResourceType(resource.resource_type) == ResourceType.DOCUMENT:
            review = ctx.privileged_lookup(LiveRelationship(
                self.kind, principal_id, ResourceType.DOCUMENT.value, resource.resource_id,
            ))
            if review is None:
                return ABSTAIN
            document_capability = capability
        else:
            review = ctx.review_record(resource)
            if (
                review is None
                or review.subject_id != principal_id
                or not review.is_live(ctx.now)
            ):
                return ABSTAIN
            if capability == Capability.COMPLETE:
                # Completing requires being able to see the review at all
                if ctx.evaluate(resource, Capability.VIEW):
                    return self._grant(review, "active reviewer")
                return ABSTAIN
            if capability not in (Capability.VIEW, Capability.COMMENT):
                return ABSTAIN
            document_capability = capability

        if self._checker(ctx, review).has_capability(document_capability):
            return self._grant(review, f"reviewer with {review.role} access")
        return ABSTAIN


class PrincipalGrantResolver(GrantResolver):
    """
    Delegated grants from a candidate to another principal.

    Capabilities are expressed on the candidate's profile. Documents and
    jobs the candidate owns are reached through derived capabilities, with
    the owner found by privileged lookup.
    """

    resource_types = frozenset([ResourceType.PROFILE, ResourceType.DOCUMENT, ResourceType.JOB])

    def resolve(self, principal_id, resource, capability, ctx):
        resource_type = ResourceType(resource.resource_type)
        if resource_type == ResourceType.PROFILE:
            profile_capability = capability
        else:
            profile_capability = DERIVED_CAPABILITIES.get((resource_type, capability))
            if profile_capability is None:
                return ABSTAIN

        candidate_id = ctx.owner_of(resource)
        if candidate_id is None or candidate_id == principal_id:
            return ABSTAIN

        grant = ctx.privileged_lookup(LiveRelationship(
            self.kind, principal_id, PRINCIPAL_OBJECT, candidate_id,
        ))
        if grant is None:
            return ABSTAIN

        if self._checker(ctx, grant).has_capability(profile_capability):
            return self._grant(grant, f"{self.kind.value} grants {profile_capability.value}")
        return ABSTAIN


class MentorAssignmentResolver(PrincipalGrantResolver):
    kind = RelationshipKind.MENTOR_ASSIGNMENT


class AccountabilityPartnerResolver(PrincipalGrantResolver):
    kind = RelationshipKind.ACCOUNTABILITY_PARTNERSHIP
    resource_types = frozenset([ResourceType.PROFILE])


class FamilySupportResolver(PrincipalGrantResolver):
    kind = RelationshipKind.FAMILY_SUPPORT
    resource_types = frozenset([ResourceType.PROFILE, ResourceType.JOB])


class AdvisorGrantResolver(PrincipalGrantResolver):
    kind = RelationshipKind.ADVISOR_GRANT


class GroupMembershipResolver(GrantResolver):
    """Peer group membership by role."""

    kind = RelationshipKind.GROUP_MEMBERSHIP
    resource_types = frozenset([ResourceType.PEER_GROUP])

    def resolve(self, principal_id, resource, capability, ctx):
        membership = ctx.privileged_lookup(LiveRelationship(
            self.kind, principal_id, ResourceType.PEER_GROUP.value, resource.resource_id,
        ))
        if membership is None:
            return ABSTAIN
        if self._checker(ctx, membership).has_capability(capability):
            return self._grant(membership, f"group {membership.role}")
        return ABSTAIN


def default_resolvers() -> dict:
    """One instance of every resolver, keyed by kind."""
    resolvers = [
        OwnershipResolver(),
        TeamRoleResolver(),
        DocumentReviewResolver(),
        MentorAssignmentResolver(),
        AccountabilityPartnerResolver(),
        FamilySupportResolver(),
        AdvisorGrantResolver(),
        GroupMembershipResolver(),
    ]
    return {resolver.kind: resolver for resolver in resolvers}
