"""Permission aggregator.

Routes a (principal, resource, capability) query to the resolvers
registered for the resource type, in a fixed order, inside one
EvalContext. Default deny; the first Grant wins. Ownership is always
consulted first, so no other resolver can stand between an owner and
their own resource.
"""

import logging
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple
from uuid import UUID

from accessgraph.core.clock import Clock, utcnow
from accessgraph.core.exceptions import StoreUnavailable
from accessgraph.core.rbac.permissions import (
    Capability,
    ResourceType,
    get_capabilities_for_resource,
    validate_capability,
)
from accessgraph.core.rbac.roles import RoleDefaults
from accessgraph.core.relationships.states import RelationshipKind
from accessgraph.core.relationships.store import RelationshipStore
from .context import EvalContext
from .decision import Decision, ResourceRef, Verdict
from .resolvers import GrantResolver, default_resolvers

logger = logging.getLogger(__name__)

_K = RelationshipKind

# Static routing: resolver kinds consulted per resource type, in order
RESOLVER_ROUTES: Dict[ResourceType, Tuple[RelationshipKind, ...]] = {
    ResourceType.DOCUMENT: (
        _K.OWNERSHIP, _K.DOCUMENT_REVIEW, _K.MENTOR_ASSIGNMENT, _K.ADVISOR_GRANT,
    ),
    ResourceType.REVIEW: (
        _K.OWNERSHIP, _K.TEAM_MEMBERSHIP, _K.DOCUMENT_REVIEW,
    ),
    ResourceType.JOB: (
        _K.OWNERSHIP, _K.MENTOR_ASSIGNMENT, _K.FAMILY_SUPPORT, _K.ADVISOR_GRANT,
    ),
    ResourceType.PROFILE: (
        _K.OWNERSHIP, _K.TEAM_MEMBERSHIP, _K.MENTOR_ASSIGNMENT,
        _K.ACCOUNTABILITY_PARTNERSHIP, _K.FAMILY_SUPPORT, _K.ADVISOR_GRANT,
    ),
    ResourceType.TEAM: (
        _K.OWNERSHIP, _K.TEAM_MEMBERSHIP,
    ),
    ResourceType.PEER_GROUP: (
        _K.OWNERSHIP, _K.GROUP_MEMBERSHIP,
    ),
}


class PermissionAggregator:
    """
    Combines resolver verdicts into allow/deny decisions.

    Stateless between calls: every evaluation builds its own context, so
    one instance is safe to share across concurrent requests.
    """

    def __init__(
        self,
        store: RelationshipStore,
        role_defaults: Optional[RoleDefaults] = None,
        *,
        audit_log=None,
        clock: Clock = utcnow,
        resolvers: Optional[Mapping[RelationshipKind, GrantResolver]] = None,
        routes: Optional[Mapping[ResourceType, Tuple[RelationshipKind, ...]]] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            store: Relationship store read by privileged lookups
            role_defaults: Role defaults table (defaults to the store's)
            audit_log: Optional DecisionAuditLog for audited call sites
            clock: Source of the current naive-UTC time
            resolvers: Resolver instances by kind
            routes: Routing table override
        """
        self.store = store
        self.role_defaults = role_defaults or store.role_defaults
        self.audit_log = audit_log
        self.clock = clock
        self.resolvers = dict(resolvers or default_resolvers())
        self.routes = dict(routes or RESOLVER_ROUTES)

        for resource_type, kinds in self.routes.items():
            if not kinds or kinds[0] != RelationshipKind.OWNERSHIP:
                raise ValueError(f"Ownership must be consulted first for {resource_type.value}")
            for kind in kinds:
                if kind not in self.resolvers:
                    raise ValueError(f"No resolver registered for {kind.value}")

    def evaluate(
        self,
        principal_id: UUID,
        resource: ResourceRef,
        capability: Capability,
        *,
        audit: bool = False,
        call_site: Optional[Dict[str, Any]] = None,
    ) -> Decision:
        """
        Decide whether a principal holds a capability on a resource.

        Args:
            principal_id: Acting principal
            resource: Target resource
            capability: Capability requested
            audit: Record the decision in the audit log
            call_site: Context metadata stored with the audit entry

        Returns:
            Decision (a deny is a normal result, not an error)

        Raises:
            InvalidCapability: If the capability is outside the resource's family
            StoreUnavailable: If the relationship store cannot be read
        """
        capability = self._validate(resource, capability)
        ctx = EvalContext(self, principal_id, resource, self.clock())
        decision = self._resolve(ctx, resource, capability)

        logger.debug(
            "%s %s on %s for %s via %s",
            "allow" if decision.allowed else "deny",
            capability.value, resource, principal_id, decision.grant_source,
        )

        if audit and self.audit_log is not None:
            self.audit_log.record(decision, call_site or {})
        return decision

    def evaluate_many(
        self,
        principal_id: UUID,
        resource: ResourceRef,
        capabilities: Optional[Iterable[Capability]] = None,
    ) -> FrozenSet[Capability]:
        """Effective capability set on one resource (all of its family by default)."""
        if capabilities is None:
            capabilities = get_capabilities_for_resource(ResourceType(resource.resource_type))
        checked = [self._validate(resource, c) for c in capabilities]
        ctx = EvalContext(self, principal_id, resource, self.clock())
        return frozenset(c for c in checked if self._resolve(ctx, resource, c).allowed)

    def explain(
        self, principal_id: UUID, resource: ResourceRef, capability: Capability
    ) -> Decision:
        """Evaluate with every applicable resolver's verdict in ``trace``."""
        capability = self._validate(resource, capability)
        ctx = EvalContext(self, principal_id, resource, self.clock())
        return self._resolve(ctx, resource, capability, explain=True)

    def _validate(self, resource: ResourceRef, capability: Capability) -> Capability:
        resource_type = ResourceType(resource.resource_type)
        if resource_type not in self.routes:
            raise ValueError(f"No resolver route for {resource_type.value}")
        capability = Capability(capability)
        validate_capability(resource_type, capability)
        return capability

    def _resolve(
        self,
        ctx: EvalContext,
        resource: ResourceRef,
        capability: Capability,
        *,
        explain: bool = False,
    ) -> Decision:
        decision = Decision(
            allowed=False,
            principal_id=ctx.principal_id,
            resource=resource,
            capability=capability,
            evaluated_at=ctx.now,
        )

        ctx.enter(capability)
        try:
            for kind in self.routes[ResourceType(resource.resource_type)]:
                resolver = self.resolvers[kind]
                if not resolver.applies_to(resource.resource_type):
                    continue
                verdict = self._run_resolver(resolver, ctx, resource, capability)
                if explain:
                    decision.trace.append((kind.value, verdict))
                if verdict.granted and not decision.allowed:
                    decision.allowed = True
                    decision.grant_source = verdict.source
                    decision.granting_relationship_id = verdict.relationship_id
                    if not explain:
                        break
        finally:
            ctx.exit(capability)

        return decision

    def _run_resolver(
        self,
        resolver: GrantResolver,
        ctx: EvalContext,
        resource: ResourceRef,
        capability: Capability,
    ) -> Verdict:
        """Run one resolver; anything but a store outage counts as Abstain."""
        try:
            return resolver.resolve(ctx.principal_id, resource, capability, ctx)
        except StoreUnavailable:
            raise
        except Exception as e:
            logger.warning(
                "Resolver %s failed on %s:%s for %s; treating as abstain: %s",
                resolver.kind.value, resource, capability.value, ctx.principal_id, e,
                exc_info=True,
            )
            return Verdict.abstain(f"resolver error: {e}")
