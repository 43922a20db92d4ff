"""Authorization evaluation: resolvers, aggregator, cycle-safe context."""

from .decision import ResourceRef, Decision, Verdict, VerdictKind
from .context import EvalContext, OwnerOf, LiveRelationship, LiveRelationshipsTo
from .aggregator import PermissionAggregator, RESOLVER_ROUTES
from .grants import GrantPolicy

__all__ = [
    "ResourceRef",
    "Decision",
    "Verdict",
    "VerdictKind",
    "EvalContext",
    "OwnerOf",
    "LiveRelationship",
    "LiveRelationshipsTo",
    "PermissionAggregator",
    "RESOLVER_ROUTES",
    "GrantPolicy",
]
