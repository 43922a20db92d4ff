"""Role default definitions for AccessGraph.

Every role-bearing relationship kind has a context. Within a context,
each role (or delegated access level) maps to a baseline capability set:

1. team - admin / mentor / candidate
2. peer_group - owner / moderator / member
3. document_review - view / comment / suggest / approve access levels
4. mentor_assignment, accountability_partnership, family_support,
   advisor_grant - the single delegated role of each grant kind

Defaults are read-only at evaluation time. An optional YAML file can
replace them at startup; it is validated on load so misconfiguration
fails there rather than during evaluation.
"""

import logging
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Iterable

import yaml

from accessgraph.core.exceptions import UnknownRole, InvalidCapability
from .permissions import (
    Capability,
    ResourceType,
    coerce_capabilities,
    get_capabilities_for_resource,
)

logger = logging.getLogger(__name__)


class ContextType(str, Enum):
    """Scopes in which a role is meaningful."""

    TEAM = "team"
    PEER_GROUP = "peer_group"
    DOCUMENT_REVIEW = "document_review"
    MENTOR_ASSIGNMENT = "mentor_assignment"
    ACCOUNTABILITY_PARTNERSHIP = "accountability_partnership"
    FAMILY_SUPPORT = "family_support"
    ADVISOR_GRANT = "advisor_grant"


class Role(str, Enum):
    """Roles and delegated access levels."""

    # Team roles
    ADMIN = "admin"
    MENTOR = "mentor"
    CANDIDATE = "candidate"

    # Peer group roles
    OWNER = "owner"
    MODERATOR = "moderator"
    MEMBER = "member"

    # Document review access levels
    VIEW = "view"
    COMMENT = "comment"
    SUGGEST = "suggest"
    APPROVE = "approve"

    # Delegated grants
    PARTNER = "partner"
    SUPPORTER = "supporter"
    ADVISOR = "advisor"


# Resource family whose capability set a context's roles draw from
CONTEXT_RESOURCE: Dict[ContextType, ResourceType] = {
    ContextType.TEAM: ResourceType.TEAM,
    ContextType.PEER_GROUP: ResourceType.PEER_GROUP,
    ContextType.DOCUMENT_REVIEW: ResourceType.DOCUMENT,
    ContextType.MENTOR_ASSIGNMENT: ResourceType.PROFILE,
    ContextType.ACCOUNTABILITY_PARTNERSHIP: ResourceType.PROFILE,
    ContextType.FAMILY_SUPPORT: ResourceType.PROFILE,
    ContextType.ADVISOR_GRANT: ResourceType.PROFILE,
}

# Roles that hold every capability of their context; overrides never apply.
ADMIN_ROLES: FrozenSet[Tuple[ContextType, Role]] = frozenset([
    (ContextType.TEAM, Role.ADMIN),
])


def _caps(*capabilities: Capability) -> FrozenSet[Capability]:
    return frozenset(capabilities)


# Team: mirrors the default branch of the team permission check
TEAM_DEFAULTS = {
    Role.ADMIN: get_capabilities_for_resource(ResourceType.TEAM),
    Role.MENTOR: _caps(
        Capability.VIEW,
        Capability.VIEW_ANALYTICS,
        Capability.VIEW_ALL_CANDIDATES,
        Capability.EXPORT_DATA,
    ),
    Role.CANDIDATE: _caps(Capability.VIEW),
}

PEER_GROUP_DEFAULTS = {
    Role.OWNER: get_capabilities_for_resource(ResourceType.PEER_GROUP),
    Role.MODERATOR: _caps(
        Capability.VIEW, Capability.POST, Capability.MODERATE, Capability.INVITE,
    ),
    Role.MEMBER: _caps(Capability.VIEW, Capability.POST),
}

# Each access level includes the ones below it
DOCUMENT_REVIEW_DEFAULTS = {
    Role.VIEW: _caps(Capability.VIEW),
    Role.COMMENT: _caps(Capability.VIEW, Capability.COMMENT),
    Role.SUGGEST: _caps(Capability.VIEW, Capability.COMMENT, Capability.SUGGEST),
    Role.APPROVE: _caps(
        Capability.VIEW, Capability.COMMENT, Capability.SUGGEST, Capability.APPROVE,
    ),
}

MENTOR_ASSIGNMENT_DEFAULTS = {
    Role.MENTOR: _caps(
        Capability.VIEW,
        Capability.VIEW_PROGRESS,
        Capability.VIEW_JOBS,
        Capability.VIEW_DOCUMENTS,
        Capability.RECOMMEND,
        Capability.MESSAGE,
    ),
}

ACCOUNTABILITY_DEFAULTS = {
    Role.PARTNER: _caps(
        Capability.VIEW,
        Capability.VIEW_PROGRESS,
        Capability.VIEW_MILESTONES,
        Capability.ENCOURAGE,
    ),
}

# Stress data is opt-in for supporters
FAMILY_SUPPORT_DEFAULTS = {
    Role.SUPPORTER: _caps(
        Capability.VIEW,
        Capability.VIEW_PROGRESS,
        Capability.VIEW_MILESTONES,
        Capability.VIEW_JOBS,
        Capability.VIEW_INTERVIEWS,
        Capability.ENCOURAGE,
    ),
}

# Documents, analytics and interviews are opt-in for advisors
ADVISOR_DEFAULTS = {
    Role.ADVISOR: _caps(
        Capability.VIEW,
        Capability.VIEW_JOBS,
        Capability.RECOMMEND,
        Capability.SCHEDULE_SESSION,
        Capability.MESSAGE,
    ),
}

BUILTIN_ROLE_DEFAULTS: Dict[ContextType, Dict[Role, FrozenSet[Capability]]] = {
    ContextType.TEAM: TEAM_DEFAULTS,
    ContextType.PEER_GROUP: PEER_GROUP_DEFAULTS,
    ContextType.DOCUMENT_REVIEW: DOCUMENT_REVIEW_DEFAULTS,
    ContextType.MENTOR_ASSIGNMENT: MENTOR_ASSIGNMENT_DEFAULTS,
    ContextType.ACCOUNTABILITY_PARTNERSHIP: ACCOUNTABILITY_DEFAULTS,
    ContextType.FAMILY_SUPPORT: FAMILY_SUPPORT_DEFAULTS,
    ContextType.ADVISOR_GRANT: ADVISOR_DEFAULTS,
}


class RoleDefaults:
    """Static (context, role) -> capability set table."""

    def __init__(self, table: Mapping[ContextType, Mapping[Role, Iterable[Capability]]]):
        self._table: Dict[Tuple[ContextType, Role], FrozenSet[Capability]] = {}
        for context, roles in table.items():
            resource_type = CONTEXT_RESOURCE[context]
            for role, capabilities in roles.items():
                caps = frozenset(capabilities)
                for capability in caps:
                    if capability not in get_capabilities_for_resource(resource_type):
                        raise InvalidCapability(resource_type.value, capability.value)
                self._table[(context, role)] = caps

    def default_capabilities(self, context: ContextType, role: Role) -> FrozenSet[Capability]:
        """Baseline capabilities for a role. Pure lookup.

        Raises:
            UnknownRole: If the pair is not configured
        """
        try:
            return self._table[(ContextType(context), Role(role))]
        except (KeyError, ValueError):
            raise UnknownRole(
                getattr(context, "value", str(context)),
                getattr(role, "value", str(role)),
            ) from None

    def roles_for(self, context: ContextType) -> list[Role]:
        """Roles configured for a context."""
        return [role for (ctx, role) in self._table if ctx == context]

    def is_admin(self, context: ContextType, role: Role) -> bool:
        return (context, role) in ADMIN_ROLES

    @classmethod
    def builtin(cls) -> "RoleDefaults":
        return cls(BUILTIN_ROLE_DEFAULTS)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, Iterable[str]]]) -> "RoleDefaults":
        """Build from plain strings, e.g. parsed YAML.

        A capability list of ``["*"]`` expands to the whole family.

        Raises:
            UnknownRole: For an unknown context or role name
            InvalidCapability: For a capability outside the context's family
        """
        table: Dict[ContextType, Dict[Role, FrozenSet[Capability]]] = {}
        for context_name, roles in raw.items():
            try:
                context = ContextType(context_name)
            except ValueError:
                raise UnknownRole(str(context_name), "*") from None
            resource_type = CONTEXT_RESOURCE[context]
            table[context] = {}
            for role_name, capability_names in (roles or {}).items():
                try:
                    role = Role(role_name)
                except ValueError:
                    raise UnknownRole(context.value, str(role_name)) from None
                names = list(capability_names or [])
                if names == ["*"]:
                    table[context][role] = get_capabilities_for_resource(resource_type)
                else:
                    table[context][role] = coerce_capabilities(resource_type, names)
        return cls(table)

    @classmethod
    def from_yaml(cls, path: str) -> "RoleDefaults":
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Role defaults file {path} must contain a mapping")
        logger.info("Loaded role defaults from %s", path)
        return cls.from_mapping(raw)


def load_role_defaults(path: Optional[str] = None) -> RoleDefaults:
    """Load the configured role defaults, falling back to the built-in table."""
    if path:
        return RoleDefaults.from_yaml(path)
    return RoleDefaults.builtin()
