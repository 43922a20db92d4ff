"""Capability model for AccessGraph.

Defines every protected resource family and the closed set of
capabilities valid for it. Uses a matrix approach: a capability is only
meaningful for the resource types that list it.

Capability string format: "resource_type:capability"
Examples:
  - document:comment
  - team:manage_settings
  - profile:view_progress
"""

from enum import Enum
from typing import NamedTuple, FrozenSet, Dict, Tuple, Iterable

from accessgraph.core.exceptions import InvalidCapability


class ResourceType(str, Enum):
    """Resource families that can be protected."""

    DOCUMENT = "document"         # Resumes, cover letters
    REVIEW = "review"             # Document review requests
    JOB = "job"                   # Tracked job applications
    PROFILE = "profile"           # A candidate's profile and progress data
    TEAM = "team"                 # Career-services teams
    PEER_GROUP = "peer_group"     # Peer support groups


class Capability(str, Enum):
    """Capabilities that can be granted on resources."""

    # Shared
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"

    # Documents and reviews
    COMMENT = "comment"
    SUGGEST = "suggest"
    APPROVE = "approve"
    COMPLETE = "complete"
    CANCEL = "cancel"

    # Candidate profile and progress
    VIEW_PROGRESS = "view_progress"
    VIEW_JOBS = "view_jobs"
    VIEW_DOCUMENTS = "view_documents"
    VIEW_ANALYTICS = "view_analytics"
    VIEW_INTERVIEWS = "view_interviews"
    VIEW_MILESTONES = "view_milestones"
    VIEW_STRESS = "view_stress"
    RECOMMEND = "recommend"
    SCHEDULE_SESSION = "schedule_session"
    MESSAGE = "message"
    ENCOURAGE = "encourage"

    # Teams
    INVITE = "invite"
    REMOVE_MEMBER = "remove_member"
    CHANGE_ROLE = "change_role"
    MANAGE_SETTINGS = "manage_settings"
    VIEW_ALL_CANDIDATES = "view_all_candidates"
    EDIT_CANDIDATES = "edit_candidates"
    EXPORT_DATA = "export_data"

    # Peer groups
    POST = "post"
    MODERATE = "moderate"


class ResourceCapability(NamedTuple):
    """A capability scoped to a resource family."""
    resource_type: ResourceType
    capability: Capability

    def __str__(self) -> str:
        return f"{self.resource_type.value}:{self.capability.value}"

    @classmethod
    def from_string(cls, value: str) -> "ResourceCapability":
        """Parse a string like 'document:comment'."""
        parts = value.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid capability format: {value}")
        resource_type, capability = ResourceType(parts[0]), Capability(parts[1])
        validate_capability(resource_type, capability)
        return cls(resource_type, capability)


# Capability matrix
# Maps each resource family to its valid capabilities
CAPABILITY_MATRIX: Dict[ResourceType, FrozenSet[Capability]] = {
    ResourceType.DOCUMENT: frozenset([
        Capability.VIEW, Capability.COMMENT, Capability.SUGGEST,
        Capability.APPROVE, Capability.EDIT, Capability.DELETE,
    ]),
    ResourceType.REVIEW: frozenset([
        Capability.VIEW, Capability.COMMENT, Capability.COMPLETE, Capability.CANCEL,
    ]),
    ResourceType.JOB: frozenset([
        Capability.VIEW, Capability.EDIT, Capability.DELETE,
    ]),
    ResourceType.PROFILE: frozenset([
        Capability.VIEW, Capability.EDIT,
        Capability.VIEW_PROGRESS, Capability.VIEW_JOBS, Capability.VIEW_DOCUMENTS,
        Capability.VIEW_ANALYTICS, Capability.VIEW_INTERVIEWS,
        Capability.VIEW_MILESTONES, Capability.VIEW_STRESS,
        Capability.RECOMMEND, Capability.SCHEDULE_SESSION,
        Capability.MESSAGE, Capability.ENCOURAGE,
    ]),
    ResourceType.TEAM: frozenset([
        Capability.VIEW, Capability.INVITE, Capability.REMOVE_MEMBER,
        Capability.CHANGE_ROLE, Capability.VIEW_ANALYTICS, Capability.MANAGE_SETTINGS,
        Capability.VIEW_ALL_CANDIDATES, Capability.EDIT_CANDIDATES, Capability.EXPORT_DATA,
    ]),
    ResourceType.PEER_GROUP: frozenset([
        Capability.VIEW, Capability.POST, Capability.MODERATE,
        Capability.INVITE, Capability.MANAGE_SETTINGS,
    ]),
}


# Grants expressed on a candidate's profile reach resources the candidate
# owns in other families through these projections.
DERIVED_CAPABILITIES: Dict[Tuple[ResourceType, Capability], Capability] = {
    (ResourceType.DOCUMENT, Capability.VIEW): Capability.VIEW_DOCUMENTS,
    (ResourceType.JOB, Capability.VIEW): Capability.VIEW_JOBS,
}

# Team capabilities that govern a member candidate's profile.
TEAM_PROFILE_CAPABILITIES: Dict[Capability, Capability] = {
    Capability.VIEW: Capability.VIEW_ALL_CANDIDATES,
    Capability.EDIT: Capability.EDIT_CANDIDATES,
}

# Team capabilities that govern reviews requested in the team's scope.
TEAM_REVIEW_CAPABILITIES: Dict[Capability, Capability] = {
    Capability.VIEW: Capability.VIEW_ALL_CANDIDATES,
}


def is_valid_capability(resource_type: ResourceType, capability: Capability) -> bool:
    """Check if a capability belongs to a resource family."""
    return capability in CAPABILITY_MATRIX.get(resource_type, frozenset())


def validate_capability(resource_type: ResourceType, capability: Capability) -> None:
    """Raise InvalidCapability unless the pair is in the matrix."""
    if not is_valid_capability(resource_type, capability):
        raise InvalidCapability(
            getattr(resource_type, "value", str(resource_type)),
            getattr(capability, "value", str(capability)),
        )


def coerce_capabilities(
    resource_type: ResourceType, values: Iterable[str]
) -> FrozenSet[Capability]:
    """Parse capability names, rejecting any outside the family's set."""
    result = set()
    for value in values:
        try:
            capability = Capability(value)
        except ValueError:
            raise InvalidCapability(resource_type.value, str(value)) from None
        validate_capability(resource_type, capability)
        result.add(capability)
    return frozenset(result)


def get_capabilities_for_resource(resource_type: ResourceType) -> FrozenSet[Capability]:
    """Get the full capability set for a resource family."""
    return CAPABILITY_MATRIX.get(resource_type, frozenset())


def get_all_capability_strings() -> list[str]:
    """Get every valid 'resource_type:capability' string."""
    return [
        str(ResourceCapability(resource_type, capability))
        for resource_type, capabilities in CAPABILITY_MATRIX.items()
        for capability in sorted(capabilities, key=lambda c: c.value)
    ]
