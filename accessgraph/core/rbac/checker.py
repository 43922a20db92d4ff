"""Effective capability computation.

Combines a role's default capability set with a relationship's explicit
overrides. Overrides win entry by entry: ``False`` revokes a default,
``True`` adds a capability the role lacks. Admin roles ignore overrides.
"""

from typing import Dict, FrozenSet, Mapping, Optional, Iterable

from accessgraph.core.exceptions import InvalidCapability
from .permissions import Capability, ResourceType, validate_capability, get_capabilities_for_resource
from .roles import ContextType, Role, RoleDefaults, CONTEXT_RESOURCE


def parse_overrides(
    resource_type: ResourceType, raw: Optional[Mapping[str, bool]]
) -> Dict[Capability, bool]:
    """Validate an override map against a resource family.

    Raises:
        InvalidCapability: If a key is unknown or outside the family,
            or a value is not a bool
    """
    overrides: Dict[Capability, bool] = {}
    for key, value in (raw or {}).items():
        try:
            capability = Capability(key)
        except ValueError:
            raise InvalidCapability(resource_type.value, str(key)) from None
        validate_capability(resource_type, capability)
        if not isinstance(value, bool):
            raise InvalidCapability(resource_type.value, f"{key}={value!r}")
        overrides[capability] = value
    return overrides


def effective_capabilities(
    defaults: Iterable[Capability],
    overrides: Optional[Mapping[Capability, bool]] = None,
) -> FrozenSet[Capability]:
    """Apply overrides on top of a default set."""
    result = set(defaults)
    for capability, granted in (overrides or {}).items():
        if granted:
            result.add(capability)
        else:
            result.discard(capability)
    return frozenset(result)


class CapabilityChecker:
    """Answers capability questions for one role within one context."""

    def __init__(
        self,
        role_defaults: RoleDefaults,
        context: ContextType,
        role: Role,
        overrides: Optional[Mapping[Capability, bool]] = None,
    ):
        """
        Initialize with a role and its relationship's overrides.

        Args:
            role_defaults: Configured defaults table
            context: Context the role belongs to
            role: Role or delegated access level
            overrides: Per-relationship capability overrides

        Raises:
            UnknownRole: If the role is not configured for the context
        """
        self.context = context
        self.role = role
        self.resource_type = CONTEXT_RESOURCE[context]
        defaults = role_defaults.default_capabilities(context, role)
        if role_defaults.is_admin(context, role):
            self.capabilities = get_capabilities_for_resource(self.resource_type)
        else:
            self.capabilities = effective_capabilities(defaults, overrides)

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def has_any_capability(self, capabilities: Iterable[Capability]) -> bool:
        return any(self.has_capability(c) for c in capabilities)

    def has_all_capabilities(self, capabilities: Iterable[Capability]) -> bool:
        return all(self.has_capability(c) for c in capabilities)
