"""Capability model, role defaults, and override merging."""

from .permissions import (
    Capability,
    ResourceType,
    ResourceCapability,
    CAPABILITY_MATRIX,
    is_valid_capability,
    validate_capability,
)
from .roles import ContextType, Role, RoleDefaults, load_role_defaults
from .checker import CapabilityChecker, effective_capabilities, parse_overrides

__all__ = [
    "Capability",
    "ResourceType",
    "ResourceCapability",
    "CAPABILITY_MATRIX",
    "is_valid_capability",
    "validate_capability",
    "ContextType",
    "Role",
    "RoleDefaults",
    "load_role_defaults",
    "CapabilityChecker",
    "effective_capabilities",
    "parse_overrides",
]
