"""Exception taxonomy for AccessGraph.

Authorization denial is not an exception: it is a normal Decision with
``allowed=False``. Everything here signals misconfiguration, a caller
error, or an infrastructure problem.
"""

from typing import Optional
from uuid import UUID


class AccessGraphError(Exception):
    """Base class for all engine errors."""


class UnknownRole(AccessGraphError):
    """Raised when a (context, role) pair has no configured defaults."""

    def __init__(self, context: str, role: str):
        super().__init__(f"Unknown role {role!r} for context {context!r}")
        self.context = context
        self.role = role


class InvalidCapability(AccessGraphError, ValueError):
    """Raised when a capability is not part of a resource family's set."""

    def __init__(self, resource_type: str, capability: str):
        super().__init__(f"Capability {capability!r} is not valid for {resource_type!r}")
        self.resource_type = resource_type
        self.capability = capability


class DuplicateRelationship(AccessGraphError):
    """Raised when a live relationship already links the same subject/object."""

    def __init__(self, kind: str, subject_id: UUID, object_id: UUID):
        super().__init__(
            f"A live {kind} relationship already links {subject_id} to {object_id}"
        )
        self.kind = kind
        self.subject_id = subject_id
        self.object_id = object_id


class InvalidTransition(AccessGraphError):
    """Raised when the target status is unreachable from the current one."""

    def __init__(self, message: str, from_status: str, to_status: str):
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status


class TransitionConflict(InvalidTransition):
    """Raised when a concurrent writer changed the status first (lost CAS)."""

    def __init__(self, relationship_id: UUID, expected: str, observed: str, to_status: str):
        super().__init__(
            f"Relationship {relationship_id} changed from {expected} to {observed} "
            f"before transition to {to_status}",
            observed,
            to_status,
        )
        self.relationship_id = relationship_id
        self.expected = expected
        self.observed = observed


class RelationshipNotFound(AccessGraphError, LookupError):
    """Raised when a relationship id does not exist."""

    def __init__(self, relationship_id: UUID):
        super().__init__(f"Relationship {relationship_id} not found")
        self.relationship_id = relationship_id


class StoreUnavailable(AccessGraphError):
    """Transient relationship store failure (timeout, lost connection).

    Retry policy belongs to the caller.
    """

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class AuditWriteFailed(AccessGraphError):
    """An audit entry could not be persisted. Never reaches access decisions."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class CrossResourceEvaluation(AccessGraphError):
    """A resolver tried to evaluate a different resource through the context.

    Facts about other resources must go through ``privileged_lookup``.
    """
