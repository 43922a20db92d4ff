from functools import lru_cache
from typing import Generator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from accessgraph.core.audit import DecisionAuditLog
from accessgraph.core.authz import Decision, GrantPolicy, PermissionAggregator, ResourceRef
from accessgraph.core.config import get_settings
from accessgraph.core.rbac.permissions import Capability, ResourceType, validate_capability
from accessgraph.core.rbac.roles import RoleDefaults, load_role_defaults
from accessgraph.core.relationships import RelationshipStore
from accessgraph.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_role_defaults() -> RoleDefaults:
    """Role defaults, loaded and validated once per process."""
    return load_role_defaults(get_settings().role_defaults_path)


def get_store(role_defaults: RoleDefaults = Depends(get_role_defaults)) -> RelationshipStore:
    """Relationship store dependency."""
    return RelationshipStore(
        SessionLocal, role_defaults, page_size=get_settings().store_page_size
    )


@lru_cache
def get_audit_log() -> DecisionAuditLog:
    return DecisionAuditLog(SessionLocal, enabled=get_settings().audit_enabled)


def get_aggregator(
    store: RelationshipStore = Depends(get_store),
    audit_log: DecisionAuditLog = Depends(get_audit_log),
) -> PermissionAggregator:
    return PermissionAggregator(store, audit_log=audit_log)


def get_grant_policy(
    aggregator: PermissionAggregator = Depends(get_aggregator),
) -> GrantPolicy:
    return GrantPolicy(aggregator)


def get_principal_id(x_principal_id: Optional[str] = Header(None)) -> UUID:
    """Acting principal, as asserted by the authenticating gateway."""
    if not x_principal_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Principal-ID header required",
        )
    try:
        return UUID(x_principal_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Principal-ID header",
        )


class RequireCapability:
    """
    Endpoint dependency that evaluates a capability on the resource named
    by a path parameter.

    A deny becomes ``deny_status``: 404 (the default) hides the resource's
    existence, 403 admits it.

    Usage:
        require_view = RequireCapability(ResourceType.DOCUMENT, Capability.VIEW)

        @router.get("/documents/{resource_id}")
        async def get_document(resource_id: UUID, decision: Decision = Depends(require_view)):
            ...
    """

    def __init__(
        self,
        resource_type: ResourceType,
        capability: Capability,
        *,
        path_param: str = "resource_id",
        deny_status: int = status.HTTP_404_NOT_FOUND,
        audit: bool = False,
    ):
        validate_capability(resource_type, capability)
        self.resource_type = resource_type
        self.capability = capability
        self.path_param = path_param
        self.deny_status = deny_status
        self.audit = audit

    def __call__(
        self,
        request: Request,
        principal_id: UUID = Depends(get_principal_id),
        aggregator: PermissionAggregator = Depends(get_aggregator),
    ) -> Decision:
        raw_id = request.path_params.get(self.path_param)
        try:
            resource_id = UUID(str(raw_id))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

        decision = aggregator.evaluate(
            principal_id,
            ResourceRef(self.resource_type, resource_id),
            self.capability,
            audit=self.audit,
            call_site={"route": request.url.path, "method": request.method},
        )
        if not decision.allowed:
            detail = "Not found" if self.deny_status == status.HTTP_404_NOT_FOUND else "Forbidden"
            raise HTTPException(status_code=self.deny_status, detail=detail)
        return decision
