"""Decision API endpoints.

Resource modules ask here before serving a read or accepting a write.
A deny is a normal 200 response; mapping it to 403 or 404 is the
caller's choice.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from accessgraph.api.deps import get_aggregator, get_principal_id
from accessgraph.api.schemas.decisions import (
    CapabilitiesRequest,
    CapabilitiesResponse,
    DecisionRequest,
    DecisionResponse,
    ExplainResponse,
)
from accessgraph.core.authz import PermissionAggregator

router = APIRouter(prefix="/decisions", tags=["decisions"])


@router.post("", response_model=DecisionResponse)
async def evaluate(
    data: DecisionRequest,
    aggregator: PermissionAggregator = Depends(get_aggregator),
    principal_id: UUID = Depends(get_principal_id),
):
    """Evaluate one capability for the calling principal."""
    decision = aggregator.evaluate(
        principal_id,
        data.resource.to_ref(),
        data.capability,
        audit=data.audit,
        call_site=data.context,
    )
    return DecisionResponse.from_decision(decision)


@router.post("/explain", response_model=ExplainResponse)
async def explain(
    data: DecisionRequest,
    aggregator: PermissionAggregator = Depends(get_aggregator),
    principal_id: UUID = Depends(get_principal_id),
):
    """Evaluate and report every resolver's verdict."""
    decision = aggregator.explain(principal_id, data.resource.to_ref(), data.capability)
    return ExplainResponse.from_decision(decision)


@router.post("/capabilities", response_model=CapabilitiesResponse)
async def effective_capabilities(
    data: CapabilitiesRequest,
    aggregator: PermissionAggregator = Depends(get_aggregator),
    principal_id: UUID = Depends(get_principal_id),
):
    """Effective capability set on one resource, for UI rendering."""
    ref = data.resource.to_ref()
    granted = aggregator.evaluate_many(principal_id, ref, data.capabilities)
    return CapabilitiesResponse(
        principal_id=principal_id,
        resource_type=ref.resource_type,
        resource_id=ref.resource_id,
        capabilities=sorted(granted, key=lambda c: c.value),
    )
