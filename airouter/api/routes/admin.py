"""
Admin API routes for provider registration, health and routing previews.
"""
import uuid
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from airouter.api.dependencies import (
    get_health_check_service,
    get_routing_service,
    verify_admin_key,
)
from airouter.api.schemas import (
    HealthReport,
    ProviderCreate,
    ProviderResponse,
    RouteResponse,
)
from airouter.core.logger import get_logger
from airouter.models.records import Capability, HealthState, ProviderRecord
from airouter.services.health_check import HealthCheckService
from airouter.services.router import RoutingService
from airouter.services.weights import weight

logger = get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(verify_admin_key)]
)


async def _get_provider_or_404(routing: RoutingService, provider_id: str) -> ProviderRecord:
    record = await routing.store.get_provider(provider_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider {provider_id} not found"
        )
    return routing.tracker.overlay(record)


# ============================================================================
# Provider Management
# ============================================================================

@router.get("/providers", response_model=List[ProviderResponse])
async def list_providers(
    organization_id: str = Query(..., min_length=1),
    routing: RoutingService = Depends(get_routing_service)
):
    """List an organization's providers, newest first."""
    records = await routing.store.load_providers_for_org(organization_id)
    records = sorted(records, key=lambda r: r.created_at, reverse=True)
    return [ProviderResponse.from_record(routing.tracker.overlay(r)) for r in records]


@router.post(
    "/providers",
    response_model=ProviderResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_provider(
    payload: ProviderCreate,
    routing: RoutingService = Depends(get_routing_service)
):
    """Register a new upstream provider."""
    provider_id = payload.id or uuid.uuid4().hex
    if await routing.store.get_provider(provider_id) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Provider {provider_id} already exists"
        )

    data = payload.model_dump(exclude={"id", "api_key"})
    record = ProviderRecord(id=provider_id, credential=payload.api_key, **data)
    record = await routing.store.save_provider(record)

    logger.info(
        "Provider registered",
        provider_id=record.id,
        organization_id=record.organization_id,
        provider_type=record.type.value
    )
    return ProviderResponse.from_record(record)


@router.get("/providers/{provider_id}", response_model=ProviderResponse)
async def get_provider(
    provider_id: str,
    routing: RoutingService = Depends(get_routing_service)
):
    record = await _get_provider_or_404(routing, provider_id)
    return ProviderResponse.from_record(record)


@router.delete("/providers/{provider_id}", response_model=ProviderResponse)
async def retire_provider(
    provider_id: str,
    routing: RoutingService = Depends(get_routing_service)
):
    """Soft-retire a provider by clearing its active flag."""
    record = await _get_provider_or_404(routing, provider_id)
    record = record.model_copy(update={
        "is_active": False,
        "updated_at": datetime.now(timezone.utc),
    })
    record = await routing.store.save_provider(record)
    logger.info("Provider retired", provider_id=provider_id)
    return ProviderResponse.from_record(record)


# ============================================================================
# Health
# ============================================================================

@router.get("/providers/{provider_id}/health", response_model=HealthState)
async def get_provider_health(
    provider_id: str,
    routing: RoutingService = Depends(get_routing_service)
):
    record = await _get_provider_or_404(routing, provider_id)
    return record.health


@router.post("/providers/{provider_id}/health", response_model=HealthState)
async def report_provider_health(
    provider_id: str,
    report: HealthReport,
    routing: RoutingService = Depends(get_routing_service)
):
    """Record an out-of-band health check result."""
    state = await routing.report_health_check(
        provider_id, report.success, report.latency_ms, report.error
    )
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider {provider_id} not found"
        )
    return state


@router.post("/providers/{provider_id}/health-check")
async def run_health_check(
    provider_id: str,
    health_checks: HealthCheckService = Depends(get_health_check_service)
):
    """Health-check a provider now, regardless of its check interval."""
    result = await health_checks.manual_check(provider_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider {provider_id} not found or cannot be checked"
        )
    return result


@router.post("/providers/{provider_id}/health/reset", response_model=HealthState)
async def reset_provider_health(
    provider_id: str,
    routing: RoutingService = Depends(get_routing_service)
):
    """Clear a provider's failure history and close its circuit."""
    state = await routing.reset_health(provider_id)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider {provider_id} not found"
        )
    return state


# ============================================================================
# Routing Preview
# ============================================================================

@router.get("/route", response_model=RouteResponse)
async def preview_route(
    organization_id: str = Query(..., min_length=1),
    capability: Capability = Query(Capability.CHAT),
    routing: RoutingService = Depends(get_routing_service)
):
    """Show which provider would serve the next request, without routing one."""
    preview = await routing.preview_route(organization_id, capability)
    if preview is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No provider available for capability {capability.value}"
        )
    record, strategy = preview
    return RouteResponse(
        organization_id=organization_id,
        capability=capability,
        provider=ProviderResponse.from_record(record),
        strategy=strategy,
        weight=weight(record, strategy)
    )
