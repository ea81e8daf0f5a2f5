"""Dashboard report routes. Every report is recomputed from stored instances."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from property_workflows.app.routes.deps import get_actor, get_clock, get_service
from property_workflows.domain.enums import ActorRole, DealType, WorkflowKind
from property_workflows.domain.instances import Actor
from property_workflows.services.aggregator import (
    commission_summary,
    maintenance_summary,
    tenancy_summary,
)
from property_workflows.services.clock import Clock
from property_workflows.services.transition_service import TransitionService

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/tenancies")
async def tenancy_report(
    expiring_within_days: int = Query(30, ge=0, le=365),
    actor: Actor = Depends(get_actor),
    clock: Clock = Depends(get_clock),
    service: TransitionService = Depends(get_service),
):
    """Portfolio counts, rent roll, pending notices and leases ending soon."""
    tenancies = await service.store.list(WorkflowKind.TENANCY)
    if actor.role == ActorRole.LANDLORD:
        tenancies = [t for t in tenancies if t.landlord_id == actor.id]
    elif actor.role == ActorRole.AGENCY:
        tenancies = [t for t in tenancies if t.agency_id == actor.id]
    return tenancy_summary(tenancies, clock.now(), expiring_within_days=expiring_within_days)


@router.get("/maintenance")
async def maintenance_report(
    actor: Actor = Depends(get_actor),
    service: TransitionService = Depends(get_service),
):
    requests = await service.store.list(WorkflowKind.MAINTENANCE_REQUEST)
    if actor.role == ActorRole.TENANT:
        requests = [r for r in requests if r.tenant_id == actor.id]
    elif actor.role == ActorRole.LANDLORD:
        requests = [r for r in requests if r.landlord_id == actor.id]
    return maintenance_summary(requests)


@router.get("/commissions")
async def commission_report(
    deal_type: Optional[DealType] = Query(None),
    actor: Actor = Depends(get_actor),
    clock: Clock = Depends(get_clock),
    service: TransitionService = Depends(get_service),
):
    """Commission totals by effective state. Agencies see their own deals."""
    deals = await service.store.list(WorkflowKind.COMMISSION_DEAL)
    if actor.role == ActorRole.AGENCY:
        deals = [d for d in deals if d.agency_id == actor.id]
    return commission_summary(deals, clock.now(), deal_type=deal_type)
