"""Tenancy API routes: open a tenancy, then drive it through notice and removal
with the shared transition endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from property_workflows.app.routes.deps import _dt, _num, get_actor, get_clock, get_service
from property_workflows.app.routes.workflow import add_workflow_routes
from property_workflows.domain.enums import ActorRole, WorkflowKind
from property_workflows.domain.instances import Actor, Tenancy
from property_workflows.domain.schemas import TenancyCreate, TenancyView
from property_workflows.services.clock import Clock
from property_workflows.services.tenancy_lifecycle import TenancyLifecycle, open_tenancy
from property_workflows.services.transition_service import TransitionService

router = APIRouter(prefix="/api/tenancies", tags=["tenancies"])


def serialize_tenancy(tenancy: Tenancy, now: datetime) -> TenancyView:
    return TenancyView(
        id=tenancy.id,
        state=tenancy.state.value,
        tenant_id=tenancy.tenant_id,
        property_id=tenancy.property_id,
        landlord_id=tenancy.landlord_id,
        agency_id=tenancy.agency_id,
        lease_start=_dt(tenancy.lease_start),
        lease_end=_dt(tenancy.lease_end),
        rent_amount=_num(tenancy.rent_amount),
        notice_reason=tenancy.notice_reason.value if tenancy.notice_reason else None,
        notice_issued_at=_dt(tenancy.notice_issued_at),
        notice_expires_at=_dt(tenancy.notice_expires_at),
        days_until_removal=TenancyLifecycle.days_until_removal(tenancy, now),
        legal_notes=tenancy.legal_notes,
        court_filing_required=tenancy.court_filing_required,
        exit_kind=tenancy.exit_kind.value if tenancy.exit_kind else None,
        terminated_at=_dt(tenancy.terminated_at),
        version=tenancy.version,
        created_at=_dt(tenancy.created_at),
    )


@router.post("", status_code=201, response_model=TenancyView)
async def create_tenancy(
    body: TenancyCreate,
    actor: Actor = Depends(get_actor),
    clock: Clock = Depends(get_clock),
    service: TransitionService = Depends(get_service),
):
    """Open an active tenancy. Only the landlord of record or its agency may do so."""
    if actor.role == ActorRole.LANDLORD and actor.id != body.landlord_id:
        raise HTTPException(status_code=403, detail="Landlords may only open tenancies on their own properties")
    if actor.role == ActorRole.AGENCY and actor.id != body.agency_id:
        raise HTTPException(status_code=403, detail="Agency is not appointed on this tenancy")
    if actor.role not in (ActorRole.LANDLORD, ActorRole.AGENCY):
        raise HTTPException(status_code=403, detail=f"Role {actor.role.value} cannot open tenancies")

    now = clock.now()
    try:
        tenancy = open_tenancy(
            tenant_id=body.tenant_id,
            property_id=body.property_id,
            landlord_id=body.landlord_id,
            agency_id=body.agency_id,
            lease_start=body.lease_start,
            lease_end=body.lease_end,
            rent_amount=body.rent_amount,
            actor=actor,
            now=now,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    created = await service.create(tenancy)
    return serialize_tenancy(created, now)


add_workflow_routes(router, WorkflowKind.TENANCY, "Tenancy", serialize_tenancy)
