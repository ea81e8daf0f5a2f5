"""Maintenance request API routes."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from property_workflows.app.routes.deps import _dt, _num, get_actor, get_clock, get_service
from property_workflows.app.routes.workflow import add_workflow_routes
from property_workflows.domain.enums import ActorRole, WorkflowKind
from property_workflows.domain.instances import Actor, MaintenanceRequest
from property_workflows.domain.schemas import BidView, MaintenanceRequestCreate, MaintenanceRequestView
from property_workflows.services.clock import Clock
from property_workflows.services.maintenance_workflow import bid_count, lowest_bid, submit_request
from property_workflows.services.transition_service import TransitionService

router = APIRouter(prefix="/api/maintenance-requests", tags=["maintenance"])


def serialize_request(request: MaintenanceRequest, now: datetime) -> MaintenanceRequestView:
    cheapest = lowest_bid(request)
    accepted = request.accepted_bid
    return MaintenanceRequestView(
        id=request.id,
        state=request.state.value,
        property_id=request.property_id,
        tenant_id=request.tenant_id,
        landlord_id=request.landlord_id,
        title=request.title,
        description=request.description,
        category=request.category,
        priority=request.priority.value,
        is_emergency=request.is_emergency,
        estimated_cost=_num(request.estimated_cost),
        payment_preference=request.payment_preference.value,
        bids=[
            BidView(
                provider_id=b.provider_id,
                amount=float(b.amount),
                message=b.message,
                submitted_at=_dt(b.submitted_at),
                accepted=b.accepted,
            )
            for b in request.bids
        ],
        bid_count=bid_count(request),
        lowest_bid=_num(cheapest.amount) if cheapest else None,
        accepted_provider_id=accepted.provider_id if accepted else None,
        completed_at=_dt(request.completed_at),
        provider_rating=request.provider_rating,
        review=request.review,
        version=request.version,
        created_at=_dt(request.created_at),
    )


@router.post("", status_code=201, response_model=MaintenanceRequestView)
async def create_request(
    body: MaintenanceRequestCreate,
    actor: Actor = Depends(get_actor),
    clock: Clock = Depends(get_clock),
    service: TransitionService = Depends(get_service),
):
    """Submit a request as its tenant, or as the property's landlord."""
    if not (
        (actor.role == ActorRole.TENANT and actor.id == body.tenant_id)
        or (actor.role == ActorRole.LANDLORD and actor.id == body.landlord_id)
    ):
        raise HTTPException(status_code=403, detail="Only the tenant or landlord of the property may submit requests")

    now = clock.now()
    try:
        request = submit_request(
            property_id=body.property_id,
            tenant_id=body.tenant_id,
            landlord_id=body.landlord_id,
            title=body.title,
            description=body.description,
            category=body.category,
            priority=body.priority,
            is_emergency=body.is_emergency,
            estimated_cost=body.estimated_cost,
            payment_preference=body.payment_preference,
            actor=actor,
            now=now,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    created = await service.create(request)
    return serialize_request(created, now)


add_workflow_routes(router, WorkflowKind.MAINTENANCE_REQUEST, "Maintenance request", serialize_request)
