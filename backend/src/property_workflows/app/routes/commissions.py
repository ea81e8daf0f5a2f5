"""Commission deal API routes.

Responses always carry ``effective_state``; the stored ``state`` is only
ever pending or paid.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from property_workflows.app.routes.deps import _dt, _num, get_actor, get_clock, get_service
from property_workflows.app.routes.workflow import add_workflow_routes
from property_workflows.domain.enums import ActorRole, DealType, WorkflowKind
from property_workflows.domain.instances import Actor, CommissionDeal
from property_workflows.domain.schemas import CommissionDealCreate, CommissionDealView
from property_workflows.services.clock import Clock
from property_workflows.services.commission_ledger import (
    annualize_monthly_rent,
    days_until_due,
    effective_state,
    record_deal,
)
from property_workflows.services.transition_service import TransitionService

router = APIRouter(prefix="/api/commission-deals", tags=["commissions"])


def serialize_deal(deal: CommissionDeal, now: datetime) -> CommissionDealView:
    return CommissionDealView(
        id=deal.id,
        state=deal.state.value,
        effective_state=effective_state(deal, now).value,
        agency_id=deal.agency_id,
        deal_type=deal.deal_type.value,
        deal_value=_num(deal.deal_value),
        commission_rate=_num(deal.commission_rate),
        commission_amount=_num(deal.commission_amount),
        closing_date=_dt(deal.closing_date),
        due_date=_dt(deal.due_date),
        days_until_due=days_until_due(deal, now),
        property_address=deal.property_address,
        property_type=deal.property_type,
        client_name=deal.client_name,
        payment_date=_dt(deal.payment_date),
        payment_method=deal.payment_method,
        payment_reference=deal.payment_reference,
        version=deal.version,
        created_at=_dt(deal.created_at),
    )


@router.post("", status_code=201, response_model=CommissionDealView)
async def create_deal(
    body: CommissionDealCreate,
    actor: Actor = Depends(get_actor),
    clock: Clock = Depends(get_clock),
    service: TransitionService = Depends(get_service),
):
    """Record a closed deal for the acting agency."""
    if actor.role != ActorRole.AGENCY or actor.id != body.agency_id:
        raise HTTPException(status_code=403, detail="Only the deal's agency may record it")

    deal_value = body.deal_value
    if deal_value is None and body.deal_type == DealType.LEASE and body.monthly_rent is not None:
        deal_value = annualize_monthly_rent(body.monthly_rent)
    if deal_value is None:
        raise HTTPException(status_code=400, detail="deal_value is required (or monthly_rent for lease deals)")

    now = clock.now()
    try:
        deal = record_deal(
            agency_id=body.agency_id,
            deal_type=body.deal_type,
            deal_value=deal_value,
            commission_rate=body.commission_rate,
            closing_date=body.closing_date,
            due_date=body.due_date,
            property_address=body.property_address,
            property_type=body.property_type,
            client_name=body.client_name,
            actor=actor,
            now=now,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    created = await service.create(deal)
    return serialize_deal(created, now)


add_workflow_routes(router, WorkflowKind.COMMISSION_DEAL, "Commission deal", serialize_deal)
