"""Commission ledger — agency commission deals from pending to paid.

Only PENDING and PAID are ever stored. OVERDUE is an effective state derived
on every read from the due date, so a stored flag can never go stale.
"""

import uuid
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from property_workflows.domain.enums import ActorRole, CommissionStatus, DealType, WorkflowKind
from property_workflows.domain.instances import Actor, CommissionDeal
from property_workflows.domain.money import parse_money, parse_rate
from property_workflows.services.deadline_policy import days_until, is_overdue
from property_workflows.services.workflow_engine import (
    Transition,
    TransitionContext,
    TransitionResult,
    WorkflowDefinition,
    WorkflowLifecycle,
    creation_history,
)

S = CommissionStatus

MARK_PAID = "mark_paid"

MIN_RATE = Decimal("0.1")
MAX_RATE = Decimal("100")
CENTS = Decimal("0.01")
MONTHS_PER_YEAR = 12


def annualize_monthly_rent(monthly_rent) -> Decimal:
    """Annual lease value for a monthly rent figure."""
    return parse_money(monthly_rent, "monthly_rent") * MONTHS_PER_YEAR


def compute_commission(deal_type: DealType, deal_value, rate) -> Decimal:
    """Commission owed on a deal, rounded to cents.

    For LEASE deals ``deal_value`` must already be the annualized lease value
    (see ``annualize_monthly_rent``); a monthly figure is not converted here.
    For SALE deals it is the sale price.
    """
    DealType(deal_type)  # rejects unknown deal types
    value = Decimal(str(deal_value))
    pct = Decimal(str(rate))
    return (value * pct / 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def record_deal(
    *,
    agency_id: str,
    deal_type: DealType,
    deal_value,
    commission_rate,
    closing_date: date,
    due_date: date,
    actor: Actor,
    now: datetime,
    property_address: str = "",
    property_type: str = "",
    client_name: str = "",
    deal_id: Optional[str] = None,
) -> CommissionDeal:
    """Create a pending commission deal."""
    value = parse_money(deal_value, "deal_value")
    rate = parse_rate(commission_rate, "commission_rate")
    if value <= 0:
        raise ValueError("deal_value must be positive")
    if not MIN_RATE <= rate <= MAX_RATE:
        raise ValueError(f"commission_rate must be between {MIN_RATE} and {MAX_RATE}, got {rate}")

    return CommissionDeal(
        id=deal_id or str(uuid.uuid4()),
        state=S.PENDING,
        history=creation_history(S.PENDING, actor, now),
        created_at=now,
        agency_id=agency_id,
        deal_type=DealType(deal_type),
        deal_value=value,
        commission_rate=rate,
        closing_date=closing_date,
        due_date=due_date,
        property_address=property_address,
        property_type=property_type,
        client_name=client_name,
    )


def effective_state(deal: CommissionDeal, now: datetime) -> CommissionStatus:
    """PAID, OVERDUE or PENDING as of ``now``."""
    if deal.state == S.PAID:
        return S.PAID
    if is_overdue(deal.due_date, now):
        return S.OVERDUE
    return S.PENDING


def days_until_due(deal: CommissionDeal, now: datetime) -> Optional[int]:
    """Signed days to the due date for unpaid deals; None once paid."""
    if deal.state == S.PAID:
        return None
    return days_until(deal.due_date, now)


def _is_deal_agency(deal: CommissionDeal, actor: Actor) -> bool:
    return actor.id == deal.agency_id


def _record_payment(deal: CommissionDeal, ctx: TransitionContext) -> dict:
    return {
        "payment_date": ctx.now,
        "payment_method": ctx.payload.get("payment_method"),
        "payment_reference": ctx.payload.get("reference"),
    }


class CommissionLedger(WorkflowLifecycle[CommissionDeal]):
    """Commission deal workflow: a single PENDING -> PAID edge."""

    kind = WorkflowKind.COMMISSION_DEAL

    def build_definition(self) -> WorkflowDefinition:
        return WorkflowDefinition(
            name="commission_deal",
            states=[S.PENDING, S.PAID],
            initial=S.PENDING,
            terminal=[S.PAID],
            transitions=[
                Transition(
                    action=MARK_PAID,
                    source=S.PENDING,
                    target=S.PAID,
                    roles=frozenset({ActorRole.AGENCY}),
                    authorize=_is_deal_agency,
                    effect=_record_payment,
                    describe=lambda d, ctx: ctx.payload.get("reference"),
                ),
            ],
        )

    def mark_paid(
        self,
        deal: CommissionDeal,
        actor: Actor,
        now: datetime,
        payment_method: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> TransitionResult[CommissionDeal]:
        """Record payment. Works the same whether the deal is pending or overdue."""
        return self.attempt(
            deal, MARK_PAID, actor, now,
            {"payment_method": payment_method, "reference": reference},
        )

    @staticmethod
    def effective_state(deal: CommissionDeal, now: datetime) -> CommissionStatus:
        return effective_state(deal, now)
