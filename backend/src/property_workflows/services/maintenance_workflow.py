"""Maintenance workflow — marketplace lifecycle of a repair request.

    submitted     --publish----------------> open_for_bids
    open_for_bids --submit_bid(provider)---> open_for_bids
    open_for_bids --accept_bid(provider)---> bid_accepted
    bid_accepted  --start------------------> in_progress
    in_progress   --complete---------------> completed
    any non-terminal --cancel--------------> cancelled
    completed     --rate_provider----------> completed      tenant, once

Bid ledger invariant: at most one bid is ever accepted. Once a bid is
accepted, further bids fail with BIDDING_CLOSED and further acceptances fail
with ALREADY_ACCEPTED. Concurrent acceptances are serialized by the store's
version check, not here.
"""

import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from property_workflows.domain.enums import (
    ActorRole,
    GuardReason,
    MaintenancePriority,
    MaintenanceStatus,
    PaymentPreference,
    WorkflowKind,
)
from property_workflows.domain.instances import Actor, Bid, MaintenanceRequest
from property_workflows.domain.money import MONEY_PLACES, parse_money
from property_workflows.services.deadline_policy import DeadlinePolicy
from property_workflows.services.workflow_engine import (
    Transition,
    TransitionContext,
    TransitionError,
    TransitionResult,
    WorkflowDefinition,
    WorkflowLifecycle,
    creation_history,
)

S = MaintenanceStatus

PUBLISH = "publish"
SUBMIT_BID = "submit_bid"
ACCEPT_BID = "accept_bid"
START = "start"
COMPLETE = "complete"
CANCEL = "cancel"
RATE_PROVIDER = "rate_provider"

MIN_RATING = 1
MAX_RATING = 5

OWNER_ROLES = frozenset({ActorRole.TENANT, ActorRole.LANDLORD})
PROVIDER_ROLES = frozenset({ActorRole.MAINTENANCE})

CANCELLABLE_STATES = (S.SUBMITTED, S.OPEN_FOR_BIDS, S.BID_ACCEPTED, S.IN_PROGRESS)
BIDDING_CLOSED_STATES = (S.BID_ACCEPTED, S.IN_PROGRESS)


def owns(request: MaintenanceRequest, actor: Actor) -> bool:
    """The request's tenant or the property's landlord."""
    if actor.role == ActorRole.TENANT:
        return actor.id == request.tenant_id
    if actor.role == ActorRole.LANDLORD:
        return request.landlord_id is not None and actor.id == request.landlord_id
    return False


def is_accepted_provider(request: MaintenanceRequest, actor: Actor) -> bool:
    accepted = request.accepted_bid
    return accepted is not None and accepted.provider_id == actor.id


def is_requesting_tenant(request: MaintenanceRequest, actor: Actor) -> bool:
    return actor.role == ActorRole.TENANT and actor.id == request.tenant_id


def _parse_amount(raw) -> Optional[Decimal]:
    try:
        amount = parse_money(raw, "amount")
    except ValueError:
        return None
    if amount <= 0:
        return None
    return amount


def submit_request(
    *,
    property_id: str,
    tenant_id: str,
    title: str,
    actor: Actor,
    now: datetime,
    landlord_id: Optional[str] = None,
    description: str = "",
    category: str = "General Repair",
    priority: MaintenancePriority = MaintenancePriority.MEDIUM,
    is_emergency: bool = False,
    estimated_cost=None,
    payment_preference: PaymentPreference = PaymentPreference.LANDLORD,
    request_id: Optional[str] = None,
) -> MaintenanceRequest:
    """Create a submitted maintenance request on behalf of its tenant or landlord."""
    if not title or not title.strip():
        raise ValueError("title is required")
    cost = None
    if estimated_cost is not None:
        cost = parse_money(estimated_cost, "estimated_cost")
        if cost < 0:
            raise ValueError("estimated_cost must not be negative")

    return MaintenanceRequest(
        id=request_id or str(uuid.uuid4()),
        state=S.SUBMITTED,
        history=creation_history(S.SUBMITTED, actor, now),
        created_at=now,
        property_id=property_id,
        tenant_id=tenant_id,
        landlord_id=landlord_id,
        title=title.strip(),
        description=description,
        category=category,
        priority=MaintenancePriority(priority),
        is_emergency=is_emergency,
        estimated_cost=cost,
        payment_preference=PaymentPreference(payment_preference),
    )


# ---------------------------------------------------------------------------
# Bid ledger helpers
# ---------------------------------------------------------------------------


def bid_count(request: MaintenanceRequest) -> int:
    return len(request.bids)


def lowest_bid(request: MaintenanceRequest) -> Optional[Bid]:
    if not request.bids:
        return None
    return min(request.bids, key=lambda b: (b.amount, b.submitted_at))


def accepted_bids(requests: Iterable[MaintenanceRequest]) -> list[Bid]:
    return [r.accepted_bid for r in requests if r.accepted_bid is not None]


class MaintenanceWorkflow(WorkflowLifecycle[MaintenanceRequest]):
    """Maintenance request workflow and its bid ledger."""

    kind = WorkflowKind.MAINTENANCE_REQUEST

    def __init__(self, policy: DeadlinePolicy):
        self.policy = policy
        super().__init__()

    def build_definition(self) -> WorkflowDefinition:
        transitions = [
            Transition(
                action=PUBLISH,
                source=S.SUBMITTED,
                target=S.OPEN_FOR_BIDS,
                roles=OWNER_ROLES,
                authorize=owns,
            ),
            Transition(
                action=SUBMIT_BID,
                source=S.OPEN_FOR_BIDS,
                target=S.OPEN_FOR_BIDS,
                roles=PROVIDER_ROLES,
                guards=(self._valid_amount, self._first_bid_from_provider, self._within_budget),
                effect=self._add_bid,
                describe=lambda r, ctx: f"bid:{ctx.actor.id}",
            ),
            Transition(
                action=ACCEPT_BID,
                source=S.OPEN_FOR_BIDS,
                target=S.BID_ACCEPTED,
                roles=OWNER_ROLES,
                authorize=owns,
                guards=(self._bid_exists,),
                effect=self._mark_accepted,
                describe=lambda r, ctx: f"accepted:{ctx.payload.get('provider_id')}",
            ),
            Transition(
                action=START,
                source=S.BID_ACCEPTED,
                target=S.IN_PROGRESS,
                roles=PROVIDER_ROLES,
                authorize=is_accepted_provider,
            ),
            Transition(
                action=COMPLETE,
                source=S.IN_PROGRESS,
                target=S.COMPLETED,
                roles=PROVIDER_ROLES,
                authorize=is_accepted_provider,
                effect=lambda r, ctx: {"completed_at": ctx.now},
            ),
            Transition(
                action=RATE_PROVIDER,
                source=S.COMPLETED,
                target=S.COMPLETED,
                roles=frozenset({ActorRole.TENANT}),
                authorize=is_requesting_tenant,
                guards=(self._valid_rating, self._not_yet_rated),
                effect=self._record_review,
                describe=lambda r, ctx: f"rating:{ctx.payload['rating']}",
            ),
        ]

        for state in BIDDING_CLOSED_STATES:
            transitions.append(
                Transition(
                    action=SUBMIT_BID,
                    source=state,
                    target=state,
                    roles=PROVIDER_ROLES,
                    guards=(self._bidding_closed,),
                )
            )
            transitions.append(
                Transition(
                    action=ACCEPT_BID,
                    source=state,
                    target=state,
                    roles=OWNER_ROLES,
                    authorize=owns,
                    guards=(self._already_accepted,),
                )
            )

        for state in CANCELLABLE_STATES:
            transitions.append(
                Transition(
                    action=CANCEL,
                    source=state,
                    target=S.CANCELLED,
                    roles=OWNER_ROLES,
                    authorize=owns,
                    describe=lambda r, ctx: ctx.payload.get("reason") or None,
                )
            )

        return WorkflowDefinition(
            name="maintenance_request",
            states=list(MaintenanceStatus),
            initial=S.SUBMITTED,
            terminal=[S.COMPLETED, S.CANCELLED],
            transitions=transitions,
        )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def _valid_amount(request: MaintenanceRequest, ctx: TransitionContext) -> Optional[TransitionError]:
        if _parse_amount(ctx.payload.get("amount")) is None:
            return TransitionError.guard_failed(
                GuardReason.INVALID_BID_AMOUNT,
                f"Bid amount must be a positive number with at most {MONEY_PLACES} decimal places, "
                f"got {ctx.payload.get('amount')!r}",
            )
        return None

    @staticmethod
    def _first_bid_from_provider(
        request: MaintenanceRequest, ctx: TransitionContext
    ) -> Optional[TransitionError]:
        if request.bid_for(ctx.actor.id) is not None:
            return TransitionError.guard_failed(
                GuardReason.DUPLICATE_BID,
                f"Provider {ctx.actor.id} has already bid on request {request.id}",
            )
        return None

    def _within_budget(self, request: MaintenanceRequest, ctx: TransitionContext) -> Optional[TransitionError]:
        if not self.policy.enforce_bid_cap or request.estimated_cost is None:
            return None
        amount = _parse_amount(ctx.payload.get("amount"))
        if amount > request.estimated_cost:
            return TransitionError.guard_failed(
                GuardReason.BUDGET_EXCEEDED,
                f"Bid {amount} exceeds the request budget of {request.estimated_cost}",
            )
        return None

    @staticmethod
    def _bid_exists(request: MaintenanceRequest, ctx: TransitionContext) -> Optional[TransitionError]:
        provider_id = ctx.payload.get("provider_id")
        if provider_id is None or request.bid_for(provider_id) is None:
            return TransitionError.guard_failed(
                GuardReason.BID_NOT_FOUND,
                f"No bid from provider {provider_id!r} on request {request.id}",
            )
        return None

    @staticmethod
    def _bidding_closed(request: MaintenanceRequest, ctx: TransitionContext) -> TransitionError:
        return TransitionError.guard_failed(
            GuardReason.BIDDING_CLOSED,
            f"Bidding on request {request.id} closed when a bid was accepted",
        )

    @staticmethod
    def _valid_rating(request: MaintenanceRequest, ctx: TransitionContext) -> Optional[TransitionError]:
        rating = ctx.payload.get("rating")
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            return TransitionError.guard_failed(
                GuardReason.INVALID_RATING,
                f"Rating must be a whole number from {MIN_RATING} to {MAX_RATING}, got {rating!r}",
            )
        return None

    @staticmethod
    def _not_yet_rated(request: MaintenanceRequest, ctx: TransitionContext) -> Optional[TransitionError]:
        if request.provider_rating is not None:
            return TransitionError.guard_failed(
                GuardReason.ALREADY_RATED,
                f"Request {request.id} was already rated {request.provider_rating}",
            )
        return None

    @staticmethod
    def _already_accepted(request: MaintenanceRequest, ctx: TransitionContext) -> TransitionError:
        return TransitionError.guard_failed(
            GuardReason.ALREADY_ACCEPTED,
            f"Request {request.id} already accepted the bid from "
            f"provider {request.accepted_bid.provider_id}",
        )

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    @staticmethod
    def _add_bid(request: MaintenanceRequest, ctx: TransitionContext) -> dict:
        bid = Bid(
            provider_id=ctx.actor.id,
            amount=_parse_amount(ctx.payload.get("amount")),
            message=str(ctx.payload.get("message") or ""),
            submitted_at=ctx.now,
        )
        return {"bids": request.bids + (bid,)}

    @staticmethod
    def _record_review(request: MaintenanceRequest, ctx: TransitionContext) -> dict:
        return {
            "provider_rating": ctx.payload["rating"],
            "review": str(ctx.payload.get("review") or ""),
        }

    @staticmethod
    def _mark_accepted(request: MaintenanceRequest, ctx: TransitionContext) -> dict:
        provider_id = ctx.payload["provider_id"]
        return {
            "bids": tuple(
                replace(b, accepted=True) if b.provider_id == provider_id else b
                for b in request.bids
            )
        }

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def publish(self, request: MaintenanceRequest, actor: Actor, now: datetime) -> TransitionResult[MaintenanceRequest]:
        return self.attempt(request, PUBLISH, actor, now)

    def submit_bid(
        self,
        request: MaintenanceRequest,
        actor: Actor,
        now: datetime,
        amount,
        message: str = "",
    ) -> TransitionResult[MaintenanceRequest]:
        """Record the acting provider's bid. One bid per provider per request."""
        return self.attempt(
            request, SUBMIT_BID, actor, now, {"amount": str(amount), "message": message}
        )

    def accept_bid(
        self,
        request: MaintenanceRequest,
        provider_id: str,
        actor: Actor,
        now: datetime,
    ) -> TransitionResult[MaintenanceRequest]:
        """Award the job to one provider and close bidding."""
        return self.attempt(request, ACCEPT_BID, actor, now, {"provider_id": provider_id})

    def start(self, request: MaintenanceRequest, actor: Actor, now: datetime) -> TransitionResult[MaintenanceRequest]:
        return self.attempt(request, START, actor, now)

    def complete(self, request: MaintenanceRequest, actor: Actor, now: datetime) -> TransitionResult[MaintenanceRequest]:
        return self.attempt(request, COMPLETE, actor, now)

    def cancel(
        self,
        request: MaintenanceRequest,
        actor: Actor,
        now: datetime,
        reason: Optional[str] = None,
    ) -> TransitionResult[MaintenanceRequest]:
        return self.attempt(request, CANCEL, actor, now, {"reason": reason})

    def rate_provider(
        self,
        request: MaintenanceRequest,
        actor: Actor,
        now: datetime,
        rating: int,
        review: str = "",
    ) -> TransitionResult[MaintenanceRequest]:
        """The requesting tenant rates the provider who completed the job, once."""
        return self.attempt(request, RATE_PROVIDER, actor, now, {"rating": rating, "review": review})
