"""Tenancy lifecycle — lease status from active through notice to termination.

Transitions (landlord or agency of record only):

    active       --issue_notice(reason)--> notice_given
    notice_given --withdraw_notice-------> active
    notice_given --remove(voluntary)-----> terminated   guarded by notice expiry
    active       --remove(voluntary=true)> terminated   mutual agreement, no notice

A non-voluntary removal is only possible once the statutory notice period
for the recorded reason has elapsed.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from property_workflows.domain.enums import (
    ActorRole,
    GuardReason,
    TenancyStatus,
    TransitionErrorCode,
    WorkflowKind,
)
from property_workflows.domain.instances import Actor, Tenancy
from property_workflows.domain.money import parse_money
from property_workflows.services.clock import ensure_utc
from property_workflows.services.deadline_policy import (
    DeadlinePolicy,
    UnknownNoticeReason,
    days_remaining,
    days_until,
)
from property_workflows.services.workflow_engine import (
    Transition,
    TransitionContext,
    TransitionError,
    TransitionResult,
    WorkflowDefinition,
    WorkflowLifecycle,
    creation_history,
)

S = TenancyStatus

ISSUE_NOTICE = "issue_notice"
WITHDRAW_NOTICE = "withdraw_notice"
REMOVE = "remove"

MANAGING_ROLES = frozenset({ActorRole.LANDLORD, ActorRole.AGENCY})


def manages(tenancy: Tenancy, actor: Actor) -> bool:
    """Landlord of record or the agency appointed on the tenancy."""
    if actor.role == ActorRole.LANDLORD:
        return actor.id == tenancy.landlord_id
    if actor.role == ActorRole.AGENCY:
        return tenancy.agency_id is not None and actor.id == tenancy.agency_id
    return False


def _is_voluntary(ctx: TransitionContext) -> bool:
    return ctx.payload.get("voluntary") is True


def open_tenancy(
    *,
    tenant_id: str,
    property_id: str,
    landlord_id: str,
    lease_start: date,
    lease_end: date,
    rent_amount,
    actor: Actor,
    now: datetime,
    agency_id: Optional[str] = None,
    tenancy_id: Optional[str] = None,
) -> Tenancy:
    """Create an active tenancy when a lease is signed."""
    if lease_end < lease_start:
        raise ValueError("lease_end must not be before lease_start")
    rent = parse_money(rent_amount, "rent_amount")
    if rent <= 0:
        raise ValueError("rent_amount must be positive")

    return Tenancy(
        id=tenancy_id or str(uuid.uuid4()),
        state=S.ACTIVE,
        history=creation_history(S.ACTIVE, actor, now),
        created_at=now,
        tenant_id=tenant_id,
        property_id=property_id,
        landlord_id=landlord_id,
        agency_id=agency_id,
        lease_start=lease_start,
        lease_end=lease_end,
        rent_amount=rent,
    )


class TenancyLifecycle(WorkflowLifecycle[Tenancy]):
    """Tenancy workflow bound to a notice-period policy."""

    kind = WorkflowKind.TENANCY

    def __init__(self, policy: DeadlinePolicy):
        self.policy = policy
        super().__init__()

    def build_definition(self) -> WorkflowDefinition:
        return WorkflowDefinition(
            name="tenancy",
            states=list(TenancyStatus),
            initial=S.ACTIVE,
            terminal=[S.TERMINATED],
            transitions=[
                Transition(
                    action=ISSUE_NOTICE,
                    source=S.ACTIVE,
                    target=S.NOTICE_GIVEN,
                    roles=MANAGING_ROLES,
                    authorize=manages,
                    guards=(self._known_reason,),
                    effect=self._serve_notice,
                    describe=lambda t, ctx: str(ctx.payload.get("reason")),
                ),
                Transition(
                    action=ISSUE_NOTICE,
                    source=S.NOTICE_GIVEN,
                    target=S.NOTICE_GIVEN,
                    roles=MANAGING_ROLES,
                    authorize=manages,
                    guards=(self._already_in_notice,),
                ),
                Transition(
                    action=WITHDRAW_NOTICE,
                    source=S.NOTICE_GIVEN,
                    target=S.ACTIVE,
                    roles=MANAGING_ROLES,
                    authorize=manages,
                    effect=self._clear_notice,
                ),
                Transition(
                    action=REMOVE,
                    source=S.ACTIVE,
                    target=S.TERMINATED,
                    roles=MANAGING_ROLES,
                    authorize=manages,
                    guards=(self._requires_agreement,),
                    effect=self._terminate,
                    describe=self._describe_removal,
                ),
                Transition(
                    action=REMOVE,
                    source=S.NOTICE_GIVEN,
                    target=S.TERMINATED,
                    roles=MANAGING_ROLES,
                    authorize=manages,
                    guards=(self._notice_elapsed,),
                    effect=self._terminate,
                    describe=self._describe_removal,
                ),
            ],
        )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _known_reason(self, tenancy: Tenancy, ctx: TransitionContext) -> Optional[TransitionError]:
        try:
            self.policy.notice_period_days(ctx.payload.get("reason"))
        except UnknownNoticeReason as e:
            return TransitionError(TransitionErrorCode.UNKNOWN_REASON, str(e))
        return None

    def _already_in_notice(self, tenancy: Tenancy, ctx: TransitionContext) -> TransitionError:
        return TransitionError.guard_failed(
            GuardReason.ALREADY_IN_NOTICE,
            f"Notice ({tenancy.notice_reason.value}) was already served on "
            f"{tenancy.notice_issued_at.isoformat()}",
        )

    def _requires_agreement(self, tenancy: Tenancy, ctx: TransitionContext) -> Optional[TransitionError]:
        if _is_voluntary(ctx):
            return None
        return TransitionError.guard_failed(
            GuardReason.NOTICE_NOT_ISSUED,
            "Cannot remove tenant without an eviction notice or voluntary agreement",
        )

    def _notice_elapsed(self, tenancy: Tenancy, ctx: TransitionContext) -> Optional[TransitionError]:
        if _is_voluntary(ctx) or ensure_utc(ctx.now) >= ensure_utc(tenancy.notice_expires_at):
            return None
        return TransitionError.guard_failed(
            GuardReason.NOTICE_PERIOD_NOT_ELAPSED,
            f"Notice period has not elapsed: {days_remaining(tenancy.notice_expires_at, ctx.now)} "
            f"day(s) remaining until {tenancy.notice_expires_at.isoformat()}",
        )

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def _serve_notice(self, tenancy: Tenancy, ctx: TransitionContext) -> dict:
        reason = self.policy.parse_reason(ctx.payload.get("reason"))
        return {
            "notice_reason": reason,
            "notice_issued_at": ctx.now,
            "notice_expires_at": self.policy.notice_expires_at(reason, ctx.now),
            "legal_notes": ctx.payload.get("legal_notes") or "",
            "court_filing_required": ctx.payload.get("court_filing_required") is True,
        }

    @staticmethod
    def _clear_notice(tenancy: Tenancy, ctx: TransitionContext) -> dict:
        return {
            "notice_reason": None,
            "notice_issued_at": None,
            "notice_expires_at": None,
            "legal_notes": "",
            "court_filing_required": False,
        }

    @staticmethod
    def _terminate(tenancy: Tenancy, ctx: TransitionContext) -> dict:
        return {"voluntary": _is_voluntary(ctx), "terminated_at": ctx.now}

    @staticmethod
    def _describe_removal(tenancy: Tenancy, ctx: TransitionContext) -> str:
        return "voluntary_exit" if _is_voluntary(ctx) else "evicted"

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def issue_notice(
        self,
        tenancy: Tenancy,
        reason,
        actor: Actor,
        now: datetime,
        legal_notes: str = "",
        court_filing_required: bool = False,
    ) -> TransitionResult[Tenancy]:
        """Serve an eviction notice; expiry follows from the reason's policy period."""
        return self.attempt(
            tenancy,
            ISSUE_NOTICE,
            actor,
            now,
            {
                "reason": reason.value if hasattr(reason, "value") else reason,
                "legal_notes": legal_notes,
                "court_filing_required": court_filing_required,
            },
        )

    def withdraw_notice(self, tenancy: Tenancy, actor: Actor, now: datetime) -> TransitionResult[Tenancy]:
        return self.attempt(tenancy, WITHDRAW_NOTICE, actor, now)

    def remove(
        self,
        tenancy: Tenancy,
        voluntary: bool,
        actor: Actor,
        now: datetime,
    ) -> TransitionResult[Tenancy]:
        """Terminate the tenancy.

        ``voluntary=True`` is the mutual-agreement override and needs no
        notice. Otherwise the notice period must have run out.
        """
        return self.attempt(tenancy, REMOVE, actor, now, {"voluntary": voluntary is True})

    @staticmethod
    def days_until_removal(tenancy: Tenancy, now: datetime) -> Optional[int]:
        """Signed days until a non-voluntary removal is allowed, if notice is served."""
        if tenancy.state != S.NOTICE_GIVEN or tenancy.notice_expires_at is None:
            return None
        return days_until(tenancy.notice_expires_at, now)
