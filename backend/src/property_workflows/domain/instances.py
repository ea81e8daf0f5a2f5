"""Immutable workflow instances.

Every lifecycle-bearing entity (tenancy, maintenance request, commission deal)
is a frozen dataclass. Transitions never mutate an instance; the workflow
engine returns a new value built with ``dataclasses.replace``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from property_workflows.domain.enums import (
    ActorRole,
    CommissionStatus,
    DealType,
    ExitKind,
    MaintenancePriority,
    MaintenanceStatus,
    NoticeReason,
    PaymentPreference,
    TenancyStatus,
    WorkflowKind,
)


@dataclass(frozen=True)
class Actor:
    """Party requesting a transition, as resolved by the auth layer."""

    role: ActorRole
    id: str

    def __str__(self) -> str:
        return f"{self.role.value}:{self.id}"


@dataclass(frozen=True)
class HistoryEntry:
    """One append-only audit record of a workflow instance."""

    state: Enum
    action: str
    actor: Actor
    timestamp: datetime
    reason: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class WorkflowInstance:
    """Base for all workflow instances.

    ``state`` always equals ``history[-1].state``. ``version`` belongs to the
    store and is 0 until the instance has been persisted once.
    """

    kind: ClassVar[WorkflowKind]

    id: str
    state: Enum
    history: tuple[HistoryEntry, ...]
    created_at: datetime
    version: int = 0

    @property
    def last_entry(self) -> HistoryEntry:
        return self.history[-1]


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class Tenancy(WorkflowInstance):
    """A signed lease between a tenant and a landlord's property."""

    kind: ClassVar[WorkflowKind] = WorkflowKind.TENANCY

    state: TenancyStatus
    tenant_id: str
    property_id: str
    landlord_id: str
    agency_id: Optional[str] = None
    lease_start: date
    lease_end: date
    rent_amount: Decimal

    # Notice (set only by the issue_notice transition)
    notice_reason: Optional[NoticeReason] = None
    notice_issued_at: Optional[datetime] = None
    notice_expires_at: Optional[datetime] = None
    legal_notes: str = ""
    court_filing_required: bool = False

    # Termination
    voluntary: Optional[bool] = None
    terminated_at: Optional[datetime] = None

    @property
    def exit_kind(self) -> Optional[ExitKind]:
        if self.state != TenancyStatus.TERMINATED:
            return None
        return ExitKind.VOLUNTARY_EXIT if self.voluntary else ExitKind.EVICTED


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Bid:
    """A maintenance provider's offer on an open request."""

    provider_id: str
    amount: Decimal
    message: str
    submitted_at: datetime
    accepted: bool = False


@dataclass(frozen=True, kw_only=True)
class MaintenanceRequest(WorkflowInstance):
    """A repair job posted to the provider marketplace."""

    kind: ClassVar[WorkflowKind] = WorkflowKind.MAINTENANCE_REQUEST

    state: MaintenanceStatus
    property_id: str
    tenant_id: str
    landlord_id: Optional[str] = None
    title: str
    description: str = ""
    category: str = "General Repair"
    priority: MaintenancePriority = MaintenancePriority.MEDIUM
    is_emergency: bool = False
    estimated_cost: Optional[Decimal] = None
    payment_preference: PaymentPreference = PaymentPreference.LANDLORD
    bids: tuple[Bid, ...] = field(default_factory=tuple)
    completed_at: Optional[datetime] = None
    provider_rating: Optional[int] = None
    review: str = ""

    def bid_for(self, provider_id: str) -> Optional[Bid]:
        for bid in self.bids:
            if bid.provider_id == provider_id:
                return bid
        return None

    @property
    def accepted_bid(self) -> Optional[Bid]:
        for bid in self.bids:
            if bid.accepted:
                return bid
        return None


# ---------------------------------------------------------------------------
# Commission
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class CommissionDeal(WorkflowInstance):
    """An agency deal whose commission is tracked until paid.

    ``state`` is only ever PENDING or PAID. Use
    ``commission_ledger.effective_state`` to see OVERDUE.
    """

    kind: ClassVar[WorkflowKind] = WorkflowKind.COMMISSION_DEAL

    state: CommissionStatus
    agency_id: str
    deal_type: DealType
    deal_value: Decimal
    commission_rate: Decimal
    closing_date: date
    due_date: date
    payment_date: Optional[datetime] = None
    property_address: str = ""
    property_type: str = ""
    client_name: str = ""
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None

    @property
    def commission_amount(self) -> Decimal:
        from property_workflows.services.commission_ledger import compute_commission

        return compute_commission(self.deal_type, self.deal_value, self.commission_rate)
