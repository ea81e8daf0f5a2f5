"""Pydantic v2 schemas for API request/response validation."""

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from property_workflows.domain.enums import DealType, MaintenancePriority, PaymentPreference


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TransitionRequest(BaseModel):
    """Generic transition call: an action name plus its payload."""

    action: str
    payload: dict[str, Any] = Field(default_factory=dict)


class TransitionErrorResponse(BaseModel):
    """Body returned with every rejected transition."""

    code: str
    reason: str | None = None
    message: str


class HistoryEntryView(BaseModel):
    state: str
    action: str
    actor_role: str
    actor_id: str
    timestamp: str
    reason: str | None = None


class AllowedActionsResponse(BaseModel):
    id: str
    state: str
    allowed_actions: list[str]


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


class TenancyCreate(BaseModel):
    """Schema for opening a tenancy when a lease is signed."""

    tenant_id: str
    property_id: str
    landlord_id: str
    agency_id: str | None = None
    lease_start: date
    lease_end: date
    rent_amount: Decimal = Field(gt=0, decimal_places=2)


class TenancyView(BaseModel):
    id: str
    state: str
    tenant_id: str
    property_id: str
    landlord_id: str
    agency_id: str | None = None
    lease_start: str
    lease_end: str
    rent_amount: float
    notice_reason: str | None = None
    notice_issued_at: str | None = None
    notice_expires_at: str | None = None
    days_until_removal: int | None = None
    legal_notes: str = ""
    court_filing_required: bool = False
    exit_kind: str | None = None
    terminated_at: str | None = None
    version: int
    created_at: str


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class MaintenanceRequestCreate(BaseModel):
    """Schema for submitting a maintenance request."""

    property_id: str
    tenant_id: str
    landlord_id: str | None = None
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    category: str = "General Repair"
    priority: MaintenancePriority = MaintenancePriority.MEDIUM
    is_emergency: bool = False
    estimated_cost: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    payment_preference: PaymentPreference = PaymentPreference.LANDLORD


class BidView(BaseModel):
    provider_id: str
    amount: float
    message: str
    submitted_at: str
    accepted: bool


class MaintenanceRequestView(BaseModel):
    id: str
    state: str
    property_id: str
    tenant_id: str
    landlord_id: str | None = None
    title: str
    description: str
    category: str
    priority: str
    is_emergency: bool
    estimated_cost: float | None = None
    payment_preference: str
    bids: list[BidView]
    bid_count: int
    lowest_bid: float | None = None
    accepted_provider_id: str | None = None
    completed_at: str | None = None
    provider_rating: int | None = None
    review: str = ""
    version: int
    created_at: str


# ---------------------------------------------------------------------------
# Commission
# ---------------------------------------------------------------------------


class CommissionDealCreate(BaseModel):
    """Schema for recording a closed agency deal.

    For lease deals either ``deal_value`` (annual) or ``monthly_rent`` is
    given; a monthly figure is annualized before the commission is computed.
    """

    agency_id: str
    deal_type: DealType
    deal_value: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    monthly_rent: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    commission_rate: Decimal = Field(decimal_places=3)
    closing_date: date
    due_date: date
    property_address: str = ""
    property_type: str = ""
    client_name: str = ""


class CommissionDealView(BaseModel):
    id: str
    state: str
    effective_state: str
    agency_id: str
    deal_type: str
    deal_value: float
    commission_rate: float
    commission_amount: float
    closing_date: str
    due_date: str
    days_until_due: int | None = None
    property_address: str
    property_type: str
    client_name: str
    payment_date: str | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    version: int
    created_at: str
