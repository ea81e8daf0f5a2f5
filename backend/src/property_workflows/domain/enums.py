"""Domain enumerations for the property workflows.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class ActorRole(str, Enum):
    """Role of the party requesting a transition."""

    LANDLORD = "landlord"
    TENANT = "tenant"
    AGENCY = "agency"
    MAINTENANCE = "maintenance"


class WorkflowKind(str, Enum):
    """Which lifecycle a workflow instance belongs to."""

    TENANCY = "tenancy"
    MAINTENANCE_REQUEST = "maintenance_request"
    COMMISSION_DEAL = "commission_deal"


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


class TenancyStatus(str, Enum):
    """Status of a tenancy through its lease lifecycle."""

    ACTIVE = "active"
    NOTICE_GIVEN = "notice_given"
    TERMINATED = "terminated"


class NoticeReason(str, Enum):
    """Legal reason recorded on an eviction notice."""

    NON_PAYMENT = "non_payment"
    LEASE_VIOLATION = "lease_violation"
    PROPERTY_DAMAGE = "property_damage"
    ILLEGAL_ACTIVITY = "illegal_activity"
    END_OF_LEASE = "end_of_lease"
    OWNER_OCCUPATION = "owner_occupation"


class ExitKind(str, Enum):
    """How a terminated tenancy ended."""

    VOLUNTARY_EXIT = "voluntary_exit"
    EVICTED = "evicted"


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class MaintenanceStatus(str, Enum):
    """Status of a maintenance request in the provider marketplace."""

    SUBMITTED = "submitted"
    OPEN_FOR_BIDS = "open_for_bids"
    BID_ACCEPTED = "bid_accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MaintenancePriority(str, Enum):
    """Urgency of a maintenance request."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PaymentPreference(str, Enum):
    """Party expected to pay for the maintenance work."""

    LANDLORD = "landlord"
    TENANT = "tenant"


# ---------------------------------------------------------------------------
# Commission
# ---------------------------------------------------------------------------


class CommissionStatus(str, Enum):
    """Status of a commission deal.

    Only PENDING and PAID are ever persisted. OVERDUE is an effective state
    computed on read from the due date.
    """

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class DealType(str, Enum):
    """Kind of agency deal a commission is earned on."""

    LEASE = "lease"
    SALE = "sale"


# ---------------------------------------------------------------------------
# Transition outcomes
# ---------------------------------------------------------------------------


class TransitionErrorCode(str, Enum):
    """Category of a rejected transition."""

    INVALID_ACTION = "invalid_action"
    FORBIDDEN = "forbidden"
    GUARD_FAILED = "guard_failed"
    TERMINAL_STATE = "terminal_state"
    UNKNOWN_REASON = "unknown_reason"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class GuardReason(str, Enum):
    """Machine-readable reason attached to a GUARD_FAILED rejection."""

    NOTICE_PERIOD_NOT_ELAPSED = "notice_period_not_elapsed"
    NOTICE_NOT_ISSUED = "notice_not_issued"
    ALREADY_IN_NOTICE = "already_in_notice"
    DUPLICATE_BID = "duplicate_bid"
    BUDGET_EXCEEDED = "budget_exceeded"
    INVALID_BID_AMOUNT = "invalid_bid_amount"
    BIDDING_CLOSED = "bidding_closed"
    ALREADY_ACCEPTED = "already_accepted"
    BID_NOT_FOUND = "bid_not_found"
    INVALID_RATING = "invalid_rating"
    ALREADY_RATED = "already_rated"
