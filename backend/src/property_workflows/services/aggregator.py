"""Dashboard rollups over workflow instances.

Everything is recomputed from the instance collection on each call; nothing
is cached or maintained incrementally.
"""

from collections import Counter
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Optional, TypeVar

from property_workflows.domain.enums import (
    CommissionStatus,
    DealType,
    MaintenanceStatus,
    TenancyStatus,
)
from property_workflows.domain.instances import CommissionDeal, MaintenanceRequest, Tenancy
from property_workflows.services.clock import ensure_utc
from property_workflows.services.commission_ledger import effective_state
from property_workflows.services.deadline_policy import days_remaining, days_until

T = TypeVar("T")

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Generic reducers
# ---------------------------------------------------------------------------


def count_by(items: Iterable[T], key: Callable[[T], Enum]) -> dict[str, int]:
    """Count items per key value (enum values as plain strings)."""
    counts = Counter(key(item).value for item in items)
    return dict(counts)


def sum_where(
    items: Iterable[T],
    value: Callable[[T], Decimal],
    predicate: Optional[Callable[[T], bool]] = None,
) -> Decimal:
    total = ZERO
    for item in items:
        if predicate is None or predicate(item):
            total += value(item)
    return total


def percentage(part, total) -> float:
    """``part`` as a percentage of ``total``, 0.0 when total is empty."""
    if not total:
        return 0.0
    return round(float(part) / float(total) * 100, 2)


def conversion_rate(items: Iterable[T], reached: Callable[[T], bool], eligible: Optional[Callable[[T], bool]] = None) -> float:
    """Share of eligible items that reached a milestone, as a percentage."""
    pool = [i for i in items if eligible is None or eligible(i)]
    return percentage(sum(1 for i in pool if reached(i)), len(pool))


def _reached(instance, states: Iterable[Enum]) -> bool:
    wanted = set(states)
    return any(entry.state in wanted for entry in instance.history)


# ---------------------------------------------------------------------------
# Commission
# ---------------------------------------------------------------------------


def commission_summary(deals: Iterable[CommissionDeal], now: datetime, deal_type: Optional[DealType] = None) -> dict:
    """Totals by effective state, optionally restricted to one deal type."""
    rows = [d for d in deals if deal_type is None or d.deal_type == deal_type]

    def state_of(deal: CommissionDeal) -> CommissionStatus:
        return effective_state(deal, now)

    def amount(deal: CommissionDeal) -> Decimal:
        return deal.commission_amount

    total = sum_where(rows, amount)
    by_state = {
        status.value: sum_where(rows, amount, lambda d, s=status: state_of(d) == s)
        for status in CommissionStatus
    }
    return {
        "deal_count": len(rows),
        "counts": {s.value: 0 for s in CommissionStatus} | count_by(rows, state_of),
        "total_commission": total,
        "pending_commission": by_state[CommissionStatus.PENDING.value],
        "paid_commission": by_state[CommissionStatus.PAID.value],
        "overdue_commission": by_state[CommissionStatus.OVERDUE.value],
        "paid_percentage": percentage(by_state[CommissionStatus.PAID.value], total),
        "by_deal_type": {
            dt.value: sum_where(rows, amount, lambda d, dt=dt: d.deal_type == dt)
            for dt in DealType
        },
    }


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


def maintenance_summary(requests: Iterable[MaintenanceRequest]) -> dict:
    rows = list(requests)
    open_jobs = [r for r in rows if r.state == MaintenanceStatus.OPEN_FOR_BIDS]

    def published(request: MaintenanceRequest) -> bool:
        return _reached(request, [MaintenanceStatus.OPEN_FOR_BIDS])

    return {
        "request_count": len(rows),
        "counts": {s.value: 0 for s in MaintenanceStatus} | count_by(rows, lambda r: r.state),
        "emergency_open": sum(
            1 for r in rows
            if r.is_emergency and r.state not in (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED)
        ),
        "open_for_bids": len(open_jobs),
        "open_with_bids": sum(1 for r in open_jobs if r.bids),
        "total_bids": sum(len(r.bids) for r in rows),
        "award_rate": conversion_rate(rows, lambda r: r.accepted_bid is not None, eligible=published),
        "completion_rate": conversion_rate(
            rows, lambda r: r.state == MaintenanceStatus.COMPLETED, eligible=published,
        ),
        "awarded_value": sum_where(
            rows, lambda r: r.accepted_bid.amount, lambda r: r.accepted_bid is not None,
        ),
    }


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


def tenancy_summary(tenancies: Iterable[Tenancy], now: datetime, expiring_within_days: int = 30) -> dict:
    rows = list(tenancies)
    live = [t for t in rows if t.state != TenancyStatus.TERMINATED]

    notices = sorted(
        (t for t in rows if t.state == TenancyStatus.NOTICE_GIVEN),
        key=lambda t: ensure_utc(t.notice_expires_at),
    )
    expiring_leases = [
        t for t in live if 0 <= days_until(t.lease_end, now) <= expiring_within_days
    ]

    return {
        "tenancy_count": len(rows),
        "counts": {s.value: 0 for s in TenancyStatus} | count_by(rows, lambda t: t.state),
        "monthly_rent_roll": sum_where(live, lambda t: t.rent_amount),
        "notices": [
            {
                "tenancy_id": t.id,
                "reason": t.notice_reason.value,
                "notice_expires_at": t.notice_expires_at.isoformat(),
                "days_remaining": days_remaining(t.notice_expires_at, now),
                "removable": ensure_utc(now) >= ensure_utc(t.notice_expires_at),
            }
            for t in notices
        ],
        "expiring_leases": [
            {"tenancy_id": t.id, "lease_end": t.lease_end.isoformat(), "days_remaining": days_remaining(t.lease_end, now)}
            for t in sorted(expiring_leases, key=lambda t: t.lease_end)
        ],
        "eviction_rate": percentage(
            sum(1 for t in rows if t.state == TenancyStatus.TERMINATED and not t.voluntary),
            sum(1 for t in rows if t.state == TenancyStatus.TERMINATED),
        ),
    }
