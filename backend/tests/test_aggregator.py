"""Tests for the dashboard rollups."""

from datetime import date, timedelta
from decimal import Decimal

from conftest import AGENCY, LANDLORD, NOW, PROVIDER_A, PROVIDER_B, TENANT
from property_workflows.domain.enums import DealType, NoticeReason
from property_workflows.services.aggregator import (
    commission_summary,
    conversion_rate,
    count_by,
    maintenance_summary,
    percentage,
    sum_where,
    tenancy_summary,
)


class TestReducers:

    def test_percentage_of_empty_total_is_zero(self):
        assert percentage(5, 0) == 0.0
        assert percentage(0, Decimal("0")) == 0.0

    def test_percentage_rounds(self):
        assert percentage(1, 3) == 33.33

    def test_count_by_and_sum_where(self, make_deal):
        deals = [make_deal(), make_deal(deal_type=DealType.SALE, deal_value="100000", commission_rate="2")]
        assert count_by(deals, lambda d: d.deal_type) == {"lease": 1, "sale": 1}
        assert sum_where(deals, lambda d: d.commission_amount) == Decimal("3920.00")
        assert sum_where(deals, lambda d: d.commission_amount, lambda d: d.deal_type == DealType.SALE) == Decimal("2000.00")

    def test_conversion_rate_ignores_ineligible(self):
        items = [1, 2, 3, 4, 5, 6]
        assert conversion_rate(items, lambda i: i % 2 == 0, eligible=lambda i: i > 2) == 50.0
        assert conversion_rate([], lambda i: True) == 0.0


class TestCommissionSummary:

    def test_totals_by_effective_state(self, ledger, make_deal):
        overdue = make_deal(deal_value="10000", commission_rate="10", due_date=date(2026, 2, 1))
        pending = make_deal(deal_value="20000", commission_rate="10", due_date=date(2026, 4, 1))
        paid = ledger.mark_paid(
            make_deal(deal_value="30000", commission_rate="10", due_date=date(2026, 1, 1)), AGENCY, NOW,
        ).unwrap()

        summary = commission_summary([overdue, pending, paid], NOW)
        assert summary["deal_count"] == 3
        assert summary["counts"] == {"pending": 1, "paid": 1, "overdue": 1}
        assert summary["total_commission"] == Decimal("6000.00")
        assert summary["overdue_commission"] == Decimal("1000.00")
        assert summary["pending_commission"] == Decimal("2000.00")
        assert summary["paid_commission"] == Decimal("3000.00")
        assert summary["paid_percentage"] == 50.0

    def test_recomputed_as_clock_moves(self, make_deal):
        deals = [make_deal(due_date=date(2026, 3, 10))]
        assert commission_summary(deals, NOW)["counts"]["overdue"] == 0
        assert commission_summary(deals, NOW + timedelta(days=30))["counts"]["overdue"] == 1

    def test_filter_by_deal_type(self, make_deal):
        deals = [make_deal(), make_deal(deal_type=DealType.SALE, deal_value="100000", commission_rate="2")]
        summary = commission_summary(deals, NOW, deal_type=DealType.SALE)
        assert summary["deal_count"] == 1
        assert summary["by_deal_type"] == {"lease": Decimal("0"), "sale": Decimal("2000.00")}

    def test_empty(self):
        summary = commission_summary([], NOW)
        assert summary["total_commission"] == 0
        assert summary["paid_percentage"] == 0.0


class TestMaintenanceSummary:

    def test_marketplace_rollup(self, maintenance, make_request):
        waiting = maintenance.publish(make_request(), TENANT, NOW).unwrap()
        bidding = maintenance.submit_bid(
            maintenance.publish(make_request(is_emergency=True), TENANT, NOW).unwrap(), PROVIDER_A, NOW, 300,
        ).unwrap()
        awarded = maintenance.accept_bid(
            maintenance.submit_bid(
                maintenance.publish(make_request(), TENANT, NOW).unwrap(), PROVIDER_B, NOW, 450,
            ).unwrap(),
            PROVIDER_B.id, LANDLORD, NOW,
        ).unwrap()
        draft = make_request()

        summary = maintenance_summary([waiting, bidding, awarded, draft])
        assert summary["request_count"] == 4
        assert summary["counts"]["open_for_bids"] == 2
        assert summary["counts"]["submitted"] == 1
        assert summary["counts"]["completed"] == 0
        assert summary["open_for_bids"] == 2
        assert summary["open_with_bids"] == 1
        assert summary["emergency_open"] == 1
        assert summary["total_bids"] == 2
        assert summary["award_rate"] == 33.33
        assert summary["awarded_value"] == Decimal("450")


class TestTenancySummary:

    def test_notices_and_expiring_leases(self, tenancy_lifecycle, make_tenancy):
        plain = make_tenancy(rent_amount="1000", lease_end=date(2027, 1, 31))
        ending = make_tenancy(rent_amount="1200", lease_end=(NOW + timedelta(days=10)).date())
        noticed = tenancy_lifecycle.issue_notice(
            make_tenancy(rent_amount="800", lease_end=date(2027, 1, 31)),
            NoticeReason.NON_PAYMENT, LANDLORD, NOW - timedelta(days=2),
        ).unwrap()
        evicted = tenancy_lifecycle.remove(
            tenancy_lifecycle.issue_notice(make_tenancy(), NoticeReason.NON_PAYMENT, LANDLORD, NOW - timedelta(days=20)).unwrap(),
            False, LANDLORD, NOW,
        ).unwrap()
        left = tenancy_lifecycle.remove(make_tenancy(), True, LANDLORD, NOW).unwrap()

        summary = tenancy_summary([plain, ending, noticed, evicted, left], NOW)
        assert summary["counts"] == {"active": 2, "notice_given": 1, "terminated": 2}
        assert summary["monthly_rent_roll"] == Decimal("3000")
        assert [n["tenancy_id"] for n in summary["notices"]] == [noticed.id]
        assert summary["notices"][0]["days_remaining"] == 5
        assert summary["notices"][0]["removable"] is False
        assert [lease["tenancy_id"] for lease in summary["expiring_leases"]] == [ending.id]
        assert summary["expiring_leases"][0]["days_remaining"] == 10
        assert summary["eviction_rate"] == 50.0

    def test_naive_now_treated_as_utc(self, tenancy_lifecycle, make_tenancy):
        noticed = tenancy_lifecycle.issue_notice(make_tenancy(), NoticeReason.NON_PAYMENT, LANDLORD, NOW).unwrap()
        naive_now = NOW.replace(tzinfo=None)

        assert tenancy_summary([noticed], naive_now)["notices"][0]["removable"] is False
        assert tenancy_summary([noticed], naive_now + timedelta(days=7))["notices"][0]["removable"] is True
