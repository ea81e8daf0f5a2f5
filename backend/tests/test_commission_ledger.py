"""Tests for commission computation and the pending -> paid ledger."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import AGENCY, LANDLORD, NOW
from property_workflows.domain.enums import (
    ActorRole,
    CommissionStatus,
    DealType,
    TransitionErrorCode,
)
from property_workflows.domain.instances import Actor
from property_workflows.services.commission_ledger import (
    MARK_PAID,
    annualize_monthly_rent,
    compute_commission,
    days_until_due,
    effective_state,
)

S = CommissionStatus


class TestComputeCommission:

    def test_lease_on_annualized_rent(self):
        deal_value = annualize_monthly_rent(4500)
        assert deal_value == Decimal("54000")
        assert compute_commission(DealType.LEASE, deal_value, "8.5") == Decimal("4590.00")

    def test_sale(self):
        assert compute_commission(DealType.SALE, "350000", "2.5") == Decimal("8750.00")

    def test_rounds_half_up_to_cents(self):
        assert compute_commission(DealType.SALE, "1000.05", "10") == Decimal("100.01")

    def test_unknown_deal_type(self):
        with pytest.raises(ValueError):
            compute_commission("rental", 1000, 5)


class TestRecordDeal:

    def test_derived_amount(self, make_deal):
        deal = make_deal(deal_value="54000", commission_rate="8.5")
        assert deal.state == S.PENDING
        assert deal.commission_amount == Decimal("4590.00")

    @pytest.mark.parametrize("rate", ["0", "0.09", "100.5", "-1"])
    def test_rate_out_of_range(self, make_deal, rate):
        with pytest.raises(ValueError):
            make_deal(commission_rate=rate)

    @pytest.mark.parametrize("rate", ["0.1", "100"])
    def test_rate_bounds_inclusive(self, make_deal, rate):
        assert make_deal(commission_rate=rate).commission_rate == Decimal(rate)

    def test_value_must_be_positive(self, make_deal):
        with pytest.raises(ValueError):
            make_deal(deal_value="0")

    def test_value_limited_to_cents(self, make_deal):
        with pytest.raises(ValueError, match="decimal places"):
            make_deal(deal_value="12345.678")

    def test_rate_limited_to_three_places(self, make_deal):
        with pytest.raises(ValueError, match="decimal places"):
            make_deal(commission_rate="8.1234")
        assert make_deal(commission_rate="8.125").commission_rate == Decimal("8.125")

    def test_monthly_rent_limited_to_cents(self):
        with pytest.raises(ValueError):
            annualize_monthly_rent("4500.001")


class TestEffectiveState:

    def test_overdue_then_paid(self, ledger, make_deal):
        yesterday = (NOW - timedelta(days=1)).date()
        deal = make_deal(due_date=yesterday)
        assert deal.state == S.PENDING
        assert effective_state(deal, NOW) == S.OVERDUE

        paid = ledger.mark_paid(deal, AGENCY, NOW, payment_method="bank_transfer", reference="INV-1").unwrap()
        assert paid.state == S.PAID
        assert paid.payment_date == NOW
        assert paid.payment_reference == "INV-1"
        assert paid.due_date == yesterday
        assert effective_state(paid, NOW) == S.PAID
        assert ledger.effective_state(paid, NOW + timedelta(days=365)) == S.PAID

    def test_due_today_is_pending(self, make_deal):
        assert effective_state(make_deal(due_date=NOW.date()), NOW) == S.PENDING

    def test_overdue_derived_purely_from_clock(self, make_deal):
        deal = make_deal(due_date=date(2026, 3, 15))
        for offset in range(-5, 6):
            now = datetime(2026, 3, 15, 12, tzinfo=timezone.utc) + timedelta(days=offset)
            expected = S.OVERDUE if offset > 0 else S.PENDING
            assert effective_state(deal, now) == expected
            assert deal.state == S.PENDING

    def test_days_until_due(self, ledger, make_deal):
        deal = make_deal(due_date=date(2026, 3, 15))
        assert days_until_due(deal, NOW) == 13
        assert days_until_due(deal, datetime(2026, 3, 20, tzinfo=timezone.utc)) == -5
        assert days_until_due(ledger.mark_paid(deal, AGENCY, NOW).unwrap(), NOW) is None


class TestLedgerTransitions:

    def test_stored_state_never_overdue(self, ledger):
        assert S.OVERDUE not in ledger.definition.states

    def test_paid_is_terminal(self, ledger, make_deal):
        paid = ledger.mark_paid(make_deal(), AGENCY, NOW).unwrap()
        again = ledger.mark_paid(paid, AGENCY, NOW)
        assert again.error.code == TransitionErrorCode.TERMINAL_STATE
        assert len(paid.history) == 2

    def test_only_the_deals_agency(self, ledger, make_deal):
        other = Actor(ActorRole.AGENCY, "agency-2")
        assert ledger.mark_paid(make_deal(), other, NOW).error.code == TransitionErrorCode.FORBIDDEN
        assert ledger.mark_paid(make_deal(), LANDLORD, NOW).error.code == TransitionErrorCode.FORBIDDEN

    def test_unknown_action(self, ledger, make_deal):
        result = ledger.attempt(make_deal(), "mark_overdue", AGENCY, NOW)
        assert result.error.code == TransitionErrorCode.INVALID_ACTION

    def test_allowed_actions(self, ledger, make_deal):
        assert ledger.allowed_actions(make_deal(), AGENCY) == [MARK_PAID]
