"""Tests for the maintenance request workflow and its bid ledger."""

import itertools
import random
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import AGENCY, LANDLORD, NOW, PROVIDER_A, PROVIDER_B, TENANT
from property_workflows.domain.enums import (
    ActorRole,
    GuardReason,
    MaintenanceStatus,
    TransitionErrorCode,
)
from property_workflows.domain.instances import Actor
from property_workflows.services.deadline_policy import DeadlinePolicy
from property_workflows.services.maintenance_workflow import (
    ACCEPT_BID,
    CANCEL,
    COMPLETE,
    PUBLISH,
    RATE_PROVIDER,
    START,
    SUBMIT_BID,
    MaintenanceWorkflow,
    accepted_bids,
    bid_count,
    lowest_bid,
)

S = MaintenanceStatus
PROVIDER_C = Actor(ActorRole.MAINTENANCE, "provider-c")


@pytest.fixture
def open_request(maintenance, make_request):
    return maintenance.publish(make_request(), TENANT, NOW).unwrap()


def _with_bids(maintenance, request, *bids):
    for i, (provider, amount) in enumerate(bids):
        request = maintenance.submit_bid(request, provider, NOW + timedelta(minutes=i), amount).unwrap()
    return request


class TestSubmitRequest:

    def test_starts_submitted(self, make_request):
        request = make_request()
        assert request.state == S.SUBMITTED
        assert request.bids == ()

    def test_title_required(self, make_request):
        with pytest.raises(ValueError):
            make_request(title="   ")

    def test_negative_estimate_rejected(self, make_request):
        with pytest.raises(ValueError):
            make_request(estimated_cost="-5")

    def test_estimate_limited_to_cents(self, make_request):
        with pytest.raises(ValueError, match="decimal places"):
            make_request(estimated_cost="199.999")
        assert make_request(estimated_cost="199.90").estimated_cost == Decimal("199.90")


class TestBidScenario:
    """Two bids, accept A, then late bid and second acceptance are refused."""

    def test_accept_closes_bidding(self, maintenance, open_request):
        request = _with_bids(maintenance, open_request, (PROVIDER_A, 500), (PROVIDER_B, 450))
        assert bid_count(request) == 2
        assert lowest_bid(request).provider_id == PROVIDER_B.id

        accepted = maintenance.accept_bid(request, PROVIDER_A.id, TENANT, NOW).unwrap()
        assert accepted.state == S.BID_ACCEPTED
        assert accepted.accepted_bid.provider_id == PROVIDER_A.id
        assert accepted.accepted_bid.amount == Decimal("500")

        late = maintenance.submit_bid(accepted, PROVIDER_C, NOW, 400)
        assert late.error.code == TransitionErrorCode.GUARD_FAILED
        assert late.error.reason == GuardReason.BIDDING_CLOSED

        second = maintenance.accept_bid(accepted, PROVIDER_B.id, TENANT, NOW)
        assert second.error.code == TransitionErrorCode.GUARD_FAILED
        assert second.error.reason == GuardReason.ALREADY_ACCEPTED


class TestBidRules:

    def test_duplicate_bid(self, maintenance, open_request):
        request = _with_bids(maintenance, open_request, (PROVIDER_A, 300))
        result = maintenance.submit_bid(request, PROVIDER_A, NOW, 280)
        assert result.error.reason == GuardReason.DUPLICATE_BID

    @pytest.mark.parametrize("amount", [0, -10, "abc", "NaN", None, "450.005"])
    def test_invalid_amount(self, maintenance, open_request, amount):
        result = maintenance.submit_bid(open_request, PROVIDER_A, NOW, amount)
        assert result.error.reason == GuardReason.INVALID_BID_AMOUNT

    def test_bid_over_budget_allowed_when_cap_off(self, maintenance, make_request):
        request = maintenance.publish(make_request(estimated_cost="200"), TENANT, NOW).unwrap()
        assert maintenance.submit_bid(request, PROVIDER_A, NOW, 350).ok

    def test_budget_cap_enforced(self, make_request):
        capped = MaintenanceWorkflow(DeadlinePolicy(enforce_bid_cap=True))
        request = capped.publish(make_request(estimated_cost="200"), TENANT, NOW).unwrap()
        result = capped.submit_bid(request, PROVIDER_A, NOW, 350)
        assert result.error.reason == GuardReason.BUDGET_EXCEEDED
        assert capped.submit_bid(request, PROVIDER_A, NOW, 200).ok

    def test_budget_cap_ignored_without_estimate(self, make_request):
        capped = MaintenanceWorkflow(DeadlinePolicy(enforce_bid_cap=True))
        request = capped.publish(make_request(), TENANT, NOW).unwrap()
        assert capped.submit_bid(request, PROVIDER_A, NOW, 10_000).ok

    def test_accept_unknown_provider(self, maintenance, open_request):
        request = _with_bids(maintenance, open_request, (PROVIDER_A, 300))
        result = maintenance.accept_bid(request, "nobody", TENANT, NOW)
        assert result.error.reason == GuardReason.BID_NOT_FOUND

    def test_bid_before_publish_is_invalid(self, maintenance, make_request):
        result = maintenance.submit_bid(make_request(), PROVIDER_A, NOW, 100)
        assert result.error.code == TransitionErrorCode.INVALID_ACTION


class TestAtMostOneAcceptedBid:
    """No sequence of bids and acceptances can leave two accepted bids."""

    PROVIDERS = [PROVIDER_A, PROVIDER_B, PROVIDER_C]

    def _run(self, maintenance, request, steps):
        for kind, provider in steps:
            if kind == SUBMIT_BID:
                result = maintenance.submit_bid(request, provider, NOW, 100 + len(request.bids))
            else:
                result = maintenance.accept_bid(request, provider.id, LANDLORD, NOW)
            if result.ok:
                request = result.instance
            assert sum(1 for b in request.bids if b.accepted) <= 1
            if request.accepted_bid is not None:
                assert request.state == S.BID_ACCEPTED
        return request

    def test_exhaustive_short_sequences(self, maintenance, open_request):
        moves = [(k, p) for k in (SUBMIT_BID, ACCEPT_BID) for p in self.PROVIDERS]
        for steps in itertools.product(moves, repeat=4):
            self._run(maintenance, open_request, steps)

    def test_random_long_sequences(self, maintenance, open_request):
        rng = random.Random(20260302)
        for _ in range(200):
            steps = [
                (rng.choice([SUBMIT_BID, ACCEPT_BID]), rng.choice(self.PROVIDERS))
                for _ in range(rng.randint(1, 12))
            ]
            final = self._run(maintenance, open_request, steps)
            if final.state == S.BID_ACCEPTED:
                late = maintenance.submit_bid(final, PROVIDER_C, NOW, 50)
                assert late.error.reason == GuardReason.BIDDING_CLOSED


class TestJobLifecycle:

    def test_accepted_provider_runs_job(self, maintenance, open_request):
        request = _with_bids(maintenance, open_request, (PROVIDER_A, 500), (PROVIDER_B, 450))
        accepted = maintenance.accept_bid(request, PROVIDER_B.id, LANDLORD, NOW).unwrap()

        assert maintenance.start(accepted, PROVIDER_A, NOW).error.code == TransitionErrorCode.FORBIDDEN

        started = maintenance.start(accepted, PROVIDER_B, NOW + timedelta(days=1)).unwrap()
        assert started.state == S.IN_PROGRESS

        finished_at = NOW + timedelta(days=2)
        done = maintenance.complete(started, PROVIDER_B, finished_at).unwrap()
        assert done.state == S.COMPLETED
        assert done.completed_at == finished_at
        assert [e.action for e in done.history] == [
            "create", PUBLISH, SUBMIT_BID, SUBMIT_BID, ACCEPT_BID, START, COMPLETE,
        ]

    def test_in_progress_still_refuses_bids(self, maintenance, open_request):
        request = _with_bids(maintenance, open_request, (PROVIDER_A, 500))
        started = maintenance.start(
            maintenance.accept_bid(request, PROVIDER_A.id, TENANT, NOW).unwrap(), PROVIDER_A, NOW,
        ).unwrap()
        assert maintenance.submit_bid(started, PROVIDER_B, NOW, 10).error.reason == GuardReason.BIDDING_CLOSED
        assert maintenance.accept_bid(started, PROVIDER_A.id, TENANT, NOW).error.reason == GuardReason.ALREADY_ACCEPTED

    @pytest.mark.parametrize("stage", range(4))
    def test_cancel_from_every_open_stage(self, maintenance, make_request, stage):
        request = make_request()
        if stage >= 1:
            request = maintenance.publish(request, TENANT, NOW).unwrap()
        if stage >= 2:
            request = _with_bids(maintenance, request, (PROVIDER_A, 90))
            request = maintenance.accept_bid(request, PROVIDER_A.id, TENANT, NOW).unwrap()
        if stage >= 3:
            request = maintenance.start(request, PROVIDER_A, NOW).unwrap()

        cancelled = maintenance.cancel(request, LANDLORD, NOW, reason="Tenant fixed it").unwrap()
        assert cancelled.state == S.CANCELLED
        assert cancelled.last_entry.reason == "Tenant fixed it"

    @pytest.mark.parametrize("action", [PUBLISH, SUBMIT_BID, ACCEPT_BID, START, COMPLETE, CANCEL, RATE_PROVIDER])
    def test_terminal_states_reject_everything(self, maintenance, make_request, action):
        cancelled = maintenance.cancel(make_request(), TENANT, NOW).unwrap()
        result = maintenance.attempt(cancelled, action, TENANT, NOW, {"provider_id": PROVIDER_A.id})
        assert result.error.code == TransitionErrorCode.TERMINAL_STATE



class TestProviderRating:

    @pytest.fixture
    def completed(self, maintenance, open_request):
        request = _with_bids(maintenance, open_request, (PROVIDER_A, 300))
        request = maintenance.accept_bid(request, PROVIDER_A.id, TENANT, NOW).unwrap()
        request = maintenance.start(request, PROVIDER_A, NOW).unwrap()
        return maintenance.complete(request, PROVIDER_A, NOW + timedelta(hours=3)).unwrap()

    def test_tenant_rates_once(self, maintenance, completed):
        rated = maintenance.rate_provider(completed, TENANT, NOW + timedelta(days=1), 4, "Quick and tidy").unwrap()
        assert rated.state == S.COMPLETED
        assert rated.provider_rating == 4
        assert rated.review == "Quick and tidy"
        assert rated.last_entry.action == RATE_PROVIDER
        assert rated.last_entry.reason == "rating:4"

        again = maintenance.rate_provider(rated, TENANT, NOW + timedelta(days=2), 5)
        assert again.error.reason == GuardReason.ALREADY_RATED

    @pytest.mark.parametrize("rating", [0, 6, 3.5, "5", True, None])
    def test_rating_range(self, maintenance, completed, rating):
        result = maintenance.rate_provider(completed, TENANT, NOW, rating)
        assert result.error.reason == GuardReason.INVALID_RATING

    def test_only_requesting_tenant(self, maintenance, completed):
        for actor in (LANDLORD, PROVIDER_A, Actor(ActorRole.TENANT, "tenant-2")):
            result = maintenance.rate_provider(completed, actor, NOW, 5)
            assert result.error.code == TransitionErrorCode.FORBIDDEN

    def test_not_before_completion(self, maintenance, open_request):
        result = maintenance.rate_provider(open_request, TENANT, NOW, 5)
        assert result.error.code == TransitionErrorCode.INVALID_ACTION

    def test_completed_offers_rating_to_tenant_only(self, maintenance, completed):
        assert maintenance.allowed_actions(completed, TENANT) == [RATE_PROVIDER]
        assert maintenance.allowed_actions(completed, PROVIDER_A) == []

class TestAuthorization:

    def test_providers_cannot_publish(self, maintenance, make_request):
        assert maintenance.publish(make_request(), PROVIDER_A, NOW).error.code == TransitionErrorCode.FORBIDDEN

    def test_other_tenant_cannot_publish(self, maintenance, make_request):
        other = Actor(ActorRole.TENANT, "tenant-2")
        assert maintenance.publish(make_request(), other, NOW).error.code == TransitionErrorCode.FORBIDDEN

    def test_owners_cannot_bid(self, maintenance, open_request):
        assert maintenance.submit_bid(open_request, TENANT, NOW, 10).error.code == TransitionErrorCode.FORBIDDEN

    def test_agency_has_no_role(self, maintenance, open_request):
        assert maintenance.cancel(open_request, AGENCY, NOW).error.code == TransitionErrorCode.FORBIDDEN

    def test_allowed_actions_by_party(self, maintenance, open_request):
        assert set(maintenance.allowed_actions(open_request, TENANT)) == {ACCEPT_BID, CANCEL}
        assert maintenance.allowed_actions(open_request, PROVIDER_A) == [SUBMIT_BID]


class TestBidLedgerHelpers:

    def test_accepted_bids_across_requests(self, maintenance, open_request, make_request):
        one = maintenance.accept_bid(
            _with_bids(maintenance, open_request, (PROVIDER_A, 120)), PROVIDER_A.id, TENANT, NOW,
        ).unwrap()
        two = maintenance.publish(make_request(), TENANT, NOW).unwrap()
        assert [b.provider_id for b in accepted_bids([one, two])] == [PROVIDER_A.id]
        assert lowest_bid(two) is None
