"""
Tests for candidate creation and refresh from scorer output.
"""

from decimal import Decimal

import pytest

from factories import DAY_MS, OTHER_USER_ID, T0, USER_ID, make_event, put_candidate, put_subscription
from models.detection_candidate import Cadence, CandidateStatus, candidate_id_for
from services.candidates.lifecycle_service import CandidateLifecycleManager
from services.recurring_charges.config import DetectionConfig
from services.recurring_charges.scorer import PeriodicityScorer
from utils.db.store import CANDIDATES

NOW = T0 + 200 * DAY_MS


def series(intervals, amount="9.99", merchant_key="NETFLIX", prefix="tx"):
    occurred_at = T0
    events = [make_event(f"{prefix}-0", occurred_at, amount, merchant_key)]
    for i, days in enumerate(intervals, start=1):
        occurred_at += days * DAY_MS
        events.append(make_event(f"{prefix}-{i}", occurred_at, amount, merchant_key))
    return events


def score(events, known_merchant=True):
    return PeriodicityScorer().score([(e.occurred_at, e.amount.amount) for e in events], known_merchant)


@pytest.fixture
def manager(store):
    return CandidateLifecycleManager(store)


class TestCreate:
    def test_creates_pending_candidate(self, manager, store):
        events = series([30, 30, 30, 30])

        candidate = manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        assert candidate.candidate_id == candidate_id_for(USER_ID, "NETFLIX")
        assert candidate.status == CandidateStatus.PENDING
        assert candidate.proposed_name == "Netflix"
        assert candidate.proposed_amount == Decimal("9.99")
        assert candidate.proposed_cadence == Cadence.MONTHLY
        assert candidate.proposed_next_occurrence == events[-1].occurred_at + 30 * DAY_MS
        assert candidate.confidence == Decimal("1.0000")
        assert candidate.periodicity_score == Decimal("1.0000")
        assert candidate.supporting_event_ids == ["tx-0", "tx-1", "tx-2", "tx-3", "tx-4"]
        assert candidate.created_at == NOW
        assert store.get(CANDIDATES, str(candidate.candidate_id)) is not None

    def test_proposed_amount_is_median(self, manager):
        events = series([30, 30])
        events[1] = make_event("tx-1", events[1].occurred_at, "10.49")
        events[2] = make_event("tx-2", events[2].occurred_at, "12.99")

        candidate = manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        assert candidate.proposed_amount == Decimal("10.49")

    def test_unknown_merchant_gets_title_case_name(self, manager):
        events = series([7, 7, 7], amount="4.50", merchant_key="BLUE BOTTLE COFFEE")
        candidate = manager.upsert_from_score(USER_ID, "BLUE BOTTLE COFFEE", events, score(events, False), NOW)
        assert candidate.proposed_name == "Blue Bottle Coffee"
        assert candidate.proposed_cadence == Cadence.WEEKLY

    def test_unmatched_cadence_is_not_promoted(self, manager, store):
        events = series([10, 45, 3, 120, 7])
        assert manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW) is None
        assert store.count(CANDIDATES) == 0

    def test_low_confidence_is_not_promoted(self, store):
        manager = CandidateLifecycleManager(store, DetectionConfig(min_confidence=0.8))
        events = series([30, 30, 61, 30], merchant_key="GYM")
        assert manager.upsert_from_score(USER_ID, "GYM", events, score(events, False), NOW) is None
        assert store.count(CANDIDATES) == 0

    def test_tracked_merchant_is_not_proposed(self, manager, store):
        put_subscription(store, merchant_key="NETFLIX")
        events = series([30, 30, 30])
        assert manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW) is None

    def test_inactive_subscription_does_not_block(self, manager, store):
        put_subscription(store, merchant_key="NETFLIX", isActive=False)
        events = series([30, 30, 30])
        assert manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW) is not None

    @pytest.mark.parametrize("amount", ["0.00", "-9.99"])
    def test_non_positive_amount_is_not_promoted(self, manager, store, amount):
        events = series([30, 30, 30], amount=amount)

        assert manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW) is None
        assert store.count(CANDIDATES) == 0

    def test_no_events(self, manager):
        events = series([30, 30])
        assert manager.upsert_from_score(USER_ID, "NETFLIX", [], score(events), NOW) is None


class TestRefresh:
    def test_new_event_refreshes_proposal(self, manager):
        events = series([30, 30, 30])
        first = manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        more = series([30, 30, 30, 30])
        refreshed = manager.upsert_from_score(USER_ID, "NETFLIX", more, score(more), NOW + DAY_MS)

        assert refreshed.candidate_id == first.candidate_id
        assert refreshed.created_at == NOW
        assert refreshed.updated_at == NOW + DAY_MS
        assert refreshed.supporting_event_ids[-1] == "tx-4"
        assert refreshed.proposed_next_occurrence == more[-1].occurred_at + 30 * DAY_MS

    def test_unchanged_evidence_is_not_rewritten(self, manager):
        events = series([30, 30, 30])
        manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        again = manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW + DAY_MS)

        assert again.updated_at == NOW

    def test_confidence_can_move_down(self, manager):
        events = series([30, 30, 30, 30])
        manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        degraded = series([30, 30, 61, 30])
        refreshed = manager.upsert_from_score(USER_ID, "NETFLIX", degraded, score(degraded), NOW + DAY_MS)

        assert refreshed.confidence == Decimal("0.8500")
        assert refreshed.status == CandidateStatus.PENDING

    def test_existing_candidate_is_refreshed_below_threshold(self, store):
        manager = CandidateLifecycleManager(store, DetectionConfig(min_confidence=0.9))
        events = series([30, 30, 30, 30])
        manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        degraded = series([30, 30, 61, 30])
        refreshed = manager.upsert_from_score(USER_ID, "NETFLIX", degraded, score(degraded), NOW + DAY_MS)

        assert refreshed.confidence == Decimal("0.8500")

    def test_unmatched_rescore_keeps_proposal(self, manager):
        events = series([30, 30, 30, 30])
        first = manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        noisy = series([10, 45, 3, 120, 7], prefix="n")
        refreshed = manager.upsert_from_score(USER_ID, "NETFLIX", noisy, score(noisy), NOW + DAY_MS)

        assert refreshed.proposed_cadence == first.proposed_cadence
        assert refreshed.proposed_next_occurrence == first.proposed_next_occurrence
        assert refreshed.confidence <= Decimal("0.25")
        assert refreshed.supporting_event_ids[0] == "n-0"

    def test_zero_amount_rescore_keeps_proposed_amount(self, manager):
        events = series([30, 30, 30, 30])
        first = manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        zeroed = series([30, 30, 30, 30], amount="0.00", prefix="z")
        refreshed = manager.upsert_from_score(USER_ID, "NETFLIX", zeroed, score(zeroed), NOW + DAY_MS)

        assert refreshed.proposed_amount == first.proposed_amount == Decimal("9.99")
        assert refreshed.supporting_event_ids[0] == "z-0"

    @pytest.mark.parametrize("status", [CandidateStatus.DISMISSED, CandidateStatus.ACCEPTED])
    def test_terminal_candidates_are_left_alone(self, manager, store, status):
        extra = {'resultingSubscriptionId': candidate_id_for("x", "y")} if status == CandidateStatus.ACCEPTED else {}
        existing = put_candidate(store, status=status, reviewedAt=T0, **extra)
        events = series([30, 30, 30, 30])

        candidate = manager.upsert_from_score(USER_ID, "NETFLIX", events, score(events), NOW)

        assert candidate.status == status
        assert candidate.supporting_event_ids == existing.supporting_event_ids
        assert candidate.updated_at == existing.updated_at


class TestQueries:
    def test_list_and_pending_count(self, manager, store):
        put_candidate(store, merchant_key="NETFLIX", createdAt=T0)
        put_candidate(store, merchant_key="SPOTIFY", createdAt=T0 + DAY_MS)
        put_candidate(store, merchant_key="HULU", status=CandidateStatus.DISMISSED, createdAt=T0 + 2 * DAY_MS)
        put_candidate(store, OTHER_USER_ID, merchant_key="NETFLIX")

        candidates = manager.list_candidates(USER_ID)

        assert [c.merchant_key for c in candidates] == ["HULU", "SPOTIFY", "NETFLIX"]
        assert [c.merchant_key for c in manager.list_candidates(USER_ID, CandidateStatus.PENDING)] == ["SPOTIFY", "NETFLIX"]
        assert manager.pending_count(USER_ID) == 2
