"""
Candidate lifecycle manager.

Creates and refreshes pending DetectionCandidates from scorer output.
Candidates are keyed by (user, merchant) and every write is a single
atomic read-modify-write on that key. Accepted and dismissed candidates
are never touched by detection again.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from models.detection_candidate import (
    CandidateStatus,
    DetectionCandidate,
    candidate_id_for,
)
from models.money import CENTS
from models.raw_event import RawEvent
from services.ingestion.merchant_resolver import MerchantResolver
from services.recurring_charges.analyzers import median
from services.recurring_charges.config import DEFAULT_CONFIG, DetectionConfig
from services.recurring_charges.scorer import ScoreResult, build_detection_reason
from utils.db.helpers import add_days, current_timestamp
from utils.db.records import find_subscription_for_merchant, list_candidates
from utils.db.store import CANDIDATES, RecordStore, atomic_update_with_reload

logger = logging.getLogger(__name__)

SCORE_PLACES = Decimal("0.0001")


def _score(value: float) -> Decimal:
    return Decimal(str(value)).quantize(SCORE_PLACES, rounding=ROUND_HALF_UP)


class CandidateLifecycleManager:
    """
    Owns candidate creation and refresh.

    New candidates are only created for a matched cadence at or above
    min_confidence, and never for a merchant the user already tracks.
    Existing pending candidates are refreshed whenever the evidence or the
    score moves materially, including downward, so confidence always
    reflects the current supporting events.
    """

    def __init__(
        self,
        store: RecordStore,
        config: Optional[DetectionConfig] = None,
        resolver: Optional[MerchantResolver] = None,
    ):
        self.store = store
        self.config = config or DEFAULT_CONFIG
        self.resolver = resolver or MerchantResolver()

    def upsert_from_score(
        self,
        user_id: str,
        merchant_key: str,
        events: Sequence[RawEvent],
        result: ScoreResult,
        now: Optional[int] = None,
    ) -> Optional[DetectionCandidate]:
        """
        Create or refresh the candidate for (user, merchant).

        Returns the candidate as stored, or None when nothing qualifies.
        """
        now = now if now is not None else current_timestamp()
        candidate_id = candidate_id_for(user_id, merchant_key)
        ordered = sorted(events, key=lambda e: (e.occurred_at, e.raw_identifier))
        if not ordered:
            return None

        if self.store.get(CANDIDATES, str(candidate_id)) is None:
            if not result.matched or result.confidence < self.config.min_confidence:
                logger.debug(
                    f"Not promoting {merchant_key} for user {user_id}: "
                    f"cadence={result.cadence}, confidence={result.confidence:.2f}"
                )
                return None
            if find_subscription_for_merchant(self.store, user_id, merchant_key):
                logger.debug(f"User {user_id} already tracks {merchant_key}, no candidate created")
                return None
            if not self._has_chargeable_amount(ordered):
                logger.debug(f"Not promoting {merchant_key} for user {user_id}: proposed amount is not positive")
                return None

        def refresh(current):
            if current is None:
                if not result.matched or not self._has_chargeable_amount(ordered):
                    return None
                return self._new_candidate(candidate_id, user_id, merchant_key, ordered, result, now).to_dynamodb_item()

            candidate = DetectionCandidate.from_dynamodb_item(current)
            if candidate.is_terminal:
                return None
            updated = self._refreshed(candidate, ordered, result, now)
            if not self._materially_different(candidate, updated):
                return None
            return updated.to_dynamodb_item()

        stored = atomic_update_with_reload(self.store, CANDIDATES, str(candidate_id), refresh)
        if stored is None:
            return None

        candidate = DetectionCandidate.from_dynamodb_item(stored)
        logger.info(
            f"Candidate {candidate.candidate_id} for {merchant_key}: status={candidate.status.value}, "
            f"confidence={candidate.confidence}"
        )
        return candidate

    @staticmethod
    def _proposed_amount(ordered: Sequence[RawEvent]) -> Decimal:
        return Decimal(str(median([float(e.amount.amount) for e in ordered]))).quantize(CENTS, rounding=ROUND_HALF_UP)

    def _has_chargeable_amount(self, ordered: Sequence[RawEvent]) -> bool:
        return self._proposed_amount(ordered) > 0

    def _proposal(self, ordered: Sequence[RawEvent], result: ScoreResult):
        next_occurrence = add_days(ordered[-1].occurred_at, result.canonical_days) if result.canonical_days else None
        return self._proposed_amount(ordered), next_occurrence

    def _new_candidate(
        self,
        candidate_id,
        user_id: str,
        merchant_key: str,
        ordered: Sequence[RawEvent],
        result: ScoreResult,
        now: int,
    ) -> DetectionCandidate:
        amount, next_occurrence = self._proposal(ordered, result)
        return DetectionCandidate(
            candidateId=candidate_id,
            userId=user_id,
            merchantKey=merchant_key,
            proposedName=self.resolver.display_name(merchant_key),
            proposedAmount=amount,
            proposedCurrency=ordered[-1].amount.currency,
            proposedCadence=result.cadence,
            proposedNextOccurrence=next_occurrence,
            confidence=_score(result.confidence),
            periodicityScore=_score(result.periodicity_score),
            amountStabilityScore=_score(result.amount_stability_score),
            detectionReason=build_detection_reason(result),
            supportingEventIds=[e.raw_identifier for e in ordered],
            createdAt=now,
            updatedAt=now,
        )

    def _refreshed(
        self,
        candidate: DetectionCandidate,
        ordered: Sequence[RawEvent],
        result: ScoreResult,
        now: int,
    ) -> DetectionCandidate:
        changes = {
            'confidence': _score(result.confidence),
            'periodicity_score': _score(result.periodicity_score),
            'amount_stability_score': _score(result.amount_stability_score),
            'detection_reason': build_detection_reason(result),
            'supporting_event_ids': [e.raw_identifier for e in ordered],
            'updated_at': now,
        }
        # An unmatched rescore, or one with no positive amount, keeps the last
        # proposal but still moves confidence
        amount, next_occurrence = self._proposal(ordered, result)
        if result.matched and amount > 0:
            changes.update({
                'proposed_amount': amount,
                'proposed_currency': ordered[-1].amount.currency,
                'proposed_cadence': result.cadence,
                'proposed_next_occurrence': next_occurrence,
            })
        return candidate.model_copy(update=changes)

    def _materially_different(self, before: DetectionCandidate, after: DetectionCandidate) -> bool:
        if before.supporting_event_ids != after.supporting_event_ids:
            return True
        if abs(float(before.confidence - after.confidence)) >= self.config.material_confidence_delta:
            return True
        return (
            before.proposed_cadence != after.proposed_cadence
            or before.proposed_amount != after.proposed_amount
            or before.proposed_next_occurrence != after.proposed_next_occurrence
        )

    def list_candidates(self, user_id: str, status: Optional[CandidateStatus] = None) -> List[DetectionCandidate]:
        return list_candidates(self.store, user_id, status)

    def pending_count(self, user_id: str) -> int:
        return len(self.list_candidates(user_id, CandidateStatus.PENDING))
