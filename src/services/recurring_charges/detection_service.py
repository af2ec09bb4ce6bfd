"""
Recurring charge detection service.

Glue between stored RawEvents, the scorer and the candidate lifecycle:
loads one merchant's history for a user, scores it and hands the result to
CandidateLifecycleManager.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional

from models.detection_candidate import DetectionCandidate
from models.raw_event import EventSource, RawEvent
from services.candidates.lifecycle_service import CandidateLifecycleManager
from services.ingestion.merchant_resolver import MerchantResolver
from services.recurring_charges.config import DEFAULT_CONFIG, DetectionConfig
from services.recurring_charges.scorer import PeriodicityScorer, ScoreResult
from utils.db.helpers import current_timestamp
from utils.db.store import RAW_EVENTS, RecordStore

logger = logging.getLogger(__name__)


class RecurringChargeDetectionService:
    """
    Scores merchants and maintains their candidates.

    Emails and bank rows describe the same charges, so a merchant's history
    is scored from a single source (whichever has more events, bank rows on
    a tie) and a single currency (that of the latest event).
    """

    def __init__(
        self,
        store: RecordStore,
        config: Optional[DetectionConfig] = None,
        resolver: Optional[MerchantResolver] = None,
        lifecycle: Optional[CandidateLifecycleManager] = None,
    ):
        self.store = store
        self.config = config or DEFAULT_CONFIG
        self.resolver = resolver or MerchantResolver()
        self.scorer = PeriodicityScorer(self.config)
        self.lifecycle = lifecycle or CandidateLifecycleManager(store, self.config, self.resolver)

    def load_history(self, user_id: str, merchant_key: str) -> List[RawEvent]:
        items = self.store.query(RAW_EVENTS, userId=user_id, merchantKey=merchant_key)
        return [RawEvent.from_dynamodb_item(item) for item in items]

    def select_series(self, events: List[RawEvent]) -> List[RawEvent]:
        """Pick the single-source, single-currency series to score."""
        if not events:
            return []

        counts = Counter(e.source for e in events)
        source = EventSource.TRANSACTION
        if counts[EventSource.EMAIL] > counts[EventSource.TRANSACTION]:
            source = EventSource.EMAIL
        series = [e for e in events if e.source == source]

        latest = max(series, key=lambda e: (e.occurred_at, e.raw_identifier))
        currency = latest.amount.currency
        series = [e for e in series if e.amount.currency == currency]
        return sorted(series, key=lambda e: (e.occurred_at, e.raw_identifier))

    def score_series(self, merchant_key: str, series: List[RawEvent]) -> ScoreResult:
        history = [(e.occurred_at, e.amount.amount) for e in series]
        return self.scorer.score(history, known_merchant=self.resolver.is_known(merchant_key))

    def detect_for_merchant(
        self,
        user_id: str,
        merchant_key: str,
        now: Optional[int] = None,
    ) -> Optional[DetectionCandidate]:
        """Rescore one merchant and create or refresh its candidate."""
        series = self.select_series(self.load_history(user_id, merchant_key))
        if len(series) < self.config.min_events:
            logger.debug(f"{merchant_key} has {len(series)} events for user {user_id}, not enough to score")
            return None

        result = self.score_series(merchant_key, series)
        logger.info(
            f"Scored {merchant_key} for user {user_id}: cadence={result.cadence.value if result.cadence else None}, "
            f"periodicity={result.periodicity_score:.2f}, stability={result.amount_stability_score:.2f}, "
            f"confidence={result.confidence:.2f}"
        )
        return self.lifecycle.upsert_from_score(user_id, merchant_key, series, result, now or current_timestamp())

    def detect_for_merchants(
        self,
        user_id: str,
        merchant_keys: Iterable[str],
        now: Optional[int] = None,
    ) -> Dict[str, DetectionCandidate]:
        """Rescore several merchants; returns the candidates that exist afterwards."""
        candidates = {}
        merchant_keys = sorted(set(merchant_keys))
        for merchant_key in merchant_keys:
            candidate = self.detect_for_merchant(user_id, merchant_key, now)
            if candidate is not None:
                candidates[merchant_key] = candidate
        logger.info(f"Detection for user {user_id}: {len(candidates)} candidates from {len(merchant_keys)} merchants")
        return candidates
