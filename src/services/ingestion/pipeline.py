"""
Ingestion pipeline: normalize -> pre-filter -> resolve -> deduplicate.

Each record is processed independently and every write is keyed per
record, so batch order never changes the resulting state and a partially
processed batch can simply be re-delivered.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from models.raw_event import DuplicateChargeAlert, RawEvent
from services.errors import MalformedRecord
from services.ingestion.deduplication import DeduplicationStore, IngestionOutcome
from services.ingestion.merchant_resolver import MerchantResolver
from services.ingestion.normalizer import RecordNormalizer
from services.ingestion.pre_filter import ConfidenceTier, SmartPreFilter
from utils.db.records import checked_mandatory_user
from utils.db.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class RecordResult:
    raw_identifier: str
    outcome: IngestionOutcome
    reason: str = ""
    event: Optional[RawEvent] = None


@dataclass
class IngestionReport:
    user_id: str
    results: List[RecordResult] = field(default_factory=list)
    duplicate_alerts: List[DuplicateChargeAlert] = field(default_factory=list)
    filter_stats: Dict[str, int] = field(default_factory=lambda: {
        'total': 0,
        'kept': 0,
        'filtered': 0,
        'high_confidence': 0,
        'medium_confidence': 0,
    })

    def count(self, outcome: IngestionOutcome) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def stored_events(self) -> List[RawEvent]:
        return [r.event for r in self.results if r.outcome == IngestionOutcome.STORED and r.event]

    @property
    def affected_merchants(self) -> Set[str]:
        return {event.merchant_key for event in self.stored_events}

    def summary(self) -> Dict[str, Any]:
        return {
            'stored': self.count(IngestionOutcome.STORED),
            'skipped': self.count(IngestionOutcome.SKIPPED),
            'filtered': self.count(IngestionOutcome.FILTERED),
            'malformed': self.count(IngestionOutcome.MALFORMED),
            'duplicateCharges': len(self.duplicate_alerts),
            'filterStats': dict(self.filter_stats),
        }


class IngestionPipeline:
    """Runs a batch of provider records through the ingestion stages."""

    def __init__(
        self,
        store: RecordStore,
        pre_filter: Optional[SmartPreFilter] = None,
        resolver: Optional[MerchantResolver] = None,
    ):
        self.store = store
        self.resolver = resolver or MerchantResolver()
        self.normalizer = RecordNormalizer(self.resolver)
        self.pre_filter = pre_filter or SmartPreFilter()
        self.dedup = DeduplicationStore(store)

    def ingest_batch(self, user_id: str, records: Iterable[Dict[str, Any]]) -> IngestionReport:
        checked_mandatory_user(self.store, user_id)
        report = IngestionReport(user_id=user_id)

        for record in records:
            report.results.append(self._ingest_one(user_id, record, report))

        report.filter_stats['filtered'] = report.filter_stats['total'] - report.filter_stats['kept']
        logger.info(f"Ingested batch for user {user_id}: {report.summary()}")
        return report

    def _ingest_one(self, user_id: str, record: Dict[str, Any], report: IngestionReport) -> RecordResult:
        try:
            event = self.normalizer.normalize(user_id, record)
        except MalformedRecord as e:
            logger.warning(f"Dropping malformed record: {e}")
            return RecordResult(e.raw_identifier, IngestionOutcome.MALFORMED, str(e))

        decision = self.pre_filter.evaluate(event)
        report.filter_stats['total'] += 1
        if not decision.keep:
            return RecordResult(event.raw_identifier, IngestionOutcome.FILTERED, decision.reason)
        report.filter_stats['kept'] += 1
        if decision.confidence == ConfidenceTier.HIGH:
            report.filter_stats['high_confidence'] += 1
        elif decision.confidence == ConfidenceTier.MEDIUM:
            report.filter_stats['medium_confidence'] += 1

        outcome = self.dedup.record(event)
        if outcome == IngestionOutcome.SKIPPED:
            return RecordResult(event.raw_identifier, outcome, "already ingested")

        alert = self.dedup.flag_duplicate_charge(event)
        if alert is not None:
            report.duplicate_alerts.append(alert)
        return RecordResult(event.raw_identifier, outcome, decision.reason, event)
