"""
Periodicity and confidence scorer.

Given one merchant's history of (occurred_at, amount) pairs, classifies the
cadence and produces periodicity, amount-stability and confidence scores.
Stateless; safe to run concurrently per merchant.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from models.detection_candidate import Cadence
from services.recurring_charges.analyzers import (
    ConfidenceScoreCalculator,
    FrequencyAnalyzer,
    intervals_in_days,
    median,
)
from services.recurring_charges.config import DEFAULT_CONFIG, DetectionConfig

logger = logging.getLogger(__name__)

History = Sequence[Tuple[int, Decimal]]


@dataclass(frozen=True)
class ScoreResult:
    cadence: Optional[Cadence]
    canonical_days: Optional[int]
    median_interval: float
    periodicity_score: float
    amount_stability_score: float
    confidence: float
    event_count: int
    known_merchant: bool = False

    @property
    def matched(self) -> bool:
        """Whether a cadence band matched; unmatched results are never promoted."""
        return self.cadence is not None


class PeriodicityScorer:
    """
    Scores a merchant's charge history.

    Steps:
    1. intervals between sorted dates, and their median
    2. cadence band for the median (weekly / monthly / yearly)
    3. periodicity against the band's canonical length
    4. amount stability from population stdev over median amount
    5. weighted blend, capped low when no band matched
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.frequency_analyzer = FrequencyAnalyzer(self.config.bands.to_list())
        self.confidence_calculator = ConfidenceScoreCalculator(self.config.weights)

    def score(self, history: History, known_merchant: bool = False) -> ScoreResult:
        ordered = sorted(history, key=lambda pair: pair[0])
        intervals = intervals_in_days([occurred_at for occurred_at, _ in ordered])
        amounts = [float(amount) for _, amount in ordered]

        median_interval = median(intervals)
        band = self.frequency_analyzer.classify_intervals(intervals)
        amount_stability = self.confidence_calculator.amount_stability(amounts)

        if band is None:
            periodicity = 0.0
            confidence = min(
                self.config.unmatched_confidence_ceiling,
                self.confidence_calculator.blend(periodicity, amount_stability, known_merchant),
            )
            logger.debug(
                f"No cadence band for median interval {median_interval:.1f} days "
                f"({len(ordered)} events), confidence capped at {confidence:.2f}"
            )
        else:
            periodicity = self.frequency_analyzer.periodicity_score(intervals, band.canonical_days)
            confidence = self.confidence_calculator.blend(periodicity, amount_stability, known_merchant)

        return ScoreResult(
            cadence=band.cadence if band else None,
            canonical_days=band.canonical_days if band else None,
            median_interval=median_interval,
            periodicity_score=periodicity,
            amount_stability_score=amount_stability,
            confidence=confidence,
            event_count=len(ordered),
            known_merchant=known_merchant,
        )


def build_detection_reason(result: ScoreResult) -> str:
    """Human-readable summary of why a candidate was proposed."""
    cadence = result.cadence.value if result.cadence else "irregular"
    parts = [f"{result.event_count} {cadence} charges detected"]

    if result.periodicity_score >= 0.9:
        parts.append("highly consistent timing")
    elif result.periodicity_score >= 0.7:
        parts.append("consistent timing")

    if result.amount_stability_score >= 0.99:
        parts.append("identical amounts")
    elif result.amount_stability_score >= 0.8:
        parts.append("similar amounts")

    if result.known_merchant:
        parts.append("known subscription service")

    return ", ".join(parts)
