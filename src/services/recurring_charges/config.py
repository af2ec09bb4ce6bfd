"""
Configuration classes for recurring charge detection.

Centralizes the cadence bands, confidence weights and thresholds used by
the scorer, the candidate lifecycle and the price-change detector.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from models.detection_candidate import Cadence


@dataclass(frozen=True)
class CadenceBand:
    """Median-interval window for one cadence and its canonical length E."""
    cadence: Cadence
    min_days: float
    max_days: float
    canonical_days: int

    def contains(self, days: float) -> bool:
        return self.min_days <= days <= self.max_days


@dataclass
class CadenceBands:
    """
    Day-range bands for cadence classification.

    Each entry is (min_days, max_days, canonical_days). Daily is supported
    but disabled unless a range is supplied.
    """

    weekly: Tuple[float, float, int] = (6, 8, 7)
    """Weekly recurrence: median of 6 to 8 days, canonical 7."""

    monthly: Tuple[float, float, int] = (28, 33, 30)
    """Monthly recurrence: median of 28 to 33 days, canonical 30."""

    yearly: Tuple[float, float, int] = (350, 380, 365)
    """Yearly recurrence: median of 350 to 380 days, canonical 365."""

    daily: Optional[Tuple[float, float, int]] = None
    """Daily recurrence, e.g. (0.5, 1.5, 1). Off by default."""

    def to_list(self) -> List[CadenceBand]:
        """Bands in ascending interval order."""
        bands = []
        if self.daily is not None:
            bands.append(CadenceBand(Cadence.DAILY, *self.daily))
        bands.append(CadenceBand(Cadence.WEEKLY, *self.weekly))
        bands.append(CadenceBand(Cadence.MONTHLY, *self.monthly))
        bands.append(CadenceBand(Cadence.YEARLY, *self.yearly))
        return bands


@dataclass
class ConfidenceWeights:
    """
    Weights for the confidence blend.

    periodicity and amount_stability deliberately sum to 0.9, leaving
    headroom for the known-merchant bonus. The result is capped at 1.0.
    """

    periodicity: float = 0.6
    """Weight for how closely intervals track the canonical length."""

    amount_stability: float = 0.3
    """Weight for how steady the charged amount is."""

    known_merchant_bonus: float = 0.1
    """Flat bonus when the merchant is a known subscription biller."""

    def __post_init__(self):
        for name in ('periodicity', 'amount_stability', 'known_merchant_bonus'):
            if getattr(self, name) < 0:
                raise ValueError(f"Confidence weight {name} must be non-negative")
        if self.periodicity + self.amount_stability > 1.0 + 1e-9:
            raise ValueError(
                f"periodicity + amount_stability must not exceed 1.0, got "
                f"{self.periodicity + self.amount_stability}"
            )


@dataclass
class PriceChangeThresholds:
    """An observed charge is a price change at either threshold."""

    percent: Decimal = Decimal("8")
    absolute: Decimal = Decimal("2.00")


@dataclass
class DetectionConfig:
    """
    Complete configuration for detection and candidate maintenance.

    Usage:
        config = DetectionConfig(min_confidence=0.6)
        scorer = PeriodicityScorer(config)
    """

    bands: CadenceBands = field(default_factory=CadenceBands)
    weights: ConfidenceWeights = field(default_factory=ConfidenceWeights)
    price_change: PriceChangeThresholds = field(default_factory=PriceChangeThresholds)

    min_events: int = 2
    """Events needed before a merchant is scored (one interval)."""

    min_confidence: float = 0.5
    """Candidates below this confidence are not surfaced."""

    unmatched_confidence_ceiling: float = 0.25
    """Confidence cap when the median interval fits no cadence band."""

    material_confidence_delta: float = 0.01
    """Smallest confidence move that counts as a changed proposal."""


DEFAULT_CONFIG = DetectionConfig()
