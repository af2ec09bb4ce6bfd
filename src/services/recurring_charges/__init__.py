"""
Recurring charge detection.

Public API:
    - PeriodicityScorer / ScoreResult: cadence, periodicity and confidence scoring
    - DetectionConfig: bands, weights and thresholds
    - detection_service.RecurringChargeDetectionService: score merchants and
      maintain candidates (imported from its module; it depends on
      services.candidates)
"""

from services.recurring_charges.config import (
    CadenceBand,
    CadenceBands,
    ConfidenceWeights,
    DetectionConfig,
    PriceChangeThresholds,
    DEFAULT_CONFIG,
)
from services.recurring_charges.scorer import PeriodicityScorer, ScoreResult, build_detection_reason

__all__ = [
    'CadenceBand',
    'CadenceBands',
    'ConfidenceWeights',
    'DetectionConfig',
    'PriceChangeThresholds',
    'DEFAULT_CONFIG',
    'PeriodicityScorer',
    'ScoreResult',
    'build_detection_reason',
]
