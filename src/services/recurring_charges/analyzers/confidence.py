"""
Confidence score calculator for recurring charge detection.

Scores amount stability and blends it with periodicity into a single
0-1 confidence value.
"""

import logging
from typing import Optional, Sequence

from services.recurring_charges.analyzers.statistics import median, population_stdev
from services.recurring_charges.config import ConfidenceWeights

logger = logging.getLogger(__name__)


class ConfidenceScoreCalculator:
    """
    Blends the scorer's component scores.

    confidence = periodicity * 0.6 + amount_stability * 0.3 (+ 0.1 for a
    known biller), capped at 1.0. Weights come from ConfidenceWeights.
    """

    def __init__(self, weights: Optional[ConfidenceWeights] = None):
        """
        Initialize the confidence score calculator.

        Args:
            weights: Optional custom weights. If None, uses 0.6 / 0.3 / +0.1
        """
        self.weights = weights or ConfidenceWeights()

    @staticmethod
    def amount_stability(amounts: Sequence[float]) -> float:
        """
        max(0, 1 - population_stdev / median) over the observed amounts.

        A single amount, or identical amounts, score 1.0.
        """
        if len(amounts) == 0:
            return 0.0
        deviation = population_stdev(amounts)
        if deviation == 0.0:
            return 1.0
        center = median(amounts)
        if center <= 0:
            return 0.0
        return max(0.0, 1.0 - deviation / center)

    def blend(self, periodicity: float, amount_stability: float, known_merchant: bool = False) -> float:
        score = periodicity * self.weights.periodicity + amount_stability * self.weights.amount_stability
        if known_merchant:
            score += self.weights.known_merchant_bonus
        return min(1.0, max(0.0, score))
