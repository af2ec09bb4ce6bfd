"""
Frequency analyzer for recurring charge detection.

Classifies the median interval into a cadence band and scores how closely
the observed intervals track that band's canonical length.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from services.recurring_charges.analyzers.statistics import median
from services.recurring_charges.config import CadenceBand

logger = logging.getLogger(__name__)


class FrequencyAnalyzer:
    """
    Matches intervals to cadence bands.

    The median is used instead of the mean so one skipped or doubled
    billing cycle does not move the classification.
    """

    def __init__(self, bands: List[CadenceBand]):
        """
        Initialize the frequency analyzer.

        Args:
            bands: Cadence bands in ascending interval order
        """
        self.bands = bands

    def classify(self, median_interval: float) -> Optional[CadenceBand]:
        """
        Band containing the median interval, or None if it fits none.
        """
        for band in self.bands:
            if band.contains(median_interval):
                return band
        return None

    def classify_intervals(self, intervals: Sequence[float]) -> Optional[CadenceBand]:
        if not intervals:
            return None
        return self.classify(median(intervals))

    @staticmethod
    def periodicity_score(intervals: Sequence[float], expected_days: float) -> float:
        """
        Mean over intervals of max(0, 1 - |interval - E| / E).

        A single interval counts as perfectly periodic; no intervals score 0.
        """
        if len(intervals) == 0 or expected_days <= 0:
            return 0.0
        if len(intervals) == 1:
            return 1.0

        observed = np.asarray(intervals, dtype=float)
        terms = np.maximum(0.0, 1.0 - np.abs(observed - expected_days) / expected_days)
        return float(np.mean(terms))
