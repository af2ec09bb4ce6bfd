"""
Pattern analyzers for recurring charge detection.

This package provides the statistical building blocks of the scorer:
cadence classification, periodicity scoring and confidence blending.
"""

from services.recurring_charges.analyzers.frequency import FrequencyAnalyzer
from services.recurring_charges.analyzers.confidence import ConfidenceScoreCalculator
from services.recurring_charges.analyzers.statistics import median, population_stdev, intervals_in_days

__all__ = [
    'FrequencyAnalyzer',
    'ConfidenceScoreCalculator',
    'median',
    'population_stdev',
    'intervals_in_days',
]
