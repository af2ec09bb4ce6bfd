"""
Interval and amount statistics shared by the scorer.
"""

import logging
from typing import List, Sequence

import numpy as np

from utils.db.helpers import datetime_from_timestamp

logger = logging.getLogger(__name__)


def median(values: Sequence[float]) -> float:
    """Standard median (mean of the middle pair for even counts); 0.0 for no values."""
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def population_stdev(values: Sequence[float]) -> float:
    """Root-mean-square deviation from the mean (ddof=0); 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def intervals_in_days(timestamps: Sequence[int]) -> List[int]:
    """
    Whole days between consecutive UTC calendar dates, after sorting.

    The time of day is ignored: a charge late on the 1st and one early on
    the 29th are 28 days apart.
    """
    dates = sorted(datetime_from_timestamp(ts).date() for ts in timestamps)
    return [(later - earlier).days for earlier, later in zip(dates, dates[1:])]
