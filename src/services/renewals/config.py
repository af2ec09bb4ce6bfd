"""Configuration for the renewal sweep, renewal confirmation and savings figures."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Tuple

from models.detection_candidate import Cadence
from models.subscription import RenewalStatus


def _default_advance_days() -> Dict[Cadence, int]:
    return {
        Cadence.DAILY: 1,
        Cadence.WEEKLY: 7,
        Cadence.MONTHLY: 30,
        Cadence.YEARLY: 365,
    }


def _default_monthly_multipliers() -> Dict[Cadence, Decimal]:
    return {
        Cadence.DAILY: Decimal("30"),
        Cadence.WEEKLY: Decimal("4.33"),
        Cadence.MONTHLY: Decimal("1"),
        Cadence.YEARLY: Decimal("1") / Decimal("12"),
    }


@dataclass
class RenewalConfig:
    """
    Renewal tracking settings.

    advance_days is calendar-naive: a monthly renewal always moves the next
    occurrence forward by exactly 30 days.
    """

    advance_days: Dict[Cadence, int] = field(default_factory=_default_advance_days)
    """Days added to nextOccurrence when a renewal is confirmed."""

    monthly_multipliers: Dict[Cadence, Decimal] = field(default_factory=_default_monthly_multipliers)
    """Cost multiplier giving the monthly-equivalent charge per cadence."""

    sweep_statuses: Tuple[RenewalStatus, ...] = (RenewalStatus.UNSET,)
    """Renewal statuses the sweep may move to pending_confirmation."""


DEFAULT_RENEWAL_CONFIG = RenewalConfig()
