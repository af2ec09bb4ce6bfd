"""
Renewal and price-change tracking.

Public API:
    - RenewalSweep: scheduled flagging of overdue subscriptions
    - ConfirmRenewal: apply a renewed/cancelled answer
    - needs_confirmation, savings_summary, normalized_savings
    - get_price_history, detect_observed_price_change
"""

from services.renewals.config import RenewalConfig, DEFAULT_RENEWAL_CONFIG
from services.renewals.renewal_service import (
    CANCELLED,
    RENEWED,
    ConfirmRenewal,
    RenewalOutcome,
    RenewalSweep,
    needs_confirmation,
    normalized_savings,
    savings_summary,
)
from services.renewals.price_history import (
    PriceHistory,
    compute_stats,
    detect_observed_price_change,
    get_price_history,
    is_material_change,
)

__all__ = [
    'RenewalConfig',
    'DEFAULT_RENEWAL_CONFIG',
    'CANCELLED',
    'RENEWED',
    'ConfirmRenewal',
    'RenewalOutcome',
    'RenewalSweep',
    'needs_confirmation',
    'normalized_savings',
    'savings_summary',
    'PriceHistory',
    'compute_stats',
    'detect_observed_price_change',
    'get_price_history',
    'is_material_change',
]
