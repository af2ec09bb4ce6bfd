"""
Models package for recurring charge detection and subscription tracking.
"""

from .money import Money, Currency

from .raw_event import (
    RawEvent,
    EventSource,
    DuplicateChargeAlert,
    raw_event_key,
)

from .detection_candidate import (
    DetectionCandidate,
    CandidateOverrides,
    CandidateStatus,
    Cadence,
    candidate_id_for,
    subscription_id_for,
)

from .subscription import (
    Subscription,
    RenewalStatus,
    PriceChangeEntry,
    PriceHistoryStats,
    CancellationSavings,
    SavingsSummary,
    RenewalConfirmation,
)

from .audit_log import AuditLogEntry

__all__ = [
    'Money',
    'Currency',
    'RawEvent',
    'EventSource',
    'DuplicateChargeAlert',
    'raw_event_key',
    'DetectionCandidate',
    'CandidateOverrides',
    'CandidateStatus',
    'Cadence',
    'candidate_id_for',
    'subscription_id_for',
    'Subscription',
    'RenewalStatus',
    'PriceChangeEntry',
    'PriceHistoryStats',
    'CancellationSavings',
    'SavingsSummary',
    'RenewalConfirmation',
    'AuditLogEntry',
]
