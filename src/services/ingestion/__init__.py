"""
Ingestion of raw payment records.

Public API:
    - IngestionPipeline: normalize, pre-filter, resolve and deduplicate a batch
    - SmartPreFilter / FilterConfig: rule-table pre-filter
    - MerchantResolver / normalize_merchant: merchant identity resolution
    - DeduplicationStore: idempotent storage and duplicate-charge detection
    - RecordNormalizer: provider record -> RawEvent
"""

from services.ingestion.merchant_resolver import (
    MerchantResolver,
    KnownMerchant,
    KNOWN_MERCHANTS,
    normalize_merchant,
)
from services.ingestion.pre_filter import (
    SmartPreFilter,
    FilterConfig,
    FilterDecision,
    ConfidenceTier,
)
from services.ingestion.normalizer import RecordNormalizer
from services.ingestion.deduplication import DeduplicationStore, IngestionOutcome, charge_fingerprint
from services.ingestion.pipeline import IngestionPipeline, IngestionReport

__all__ = [
    'MerchantResolver',
    'KnownMerchant',
    'KNOWN_MERCHANTS',
    'normalize_merchant',
    'SmartPreFilter',
    'FilterConfig',
    'FilterDecision',
    'ConfidenceTier',
    'RecordNormalizer',
    'DeduplicationStore',
    'IngestionOutcome',
    'charge_fingerprint',
    'IngestionPipeline',
    'IngestionReport',
]
