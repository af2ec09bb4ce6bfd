"""
Price history for subscriptions.

Entries are append-only. A cost change is always recorded before the
subscription's cost is overwritten, whether it came from a confirmed
renewal or from a newly observed charge.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Union

from models.raw_event import RawEvent
from models.subscription import PriceChangeEntry, PriceHistoryStats, Subscription
from services.recurring_charges.config import DEFAULT_CONFIG, DetectionConfig
from utils.db.base import ConflictError
from utils.db.helpers import current_timestamp
from utils.db.records import checked_mandatory_subscription, find_subscription_for_merchant
from utils.db.store import PRICE_HISTORY, SUBSCRIPTIONS, RecordStore, atomic_update_with_reload

logger = logging.getLogger(__name__)

PERCENT_PLACES = Decimal("0.01")


@dataclass
class PriceHistory:
    subscription: Subscription
    entries: List[PriceChangeEntry]
    stats: PriceHistoryStats


def compute_stats(subscription: Subscription, entries: List[PriceChangeEntry]) -> PriceHistoryStats:
    """Stats over entries sorted oldest first."""
    current = subscription.cost
    starting = entries[0].old_price if entries else current
    percent = Decimal("0")
    if starting:
        percent = ((current - starting) / starting * 100).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)
    return PriceHistoryStats(
        currentPrice=current,
        startingPrice=starting,
        percentChange=percent,
        changeCount=len(entries),
        lastChangeAt=entries[-1].detected_at if entries else None,
    )


def get_price_history(
    store: RecordStore,
    subscription_id: Union[str, uuid.UUID],
    user_id: str,
) -> PriceHistory:
    """
    Price history for a subscription the user owns.

    Raises:
        UnknownSubscription: If subscription doesn't exist
        Unauthorized: If user doesn't own the subscription
    """
    subscription = checked_mandatory_subscription(store, subscription_id, user_id)
    entries = [
        PriceChangeEntry.from_dynamodb_item(item)
        for item in store.query(PRICE_HISTORY, userId=user_id, subscriptionId=str(subscription.subscription_id))
    ]
    entries.sort(key=lambda e: (e.detected_at, e.entry_id))
    return PriceHistory(subscription=subscription, entries=entries, stats=compute_stats(subscription, entries))


def is_material_change(old: Decimal, new: Decimal, config: Optional[DetectionConfig] = None) -> bool:
    thresholds = (config or DEFAULT_CONFIG).price_change
    delta = abs(new - old)
    if delta >= thresholds.absolute:
        return True
    return old > 0 and delta / old * 100 >= thresholds.percent


def detect_observed_price_change(
    store: RecordStore,
    event: RawEvent,
    config: Optional[DetectionConfig] = None,
    now: Optional[int] = None,
) -> Optional[PriceChangeEntry]:
    """
    Compare a newly ingested charge with the merchant's tracked subscription.

    When the charged amount differs materially from the subscription cost,
    appends a PriceChangeEntry and moves the cost to the observed amount.
    Charges older than the subscription and charges in another currency
    are ignored.
    """
    now = now if now is not None else current_timestamp()
    subscription = find_subscription_for_merchant(store, event.user_id, event.merchant_key)
    if subscription is None:
        return None

    observed = event.amount.quantized()
    if observed.currency != subscription.currency or observed.amount <= 0:
        return None
    if event.occurred_at < subscription.created_at:
        return None
    if not is_material_change(subscription.cost, observed.amount, config):
        return None

    entry = PriceChangeEntry.for_transition(subscription, observed.amount, now, raw_event_id=event.raw_identifier)
    store.put(PRICE_HISTORY, entry.entry_id, entry.to_dynamodb_item(), if_absent=True)

    def apply(current):
        if current is None:
            return None
        latest = Subscription.from_dynamodb_item(current)
        if latest.cost == observed.amount:
            return None
        if latest.cost != subscription.cost:
            raise ConflictError(f"Subscription {subscription.subscription_id} cost changed concurrently")
        return latest.model_copy(update={'cost': observed.amount, 'updated_at': now}).to_dynamodb_item()

    atomic_update_with_reload(store, SUBSCRIPTIONS, str(subscription.subscription_id), apply)
    logger.info(
        f"Observed price change for {subscription.name}: {subscription.cost} -> {observed} "
        f"({entry.percent_change}%)"
    )
    return entry
