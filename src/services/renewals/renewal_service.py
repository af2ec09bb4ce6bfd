"""
Renewal tracking for accepted subscriptions.

RenewalSweep runs on a schedule and flags overdue subscriptions for
confirmation; ConfirmRenewal applies the user's answer. Both change a
subscription through one atomic read-modify-write on its key.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Union

from models.money import CENTS
from models.subscription import (
    CancellationSavings,
    PriceChangeEntry,
    RenewalStatus,
    SavingsSummary,
    Subscription,
)
from services.errors import InvalidTransition
from services.renewals.config import DEFAULT_RENEWAL_CONFIG, RenewalConfig
from utils.db.base import ConflictError
from utils.db.helpers import MS_PER_DAY, add_days, current_timestamp
from utils.db.records import checked_mandatory_subscription, list_subscriptions
from utils.db.store import PRICE_HISTORY, SUBSCRIPTIONS, RecordStore, atomic_update_with_reload

logger = logging.getLogger(__name__)

RENEWED = "renewed"
CANCELLED = "cancelled"
RENEWAL_ACTIONS = (RENEWED, CANCELLED)


def normalized_savings(subscription: Subscription, config: Optional[RenewalConfig] = None) -> CancellationSavings:
    """Monthly and yearly equivalents of a subscription's cost."""
    config = config or DEFAULT_RENEWAL_CONFIG
    monthly = subscription.cost * config.monthly_multipliers[subscription.cadence]
    return CancellationSavings(
        subscriptionId=subscription.subscription_id,
        name=subscription.name,
        currency=subscription.currency,
        monthlySavings=monthly.quantize(CENTS, rounding=ROUND_HALF_UP),
        yearlySavings=(monthly * 12).quantize(CENTS, rounding=ROUND_HALF_UP),
    )


def savings_summary(
    store: RecordStore,
    user_id: str,
    since: Optional[int] = None,
    config: Optional[RenewalConfig] = None,
) -> SavingsSummary:
    """Sum normalized savings over subscriptions cancelled at or after since, per currency."""
    cancelled = [
        s for s in list_subscriptions(store, user_id)
        if s.cancelled_at is not None and (since is None or s.cancelled_at >= since)
    ]

    monthly: Dict[str, Decimal] = {}
    yearly: Dict[str, Decimal] = {}
    for subscription in cancelled:
        savings = normalized_savings(subscription, config)
        currency = savings.currency.value
        monthly[currency] = monthly.get(currency, Decimal("0")) + savings.monthly_savings
        yearly[currency] = yearly.get(currency, Decimal("0")) + savings.yearly_savings

    logger.info(f"User {user_id} has {len(cancelled)} cancelled subscriptions since {since}")
    return SavingsSummary(
        cancelledCount=len(cancelled),
        monthlySavings=monthly,
        yearlySavings=yearly,
        since=since,
    )


def _is_overdue(subscription: Subscription, now: int) -> bool:
    return subscription.is_active and subscription.next_occurrence < now


def needs_confirmation(store: RecordStore, user_id: str, now: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Overdue active subscriptions awaiting the user's answer, most overdue first.

    Includes overdue subscriptions the sweep has not reached yet.
    """
    now = now if now is not None else current_timestamp()
    waiting = (RenewalStatus.UNSET, RenewalStatus.PENDING_CONFIRMATION)
    overdue = [
        s for s in list_subscriptions(store, user_id)
        if _is_overdue(s, now) and s.renewal_status in waiting
    ]
    overdue.sort(key=lambda s: (s.next_occurrence, str(s.subscription_id)))
    return [
        {
            **s.to_dynamodb_item(),
            'daysPastDue': max(0, (now - s.next_occurrence) // MS_PER_DAY),
        }
        for s in overdue
    ]


class RenewalSweep:
    """Moves overdue subscriptions into pending_confirmation."""

    def __init__(self, store: RecordStore, config: Optional[RenewalConfig] = None):
        self.store = store
        self.config = config or DEFAULT_RENEWAL_CONFIG

    def _eligible(self, subscription: Subscription, now: int) -> bool:
        return _is_overdue(subscription, now) and subscription.renewal_status in self.config.sweep_statuses

    def run(self, now: Optional[int] = None) -> List[str]:
        """Flag every eligible subscription. Returns the flagged ids."""
        now = now if now is not None else current_timestamp()
        flagged = []

        for subscription in list_subscriptions(self.store, isActive=True):
            if not self._eligible(subscription, now):
                continue

            def flag(current):
                if current is None:
                    return None
                latest = Subscription.from_dynamodb_item(current)
                if not self._eligible(latest, now):
                    return None
                return latest.model_copy(update={
                    'renewal_status': RenewalStatus.PENDING_CONFIRMATION,
                    'updated_at': now,
                }).to_dynamodb_item()

            key = str(subscription.subscription_id)
            try:
                stored = atomic_update_with_reload(self.store, SUBSCRIPTIONS, key, flag)
            except ConflictError as e:
                logger.warning(f"Skipping subscription {key} after repeated write conflicts: {str(e)}")
                continue

            if stored and stored.get('renewalStatus') == RenewalStatus.PENDING_CONFIRMATION.value:
                flagged.append(key)

        logger.info(f"Renewal sweep marked {len(flagged)} subscriptions for confirmation")
        return flagged


@dataclass
class RenewalOutcome:
    subscription: Subscription
    price_change: Optional[PriceChangeEntry] = None
    savings: Optional[CancellationSavings] = None


class ConfirmRenewal:
    """
    Apply the user's renewed/cancelled answer to a subscription.

    renewed advances nextOccurrence by one cadence unit and optionally
    applies a new cost, appending a PriceChangeEntry first when it differs.
    A renewed subscription whose next occurrence is still ahead is left as
    is, so a repeated request does not advance it twice.

    cancelled deactivates the subscription and reports its normalized
    savings. Cancelling twice is a no-op; renewing a cancelled subscription
    raises InvalidTransition.
    """

    def __init__(
        self,
        store: RecordStore,
        subscription_id: Union[str, uuid.UUID],
        user_id: str,
        action: str,
        new_cost: Optional[Decimal] = None,
        now: Optional[int] = None,
        config: Optional[RenewalConfig] = None,
    ):
        if action not in RENEWAL_ACTIONS:
            raise ValueError(f"Invalid renewal action: {action}. Must be one of {', '.join(RENEWAL_ACTIONS)}")
        if new_cost is not None and Decimal(new_cost) <= 0:
            raise ValueError("newCost must be positive")

        self.store = store
        self.subscription_id = str(subscription_id)
        self.user_id = user_id
        self.action = action
        self.new_cost = Decimal(new_cost) if new_cost is not None else None
        self.now = now
        self.config = config or DEFAULT_RENEWAL_CONFIG

    def execute(self) -> RenewalOutcome:
        self.now = self.now if self.now is not None else current_timestamp()
        subscription = checked_mandatory_subscription(self.store, self.subscription_id, self.user_id)
        if self.action == RENEWED:
            return self._renew(subscription)
        return self._cancel()

    def _already_renewed(self, subscription: Subscription) -> bool:
        return (
            subscription.renewal_status == RenewalStatus.CONFIRMED_RENEWED
            and subscription.next_occurrence > self.now
        )

    def _check_renewable(self, subscription: Subscription) -> None:
        if not subscription.is_active or subscription.renewal_status == RenewalStatus.CONFIRMED_CANCELLED:
            raise InvalidTransition(f"Subscription {subscription.subscription_id} is cancelled and cannot be renewed")

    def _renew(self, snapshot: Subscription) -> RenewalOutcome:
        self._check_renewable(snapshot)
        if self._already_renewed(snapshot):
            logger.info(f"Subscription {self.subscription_id} already renewed until {snapshot.next_occurrence}")
            return RenewalOutcome(subscription=snapshot)

        price_change = None
        if self.new_cost is not None and self.new_cost != snapshot.cost:
            price_change = PriceChangeEntry.for_transition(snapshot, self.new_cost, self.now)
            self.store.put(PRICE_HISTORY, price_change.entry_id, price_change.to_dynamodb_item(), if_absent=True)

        def renew(current):
            if current is None:
                return None
            latest = Subscription.from_dynamodb_item(current)
            self._check_renewable(latest)
            if self._already_renewed(latest):
                return None
            # The recorded price change describes the snapshot it was built from
            if latest.cost != snapshot.cost or latest.next_occurrence != snapshot.next_occurrence:
                raise ConflictError(f"Subscription {self.subscription_id} changed while renewing")

            days = self.config.advance_days[latest.cadence]
            return latest.model_copy(update={
                'next_occurrence': add_days(latest.next_occurrence, days),
                'cost': self.new_cost if self.new_cost is not None else latest.cost,
                'renewal_status': RenewalStatus.CONFIRMED_RENEWED,
                'updated_at': self.now,
            }).to_dynamodb_item()

        stored = atomic_update_with_reload(self.store, SUBSCRIPTIONS, self.subscription_id, renew)
        subscription = Subscription.from_dynamodb_item(stored)
        logger.info(
            f"Subscription {self.subscription_id} renewed, next occurrence {subscription.next_occurrence}, "
            f"cost {subscription.cost} {subscription.currency.value}"
        )
        return RenewalOutcome(subscription=subscription, price_change=price_change)

    def _cancel(self) -> RenewalOutcome:
        def cancel(current):
            if current is None:
                return None
            latest = Subscription.from_dynamodb_item(current)
            if latest.renewal_status == RenewalStatus.CONFIRMED_CANCELLED:
                return None
            return latest.model_copy(update={
                'is_active': False,
                'renewal_status': RenewalStatus.CONFIRMED_CANCELLED,
                'cancelled_at': self.now,
                'updated_at': self.now,
            }).to_dynamodb_item()

        stored = atomic_update_with_reload(self.store, SUBSCRIPTIONS, self.subscription_id, cancel)
        subscription = Subscription.from_dynamodb_item(stored)
        savings = normalized_savings(subscription, self.config)
        logger.info(
            f"Subscription {self.subscription_id} cancelled, saving {savings.monthly_savings}/month "
            f"({savings.yearly_savings}/year) {savings.currency.value}"
        )
        return RenewalOutcome(subscription=subscription, savings=savings)
