"""
Lambda handler for subscription renewal operations.

Serves the needs-confirmation view, renewal/cancellation confirmations,
price history and the cancellation savings summary.
"""

import logging
from typing import Any, Dict, Optional

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

from models.subscription import RenewalConfirmation
from services.renewals import ConfirmRenewal, get_price_history, needs_confirmation, savings_summary
from utils.db import DynamoDBStore, RecordStore
from utils.handler_decorators import api_handler
from utils.lambda_utils import (
    mandatory_path_parameter,
    optional_int_query_parameter,
    parse_and_validate_json,
)

_store: Optional[RecordStore] = None


def get_store() -> RecordStore:
    global _store
    if _store is None:
        _store = DynamoDBStore()
    return _store


@api_handler()
def needs_confirmation_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Overdue subscriptions awaiting a renewed/cancelled answer.

    GET /subscriptions/needs-confirmation
    """
    subscriptions = needs_confirmation(get_store(), user_id)
    return {
        "subscriptions": subscriptions,
        "metadata": {"totalSubscriptions": len(subscriptions)},
    }


@api_handler()
def confirm_renewal_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Confirm a subscription renewed or was cancelled.

    POST /subscriptions/{id}/confirm-renewal

    Request body:
    {
        "action": "renewed" | "cancelled",
        "newCost": "17.99"
    }
    """
    subscription_id = mandatory_path_parameter(event, "id")
    request, error_response = parse_and_validate_json(event, RenewalConfirmation)
    if error_response:
        return error_response

    outcome = ConfirmRenewal(
        get_store(),
        subscription_id,
        user_id,
        action=request.action,
        new_cost=request.new_cost,
    ).execute()

    response: Dict[str, Any] = {
        "subscription": outcome.subscription.model_dump(by_alias=True, mode="json"),
    }
    if outcome.price_change is not None:
        response["priceChange"] = outcome.price_change.model_dump(by_alias=True, mode="json")
    if outcome.savings is not None:
        savings = outcome.savings
        response["savings"] = savings.model_dump(by_alias=True, mode="json")
        response["message"] = (
            f"You're saving {savings.monthly_savings} {savings.currency.value}/month "
            f"({savings.yearly_savings} {savings.currency.value}/year) by cancelling {savings.name}"
        )
    else:
        response["message"] = "Subscription renewed"
    return response


@api_handler()
def price_history_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Price history with derived stats.

    GET /subscriptions/{id}/price-history
    """
    subscription_id = mandatory_path_parameter(event, "id")
    history = get_price_history(get_store(), subscription_id, user_id)
    return {
        "subscriptionId": str(history.subscription.subscription_id),
        "history": [e.model_dump(by_alias=True, mode="json") for e in history.entries],
        "stats": history.stats.model_dump(by_alias=True, mode="json"),
    }


@api_handler()
def savings_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Savings from cancelled subscriptions.

    GET /subscriptions/savings?since=1735689600000
    """
    since = optional_int_query_parameter(event, "since")
    summary = savings_summary(get_store(), user_id, since)
    return summary.model_dump(by_alias=True, mode="json")


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main handler for subscription operations.

    Routes requests to appropriate handler functions based on route.
    """
    route = event.get("routeKey")
    if not route:
        raise ValueError("Route not specified")

    route_map = {
        "GET /subscriptions/needs-confirmation": needs_confirmation_handler,
        "POST /subscriptions/{id}/confirm-renewal": confirm_renewal_handler,
        "GET /subscriptions/{id}/price-history": price_history_handler,
        "GET /subscriptions/savings": savings_handler,
    }

    handler_func = route_map.get(route)
    if not handler_func:
        raise ValueError(f"Unsupported route: {route}")

    return handler_func(event, context)
