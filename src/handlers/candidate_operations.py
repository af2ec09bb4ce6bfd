"""
Lambda handler for detection candidate operations.

Lists detected recurring charges awaiting review, records the user's
accept/dismiss decisions and lists duplicate-charge alerts.
"""

import logging
from typing import Any, Dict, Optional

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

from models.detection_candidate import CandidateOverrides, CandidateStatus
from services.candidates import AcceptCandidate, CandidateLifecycleManager, DismissCandidate
from services.ingestion import DeduplicationStore
from utils.db import DynamoDBStore, RecordStore
from utils.handler_decorators import api_handler
from utils.lambda_utils import (
    mandatory_path_parameter,
    optional_query_parameter,
    parse_and_validate_json,
)

_store: Optional[RecordStore] = None


def get_store() -> RecordStore:
    global _store
    if _store is None:
        _store = DynamoDBStore()
    return _store


@api_handler()
def list_candidates_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    List detection candidates, newest first.

    GET /candidates?status=pending

    Returns:
    {
        "candidates": [...],
        "metadata": {"totalCandidates": 3, "pendingCount": 2}
    }
    """
    status_param = optional_query_parameter(event, "status")
    status = None
    if status_param:
        try:
            status = CandidateStatus(status_param.lower())
        except ValueError:
            raise ValueError(
                f"Invalid status: {status_param}. Must be one of: "
                f"{', '.join(s.value for s in CandidateStatus)}"
            )

    manager = CandidateLifecycleManager(get_store())
    candidates = manager.list_candidates(user_id, status)
    pending_count = (
        len(candidates) if status == CandidateStatus.PENDING else manager.pending_count(user_id)
    )

    return {
        "candidates": [c.model_dump(by_alias=True, mode="json") for c in candidates],
        "metadata": {
            "totalCandidates": len(candidates),
            "pendingCount": pending_count,
        },
    }


@api_handler()
def accept_candidate_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Accept a candidate, creating its subscription.

    POST /candidates/{id}/accept

    Optional request body (overrides the proposed values):
    {
        "name": "Netflix Premium",
        "amount": "17.99",
        "cadence": "monthly",
        "nextOccurrence": 1735689600000
    }
    """
    candidate_id = mandatory_path_parameter(event, "id")
    overrides, error_response = parse_and_validate_json(event, CandidateOverrides)
    if error_response:
        return error_response

    result = AcceptCandidate(get_store(), candidate_id, user_id, overrides).execute()
    return {
        "message": "Subscription created" if result.created else "Candidate already accepted",
        "candidate": result.candidate.model_dump(by_alias=True, mode="json"),
        "subscription": result.subscription.model_dump(by_alias=True, mode="json"),
    }


@api_handler()
def dismiss_candidate_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Dismiss a candidate.

    POST /candidates/{id}/dismiss
    """
    candidate_id = mandatory_path_parameter(event, "id")
    candidate = DismissCandidate(get_store(), candidate_id, user_id).execute()
    return {
        "message": "Candidate dismissed",
        "candidate": candidate.model_dump(by_alias=True, mode="json"),
    }


@api_handler()
def list_duplicate_charges_handler(event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    List charges that look billed twice.

    GET /duplicate-charges
    """
    alerts = DeduplicationStore(get_store()).list_duplicate_charges(user_id)
    return {
        "duplicateCharges": [a.model_dump(by_alias=True, mode="json") for a in alerts],
        "metadata": {"totalAlerts": len(alerts)},
    }


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main handler for candidate operations.

    Routes requests to appropriate handler functions based on route.
    """
    route = event.get("routeKey")
    if not route:
        raise ValueError("Route not specified")

    route_map = {
        "GET /candidates": list_candidates_handler,
        "POST /candidates/{id}/accept": accept_candidate_handler,
        "POST /candidates/{id}/dismiss": dismiss_candidate_handler,
        "GET /duplicate-charges": list_duplicate_charges_handler,
    }

    handler_func = route_map.get(route)
    if not handler_func:
        raise ValueError(f"Unsupported route: {route}")

    return handler_func(event, context)
