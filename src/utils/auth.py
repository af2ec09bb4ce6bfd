"""
Authentication utility functions.
"""
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


def get_user_from_event(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Extract user information from the API Gateway JWT authorizer claims.

    Returns:
        Dictionary with id (the sub claim), email and auth_time, or None
        when the request carries no authenticated user.
    """
    request_context = event.get("requestContext") or {}
    authorizer = request_context.get("authorizer") or {}
    claims = (authorizer.get("jwt") or {}).get("claims") or {}

    user_sub = claims.get("sub")
    if not user_sub:
        logger.warning("No sub claim found in authorizer claims")
        return None

    return {
        "id": user_sub,
        "email": claims.get("email", "unknown"),
        "auth_time": claims.get("auth_time")
    }
