"""
Decorators shared by the API Gateway handlers.

A handler function only performs its operation: authentication, request
logging and turning exceptions into HTTP responses happen here.
"""

import logging
import time
import traceback
from functools import wraps
from typing import Dict, Any, Callable, Tuple, Type

from pydantic import ValidationError

from services.errors import InvalidTransition
from utils.auth import get_user_from_event
from utils.db.base import ConflictError, NotAuthorized, NotFound
from utils.lambda_utils import create_response

logger = logging.getLogger(__name__)

# First match wins; anything unlisted is a 500
ERROR_STATUS: Tuple[Tuple[Tuple[Type[Exception], ...], int, int], ...] = (
    ((InvalidTransition,), 409, logging.WARNING),
    ((ValidationError, ValueError, KeyError), 400, logging.ERROR),
    ((NotFound,), 404, logging.WARNING),
    ((NotAuthorized,), 403, logging.WARNING),
    ((ConflictError,), 409, logging.WARNING),
)


def status_for(error: Exception) -> Tuple[int, int]:
    """HTTP status and log level for an exception raised by a handler."""
    for error_types, status_code, level in ERROR_STATUS:
        if isinstance(error, error_types):
            return status_code, level
    return 500, logging.ERROR


def standard_error_handling(func: Callable) -> Callable:
    """
    Wrap a handler's result in a response and map its exceptions.

    InvalidTransition and ConflictError give 409, ValidationError, ValueError
    and KeyError 400, NotFound 404 and NotAuthorized 403. Anything else is
    logged with its stack trace and answered with a generic 500 that names
    only the operation.

    A result that already carries a statusCode is returned untouched.
    """
    operation = func.__name__.replace('_handler', '')

    @wraps(func)
    def wrapper(*args, **kwargs) -> Dict[str, Any]:
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            status_code, level = status_for(e)
            logger.log(level, f"{type(e).__name__} in {func.__name__}: {str(e)}")
            if status_code == 500:
                logger.error(f"Stacktrace: {traceback.format_exc()}")
                return create_response(500, {"message": f"Error in {operation}"})
            return create_response(status_code, {"message": str(e)})

        if isinstance(result, dict) and "statusCode" in result:
            return result
        return create_response(200, result)

    return wrapper


def log_request_response(func: Callable) -> Callable:
    """Log one line when a request starts and one when it finishes or fails."""
    @wraps(func)
    def wrapper(event: Dict[str, Any], *args, **kwargs) -> Dict[str, Any]:
        request_context = event.get("requestContext") or {}
        label = (
            f"[{request_context.get('requestId', 'unknown')}] "
            f"{(request_context.get('http') or {}).get('method', 'unknown')} "
            f"{event.get('routeKey', 'unknown')}"
        )
        started = time.perf_counter()
        logger.info(f"{label} - Request started")

        try:
            result = func(event, *args, **kwargs)
        except Exception as e:
            logger.error(f"{label} - Error after {(time.perf_counter() - started) * 1000:.1f}ms: {str(e)}")
            raise

        status_code = result.get("statusCode", "unknown") if isinstance(result, dict) else "unknown"
        logger.info(f"{label} - Response {status_code} in {(time.perf_counter() - started) * 1000:.1f}ms")
        return result

    return wrapper


def require_authenticated_user(func: Callable) -> Callable:
    """
    Replace the Lambda context argument with the caller's user id.

    Requests without JWT claims are answered with 401 before the handler runs.
    """
    @wraps(func)
    def wrapper(event: Dict[str, Any], context: Any, *args, **kwargs) -> Dict[str, Any]:
        user = get_user_from_event(event)
        if not user:
            logger.warning("Authentication required but no user found in event")
            return create_response(401, {"message": "Unauthorized"})
        return func(event, user["id"], *args, **kwargs)

    return wrapper


def api_handler(
    require_auth: bool = True,
    log_requests: bool = True,
    handle_errors: bool = True
):
    """
    Apply the handler decorators in their fixed order.

    Example:
        @api_handler()
        def dismiss_candidate_handler(event, user_id):
            return {"message": "Candidate dismissed"}
    """
    def decorator(func: Callable) -> Callable:
        layers = (
            (handle_errors, standard_error_handling),
            (require_auth, require_authenticated_user),
            (log_requests, log_request_response),
        )
        for enabled, layer in layers:
            if enabled:
                func = layer(func)
        return func

    return decorator
