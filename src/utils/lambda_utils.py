"""
Request parsing and response building for the API Gateway handlers.
"""
from typing import Any, Dict, Optional, Tuple, Type, TypeVar
import json
from decimal import Decimal
from enum import Enum
import uuid

from pydantic import BaseModel, ValidationError

M = TypeVar('M', bound=BaseModel)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


class DecimalEncoder(json.JSONEncoder):
    """Money stays a string on the wire so no precision is lost."""
    def default(self, obj):
        if isinstance(obj, (Decimal, uuid.UUID)):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, BaseModel):
            return obj.model_dump(by_alias=True, mode='json')
        return super().default(obj)


def create_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **CORS_HEADERS},
        "body": json.dumps(body, cls=DecimalEncoder),
    }


def _parameters(event: Dict[str, Any], section: str) -> Dict[str, Any]:
    # API Gateway sends null rather than {} when a request has none
    return event.get(section) or {}


def mandatory_path_parameter(event: Dict[str, Any], name: str) -> str:
    """
    Raises:
        ValueError: If the path parameter is absent or empty
    """
    value = _parameters(event, 'pathParameters').get(name)
    if not value:
        raise ValueError(f"Path parameter {name} not found")
    return value


def optional_query_parameter(event: Dict[str, Any], name: str) -> Optional[str]:
    return _parameters(event, 'queryStringParameters').get(name)


def optional_int_query_parameter(event: Dict[str, Any], name: str) -> Optional[int]:
    """Integer query parameter; ValueError when present but not an integer."""
    value = optional_query_parameter(event, name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Query parameter {name} must be an integer, got '{value}'")


def parse_and_validate_json(event: Dict[str, Any], model_class: Type[M]) -> Tuple[Optional[M], Optional[Dict[str, Any]]]:
    """
    Validate the JSON body against a pydantic model.

    Returns (model, None) on success and (None, 400 response) otherwise.
    A missing body validates as {}.
    """
    try:
        return model_class.model_validate_json(event.get('body') or '{}'), None
    except ValidationError as e:
        return None, create_response(400, {
            "message": "Invalid request data",
            "details": json.loads(e.json(include_url=False)),
        })
