"""
API Gateway proxy helpers shared by the lifecycle handlers.
"""
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional
from .errors import LifecycleError
from .logging import logger

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Credentials': True,
    'Content-Type': 'application/json'
}


class DecimalEncoder(json.JSONEncoder):
    """DynamoDB returns numbers as Decimal; prices and counters are whole."""

    def default(self, o):
        if isinstance(o, Decimal):
            return int(o) if o == o.to_integral_value() else float(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Build a Lambda proxy response.

    Args:
        status_code: HTTP status code
        body: JSON-serializable payload (Decimals allowed)
        headers: Extra headers merged over the CORS defaults

    Returns:
        Response dict for API Gateway
    """
    return {
        'statusCode': status_code,
        'headers': {**CORS_HEADERS, **(headers or {})},
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error: Exception) -> Dict[str, Any]:
    """Translate an exception raised by a lifecycle operation into a response."""
    if isinstance(error, LifecycleError):
        logger.info(f"{type(error).__name__}: {error.message}")
        return format_response(error.status_code, error.to_dict())
    logger.exception(f"Unhandled error: {error}")
    return format_response(500, {'error': 'internal_error', 'message': 'Internal Server Error'})


def action_response(status_code: int, key: str, entity: Dict[str, Any], warnings: List[str]) -> Dict[str, Any]:
    """Response for a committed transition, with any side-effect warnings."""
    body = {key: entity}
    if warnings:
        body['warnings'] = warnings
    return format_response(status_code, body)


def parse_body(event: dict) -> dict:
    """Request body as a dict; anything missing or not a JSON object yields {}."""
    raw = event.get('body') or '{}'
    if not isinstance(raw, str):
        return raw if isinstance(raw, dict) else {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def get_path_param(event: dict, name: str) -> Optional[str]:
    return (event.get('pathParameters') or {}).get(name)
