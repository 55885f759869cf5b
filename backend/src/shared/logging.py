"""
Logger shared by handlers, lifecycle operations and sweeps.
"""
import logging
import json
import os

logger = logging.getLogger('commissions')
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

# One stream handler per warm container
if not logger.handlers:
    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))
    logger.addHandler(stream)

# Request bodies carry reasons and feedback; headers carry tokens
REDACTED_EVENT_KEYS = ('body', 'headers', 'multiValueHeaders')


def log_event(event: dict) -> None:
    """Log the routing part of an incoming Lambda event."""
    try:
        visible = {k: v for k, v in (event or {}).items() if k not in REDACTED_EVENT_KEYS}
        logger.info(f"Lambda event: {json.dumps(visible, default=str)}")
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Could not log event: {e}")


def log_transition(entity: str, entity_id: str, old_status: str, new_status: str, actor: str) -> None:
    """Record a committed status change in a grep-friendly single line."""
    logger.info(f"{entity} {entity_id}: {old_status} -> {new_status} (by {actor})")
