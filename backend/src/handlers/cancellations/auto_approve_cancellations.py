"""
Auto-Approve Cancellations Handler.
Triggered by EventBridge scheduler to approve cancellation requests
that received no response within the configured number of days.
"""
from shared.cancellation import sweep_expired_cancellations
from shared.config import config
from shared.logging import logger


def handler(event, context):
    """
    Scheduled handler. Should be triggered at least daily by EventBridge.
    An optional "now" (epoch seconds) in the event replays the sweep as of
    that moment.

    Returns:
        {'checked': n, 'approved': n, 'skipped': n, 'failed': [{'id', 'error'}]}
    """
    logger.info(f"Running cancellation auto-approval (>{config.CANCELLATION_AUTO_APPROVE_DAYS} days)...")
    return sweep_expired_cancellations((event or {}).get('now'))
