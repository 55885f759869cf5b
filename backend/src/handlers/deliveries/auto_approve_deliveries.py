"""
Auto-Approve Deliveries Handler.
Triggered daily by EventBridge scheduler to approve deliveries left unreviewed.
"""
from shared.config import config
from shared.deliveries import sweep_stale_deliveries
from shared.logging import logger


def handler(event, context):
    """
    Scheduled handler. An optional "now" (epoch seconds) in the event
    replays the sweep as of that moment.
    """
    logger.info(f"Running delivery auto-approval (>{config.DELIVERY_AUTO_APPROVE_DAYS} days)...")
    return sweep_stale_deliveries((event or {}).get('now'))
