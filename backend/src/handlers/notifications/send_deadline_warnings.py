"""
Send Deadline Warnings Handler.
Triggered by EventBridge scheduler; reminds the party who has to act that an
auto-approval is coming up.
"""
from shared.cancellation import send_cancellation_warnings
from shared.deliveries import send_delivery_warnings
from shared.logging import logger


def handler(event, context):
    now = (event or {}).get('now')
    cancellations = send_cancellation_warnings(now)
    deliveries = send_delivery_warnings(now)
    logger.info(f"Sent {cancellations['warned']} cancellation and {deliveries['warned']} delivery warnings")
    return {
        'cancellations': cancellations,
        'deliveries': deliveries
    }
