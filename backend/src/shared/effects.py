"""
Side effects emitted by lifecycle transitions.

Core operations commit their status change first and return a list of
effects ({'kind': ..., 'payload': {...}}). dispatch() runs them afterwards;
a failing effect never undoes the committed transition, it is logged and
returned so the caller can surface it.
"""
import time
from typing import List, Dict, Any, Optional
from . import dynamo, payments, sqs
from .config import config
from .errors import LifecycleError
from .logging import logger
from .models import RefundStatus

NOTIFY = 'notify'
REFUND = 'refund'


def request_link(request_id: str) -> str:
    return f"{config.APP_BASE_PATH}/requests/{request_id}"


def notification(recipient_id: str, kind: str, title: str, body: str, request_id: str) -> Dict[str, Any]:
    return {
        'kind': NOTIFY,
        'payload': {
            'recipientId': recipient_id,
            'kind': kind,
            'title': title,
            'body': body,
            'link': request_link(request_id)
        }
    }


def refund(request_id: str, payment_reference: str, reason: str) -> Dict[str, Any]:
    return {
        'kind': REFUND,
        'payload': {
            'requestId': request_id,
            'paymentReference': payment_reference,
            'reason': reason
        }
    }


def _send_notification(payload: Dict[str, Any]) -> Optional[str]:
    sent = sqs.send_notification(
        payload['recipientId'],
        payload['kind'],
        payload['title'],
        payload['body'],
        payload['link']
    )
    return None if sent else f"notification '{payload['kind']}' to {payload['recipientId']} not delivered"


def _execute_refund(payload: Dict[str, Any]) -> Optional[str]:
    request_id = payload['requestId']
    timestamp = str(int(time.time()))
    try:
        refund_id = payments.refund(request_id, payload['paymentReference'], payload['reason'])
    except LifecycleError as e:
        record_refund_failure(request_id, e.message)
        return f"refund for {request_id} failed: {e.message}"

    updates = {'refundStatus': RefundStatus.REFUNDED, 'refundedAt': timestamp}
    if refund_id:
        updates['refundId'] = refund_id
    try:
        dynamo.update_if(config.WORK_REQUESTS_TABLE, {'requestId': request_id}, updates=updates)
    except LifecycleError as e:
        # Money already moved; only the bookkeeping is missing
        logger.error(f"Refund {refund_id} for {request_id} succeeded but was not recorded: {e.message}")
    return None


def record_refund_failure(request_id: str, error: str) -> None:
    """Mark a work request whose refund must be reconciled by an operator."""
    try:
        dynamo.update_if(
            config.WORK_REQUESTS_TABLE,
            {'requestId': request_id},
            updates={
                'refundStatus': RefundStatus.FAILED,
                'refundError': error,
                'refundFailedAt': str(int(time.time()))
            }
        )
        logger.warning(f"Marked request {request_id} as refund failed: {error}")
    except LifecycleError as e:
        logger.error(f"Could not record refund failure for {request_id}: {e.message}")


HANDLERS = {
    NOTIFY: _send_notification,
    REFUND: _execute_refund,
}


def dispatch(effects: List[Dict[str, Any]]) -> List[str]:
    """
    Run effects in order.

    Returns:
        List of warning strings, one per failed effect (empty when all succeeded)
    """
    warnings = []
    for effect in effects:
        try:
            warning = HANDLERS[effect['kind']](effect['payload'])
        except Exception as e:
            logger.exception(f"Unexpected error dispatching {effect['kind']} effect")
            warning = f"{effect['kind']} effect failed: {e}"
        if warning:
            logger.warning(warning)
            warnings.append(warning)
    return warnings
