"""
Delivery/review cycle nested inside the paid status.

paid --submit--> delivered --approve--> completed
                     └------reject-----> paid   (contractor may submit again)

Every submission is its own Delivery row; rejected rows are kept for audit.
"""
import uuid
from typing import Dict, Any, List, Optional, Tuple
from . import dynamo, effects
from .config import config
from .errors import InvalidStateError, NotFoundError, ValidationError
from .lifecycle import authorize, current_time, load_request, next_status
from .logging import log_transition
from .models import Action, Decision, DeliveryStatus, NotificationKind, WorkRequestStatus
from .sweeps import run_batch

DAY_SECONDS = 24 * 60 * 60


def load_delivery(delivery_id: str) -> Dict[str, Any]:
    delivery = dynamo.get_item(config.DELIVERIES_TABLE, {'deliveryId': delivery_id})
    if not delivery:
        raise NotFoundError(f"Delivery {delivery_id} not found", deliveryId=delivery_id)
    return delivery


def list_deliveries(request_id: str) -> List[Dict[str, Any]]:
    """All deliveries for a request, oldest first."""
    items = dynamo.query_index(config.DELIVERIES_TABLE, config.REQUEST_INDEX, 'requestId', request_id)
    return sorted(items, key=lambda d: d.get('createdAt', ''))


def submit_delivery(
    request_id: str,
    contractor_id: str,
    message: str,
    locator: Optional[str] = None,
    now: Optional[int] = None
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Submit work for review: paid → delivered.

    Refused while a cancellation request is pending so that an approved
    cancellation always finds the request in a cancellable status.
    """
    work_request = load_request(request_id)
    target = next_status(work_request, Action.SUBMIT_DELIVERY)
    authorize(work_request, contractor_id, Action.SUBMIT_DELIVERY)

    if not message or not str(message).strip():
        raise ValidationError("message is required")
    if work_request.get('pendingCancellationId'):
        raise InvalidStateError(
            "Cannot deliver while a cancellation request is pending",
            cancellationId=work_request['pendingCancellationId']
        )

    timestamp = str(current_time(now))
    delivery = {
        'deliveryId': str(uuid.uuid4()),
        'requestId': request_id,
        'contractorId': contractor_id,
        'status': DeliveryStatus.PENDING,
        'message': str(message).strip(),
        'createdAt': timestamp
    }
    if locator:
        delivery['deliveryLocator'] = locator

    dynamo.transact_write([
        dynamo.put_op(config.DELIVERIES_TABLE, delivery, 'deliveryId'),
        dynamo.update_op(
            config.WORK_REQUESTS_TABLE,
            {'requestId': request_id},
            updates={'status': target, 'latestDeliveryId': delivery['deliveryId'], 'updatedAt': timestamp},
            set_once={'deliveredAt': timestamp},
            expected={'status': WorkRequestStatus.PAID, 'pendingCancellationId': None}
        )
    ])
    log_transition('WorkRequest', request_id, work_request['status'], target, contractor_id)

    return delivery, [
        effects.notification(
            work_request['requesterId'],
            NotificationKind.DELIVERED,
            'Work delivered',
            f"\"{work_request.get('title', request_id)}\" has been delivered. Please review it.",
            request_id
        )
    ]


def _approve(
    delivery: Dict[str, Any],
    work_request: Dict[str, Any],
    timestamp: str,
    actor: str,
    auto: bool = False
) -> Dict[str, Any]:
    request_id = work_request['requestId']
    delivery_updates = {'status': DeliveryStatus.APPROVED, 'reviewedAt': timestamp}
    if auto:
        delivery_updates['autoApproved'] = True
        delivery_updates['feedback'] = (
            f"Approved automatically after {config.DELIVERY_AUTO_APPROVE_DAYS} days without review"
        )
    request_updates = {
        'status': WorkRequestStatus.COMPLETED,
        'completedAt': timestamp,
        'approvedDeliveryId': delivery['deliveryId'],
        'updatedAt': timestamp
    }

    dynamo.transact_write([
        dynamo.update_op(
            config.DELIVERIES_TABLE,
            {'deliveryId': delivery['deliveryId']},
            updates=delivery_updates,
            expected={'status': DeliveryStatus.PENDING}
        ),
        dynamo.update_op(
            config.WORK_REQUESTS_TABLE,
            {'requestId': request_id},
            updates=request_updates,
            expected={'status': WorkRequestStatus.DELIVERED, 'approvedDeliveryId': None}
        )
    ])
    log_transition('Delivery', delivery['deliveryId'], DeliveryStatus.PENDING, DeliveryStatus.APPROVED, actor)
    log_transition('WorkRequest', request_id, work_request['status'], WorkRequestStatus.COMPLETED, actor)
    return {**work_request, **request_updates}


def review_delivery(
    delivery_id: str,
    requester_id: str,
    decision: str,
    feedback: Optional[str] = None,
    now: Optional[int] = None
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Approve (delivered → completed) or reject (delivered → paid) a delivery.
    Feedback is mandatory when rejecting.

    Returns:
        (updated work request, effects)
    """
    delivery = load_delivery(delivery_id)
    work_request = load_request(delivery['requestId'])
    request_id = work_request['requestId']

    action = Action.REJECT_DELIVERY if decision == Decision.REJECT else Action.APPROVE_DELIVERY
    target = next_status(work_request, action)
    if delivery.get('status') != DeliveryStatus.PENDING:
        raise InvalidStateError(f"Delivery {delivery_id} is {delivery.get('status')}")
    authorize(work_request, requester_id, action)

    if decision not in Decision.ALL:
        raise ValidationError(f"decision must be one of {', '.join(Decision.ALL)}")
    feedback = (feedback or '').strip()
    if decision == Decision.REJECT and not feedback:
        raise ValidationError("feedback is required when rejecting a delivery")

    timestamp = str(current_time(now))
    title = work_request.get('title', request_id)

    if decision == Decision.APPROVE:
        completed = _approve(delivery, work_request, timestamp, requester_id)
        return completed, [
            effects.notification(
                work_request['contractorId'],
                NotificationKind.COMPLETED,
                'Delivery approved',
                f"\"{title}\" was approved. The contract is complete.",
                request_id
            )
        ]

    request_updates = {'status': target, 'updatedAt': timestamp}
    dynamo.transact_write([
        dynamo.update_op(
            config.DELIVERIES_TABLE,
            {'deliveryId': delivery_id},
            updates={'status': DeliveryStatus.REJECTED, 'feedback': feedback, 'reviewedAt': timestamp},
            expected={'status': DeliveryStatus.PENDING}
        ),
        dynamo.update_op(
            config.WORK_REQUESTS_TABLE,
            {'requestId': request_id},
            updates=request_updates,
            expected={'status': WorkRequestStatus.DELIVERED}
        )
    ])
    log_transition('Delivery', delivery_id, DeliveryStatus.PENDING, DeliveryStatus.REJECTED, requester_id)
    log_transition('WorkRequest', request_id, work_request['status'], target, requester_id)

    return {**work_request, **request_updates}, [
        effects.notification(
            work_request['contractorId'],
            NotificationKind.DELIVERY_REJECTED,
            'Revision requested',
            f"\"{title}\" needs changes: {feedback}",
            request_id
        )
    ]


def _pending_deliveries_before(cutoff: int) -> List[Dict[str, Any]]:
    return dynamo.query_index(
        config.DELIVERIES_TABLE,
        config.STATUS_INDEX,
        'status', DeliveryStatus.PENDING,
        range_key='createdAt', range_upper=str(cutoff)
    )


def sweep_stale_deliveries(now: Optional[int] = None) -> Dict[str, Any]:
    """
    Approve deliveries the requester left unreviewed for DELIVERY_AUTO_APPROVE_DAYS.

    Returns:
        {'checked', 'approved', 'skipped', 'failed': [{'id', 'error'}]}
    """
    moment = current_time(now)
    timestamp = str(moment)
    stale = _pending_deliveries_before(moment - config.DELIVERY_AUTO_APPROVE_DAYS * DAY_SECONDS)

    def approve(delivery):
        work_request = load_request(delivery['requestId'])
        if work_request.get('status') != WorkRequestStatus.DELIVERED:
            return None
        _approve(delivery, work_request, timestamp, 'auto-approval', auto=True)
        title = work_request.get('title', work_request['requestId'])
        return [
            effects.notification(
                work_request['contractorId'],
                NotificationKind.COMPLETED,
                'Delivery approved automatically',
                f"\"{title}\" was approved after the review period ended.",
                work_request['requestId']
            ),
            effects.notification(
                work_request['requesterId'],
                NotificationKind.COMPLETED,
                'Delivery approved automatically',
                f"\"{title}\" was approved automatically after {config.DELIVERY_AUTO_APPROVE_DAYS} days.",
                work_request['requestId']
            ),
        ]

    result = run_batch('Delivery', stale, 'deliveryId', approve)
    result['approved'] = result.pop('processed')
    return result


def send_delivery_warnings(now: Optional[int] = None) -> Dict[str, Any]:
    """
    Remind requesters WARNING_LEAD_DAYS before a delivery is auto-approved.
    warningSentAt is set conditionally so each delivery is warned once.
    """
    moment = current_time(now)
    timestamp = str(moment)
    lead_days = config.DELIVERY_AUTO_APPROVE_DAYS - config.WARNING_LEAD_DAYS
    candidates = [
        d for d in _pending_deliveries_before(moment - lead_days * DAY_SECONDS)
        if not d.get('warningSentAt')
    ]

    def warn(delivery):
        work_request = load_request(delivery['requestId'])
        if work_request.get('status') != WorkRequestStatus.DELIVERED:
            return None
        dynamo.update_if(
            config.DELIVERIES_TABLE,
            {'deliveryId': delivery['deliveryId']},
            updates={'warningSentAt': timestamp},
            expected={'status': DeliveryStatus.PENDING, 'warningSentAt': None}
        )
        return [
            effects.notification(
                work_request['requesterId'],
                NotificationKind.AUTO_APPROVAL_WARNING,
                'Review deadline approaching',
                f"\"{work_request.get('title', work_request['requestId'])}\" will be approved automatically "
                f"in {config.WARNING_LEAD_DAYS} days unless you review it.",
                work_request['requestId']
            )
        ]

    result = run_batch('Delivery warning', candidates, 'deliveryId', warn)
    result['warned'] = result.pop('processed')
    return result
