"""
Cancellation negotiation protocol.

A cancellation request is proposed by one party while the work request is
contracted or paid, and resolved by the other party or, after
CANCELLATION_AUTO_APPROVE_DAYS without a response, by the scheduled sweep.

At most one request may be pending per work request: proposing sets
pendingCancellationId on the work request under attribute_not_exists, and
resolving clears it. Respond and the sweep both write under
status = pending, so exactly one of them wins a race and only the winner
emits notifications or refunds.
"""
import uuid
from typing import Dict, Any, List, Optional, Tuple
from . import dynamo, effects
from .config import config
from .errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from .lifecycle import authorize, counterparty_of, current_time, is_overdue, load_request, next_status, role_of
from .logging import log_transition
from .models import (
    Action, CancellationResolution, CancellationStatus, Decision, NotificationKind, Role, WorkRequestStatus
)
from .sweeps import run_batch

DAY_SECONDS = 24 * 60 * 60
AUTO_APPROVER = 'auto-approval'


def load_cancellation(cancellation_id: str) -> Dict[str, Any]:
    cancellation = dynamo.get_item(config.CANCELLATIONS_TABLE, {'cancellationId': cancellation_id})
    if not cancellation:
        raise NotFoundError(f"Cancellation request {cancellation_id} not found", cancellationId=cancellation_id)
    return cancellation


def propose_cancellation(
    request_id: str,
    initiator_id: str,
    reason: str,
    now: Optional[int] = None
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Open a pending cancellation request. The work request status is unchanged.

    Returns:
        (cancellation request, effects)
    """
    work_request = load_request(request_id)
    next_status(work_request, Action.CANCEL)
    authorize(work_request, initiator_id, Action.CANCEL)

    reason = (reason or '').strip()
    if not reason:
        raise ValidationError("reason is required")
    if work_request.get('pendingCancellationId'):
        raise InvalidStateError(
            "A cancellation request is already pending",
            cancellationId=work_request['pendingCancellationId']
        )

    moment = current_time(now)
    timestamp = str(moment)
    cancellation = {
        'cancellationId': str(uuid.uuid4()),
        'requestId': request_id,
        'initiatorId': initiator_id,
        'reason': reason,
        'status': CancellationStatus.PENDING,
        'overdue': is_overdue(work_request.get('deadline'), moment),
        'createdAt': timestamp
    }

    dynamo.transact_write([
        dynamo.put_op(config.CANCELLATIONS_TABLE, cancellation, 'cancellationId'),
        dynamo.update_op(
            config.WORK_REQUESTS_TABLE,
            {'requestId': request_id},
            updates={'pendingCancellationId': cancellation['cancellationId'], 'updatedAt': timestamp},
            expected={'status': WorkRequestStatus.CANCELLABLE, 'pendingCancellationId': None}
        )
    ])
    log_transition('Cancellation', cancellation['cancellationId'], '-', CancellationStatus.PENDING, initiator_id)

    return cancellation, [
        effects.notification(
            counterparty_of(work_request, initiator_id),
            NotificationKind.CANCELLATION_REQUESTED,
            'Cancellation requested',
            f"A cancellation was requested for \"{work_request.get('title', request_id)}\": {reason}. "
            f"It will be approved automatically if you do not respond within "
            f"{config.CANCELLATION_AUTO_APPROVE_DAYS} days.",
            request_id
        )
    ]


def _approve(
    cancellation: Dict[str, Any],
    work_request: Dict[str, Any],
    timestamp: str,
    actor: str,
    resolution: str
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    request_id = work_request['requestId']
    cancellation_id = cancellation['cancellationId']

    dynamo.transact_write([
        dynamo.update_op(
            config.CANCELLATIONS_TABLE,
            {'cancellationId': cancellation_id},
            updates={
                'status': CancellationStatus.APPROVED,
                'resolvedAt': timestamp,
                'resolution': resolution
            },
            expected={'status': CancellationStatus.PENDING}
        ),
        dynamo.update_op(
            config.WORK_REQUESTS_TABLE,
            {'requestId': request_id},
            updates={'status': WorkRequestStatus.CANCELLED, 'cancelledAt': timestamp, 'updatedAt': timestamp},
            remove=['pendingCancellationId'],
            expected={'status': WorkRequestStatus.CANCELLABLE, 'pendingCancellationId': cancellation_id}
        )
    ])
    log_transition('Cancellation', cancellation_id, CancellationStatus.PENDING, CancellationStatus.APPROVED, actor)
    log_transition('WorkRequest', request_id, work_request['status'], WorkRequestStatus.CANCELLED, actor)

    title = work_request.get('title', request_id)
    if resolution == CancellationResolution.NO_RESPONSE:
        body = (f"The cancellation of \"{title}\" was approved automatically after "
                f"{config.CANCELLATION_AUTO_APPROVE_DAYS} days without a response.")
    else:
        body = f"Your cancellation request for \"{title}\" was approved."

    side_effects = [
        effects.notification(
            cancellation['initiatorId'], NotificationKind.CANCELLED, 'Cancellation approved', body, request_id
        )
    ]
    if work_request.get('paymentReference'):
        side_effects.append(effects.refund(
            request_id,
            work_request['paymentReference'],
            f"Cancellation {cancellation_id} approved ({resolution})"
        ))

    cancelled = dict(work_request)
    cancelled.pop('pendingCancellationId', None)
    cancelled.update({'status': WorkRequestStatus.CANCELLED, 'cancelledAt': timestamp, 'updatedAt': timestamp})
    return cancelled, side_effects


def _reject(
    cancellation: Dict[str, Any],
    work_request: Dict[str, Any],
    timestamp: str,
    actor: str
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    request_id = work_request['requestId']
    cancellation_id = cancellation['cancellationId']

    dynamo.transact_write([
        dynamo.update_op(
            config.CANCELLATIONS_TABLE,
            {'cancellationId': cancellation_id},
            updates={
                'status': CancellationStatus.REJECTED,
                'resolvedAt': timestamp,
                'resolution': CancellationResolution.RESPONDED
            },
            expected={'status': CancellationStatus.PENDING}
        ),
        dynamo.update_op(
            config.WORK_REQUESTS_TABLE,
            {'requestId': request_id},
            updates={'updatedAt': timestamp},
            remove=['pendingCancellationId'],
            expected={'pendingCancellationId': cancellation_id}
        )
    ])
    log_transition('Cancellation', cancellation_id, CancellationStatus.PENDING, CancellationStatus.REJECTED, actor)

    unchanged = dict(work_request)
    unchanged.pop('pendingCancellationId', None)
    unchanged['updatedAt'] = timestamp
    return unchanged, [
        effects.notification(
            cancellation['initiatorId'],
            NotificationKind.CANCELLATION_REJECTED,
            'Cancellation declined',
            f"Your cancellation request for \"{work_request.get('title', request_id)}\" was declined. "
            f"The contract continues.",
            request_id
        )
    ]


def respond_cancellation(
    cancellation_id: str,
    responder_id: str,
    decision: str,
    now: Optional[int] = None
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Approve or reject a pending cancellation request.
    Only the party who did not initiate it may respond.

    Returns:
        (updated work request, effects)
    """
    cancellation = load_cancellation(cancellation_id)
    work_request = load_request(cancellation['requestId'])

    if cancellation.get('status') != CancellationStatus.PENDING:
        raise InvalidStateError(
            f"Cancellation request {cancellation_id} is {cancellation.get('status')}",
            cancellationId=cancellation_id
        )
    if decision == Decision.APPROVE:
        next_status(work_request, Action.CANCEL)

    if role_of(work_request, responder_id) is Role.NONE:
        raise ForbiddenError("Not a party to this work request", requestId=work_request['requestId'])
    if responder_id == cancellation.get('initiatorId'):
        raise ForbiddenError("The initiator cannot respond to their own cancellation request")

    if decision not in Decision.ALL:
        raise ValidationError(f"decision must be one of {', '.join(Decision.ALL)}")

    timestamp = str(current_time(now))
    if decision == Decision.APPROVE:
        return _approve(cancellation, work_request, timestamp, responder_id, CancellationResolution.RESPONDED)
    return _reject(cancellation, work_request, timestamp, responder_id)


def _pending_cancellations_before(cutoff: int) -> List[Dict[str, Any]]:
    return dynamo.query_index(
        config.CANCELLATIONS_TABLE,
        config.STATUS_INDEX,
        'status', CancellationStatus.PENDING,
        range_key='createdAt', range_upper=str(cutoff)
    )


def sweep_expired_cancellations(now: Optional[int] = None) -> Dict[str, Any]:
    """
    Approve every cancellation request left pending for CANCELLATION_AUTO_APPROVE_DAYS.

    Safe to re-run: requests resolved in the meantime are skipped. Failures
    (including refunds and notifications after commit) are reported per item.

    Returns:
        {'checked', 'approved', 'skipped', 'failed': [{'id', 'error'}]}
    """
    moment = current_time(now)
    timestamp = str(moment)
    expired = _pending_cancellations_before(moment - config.CANCELLATION_AUTO_APPROVE_DAYS * DAY_SECONDS)

    def approve(cancellation):
        fresh = load_cancellation(cancellation['cancellationId'])
        if fresh.get('status') != CancellationStatus.PENDING:
            return None
        work_request = load_request(fresh['requestId'])
        _, side_effects = _approve(fresh, work_request, timestamp, AUTO_APPROVER, CancellationResolution.NO_RESPONSE)
        other_party = counterparty_of(work_request, fresh['initiatorId'])
        if other_party:
            side_effects.insert(1, effects.notification(
                other_party,
                NotificationKind.CANCELLED,
                'Cancellation approved automatically',
                f"\"{work_request.get('title', work_request['requestId'])}\" was cancelled because the "
                f"cancellation request received no response within {config.CANCELLATION_AUTO_APPROVE_DAYS} days.",
                work_request['requestId']
            ))
        return side_effects

    result = run_batch('Cancellation', expired, 'cancellationId', approve)
    result['approved'] = result.pop('processed')
    return result


def send_cancellation_warnings(now: Optional[int] = None) -> Dict[str, Any]:
    """
    Remind the responding party WARNING_LEAD_DAYS before auto-approval.
    warningSentAt is set conditionally so each request is warned once.
    """
    moment = current_time(now)
    timestamp = str(moment)
    lead_days = config.CANCELLATION_AUTO_APPROVE_DAYS - config.WARNING_LEAD_DAYS
    candidates = [
        c for c in _pending_cancellations_before(moment - lead_days * DAY_SECONDS)
        if not c.get('warningSentAt')
    ]

    def warn(cancellation):
        work_request = load_request(cancellation['requestId'])
        dynamo.update_if(
            config.CANCELLATIONS_TABLE,
            {'cancellationId': cancellation['cancellationId']},
            updates={'warningSentAt': timestamp},
            expected={'status': CancellationStatus.PENDING, 'warningSentAt': None}
        )
        return [
            effects.notification(
                counterparty_of(work_request, cancellation['initiatorId']),
                NotificationKind.AUTO_APPROVAL_WARNING,
                'Cancellation response deadline approaching',
                f"A cancellation request for \"{work_request.get('title', work_request['requestId'])}\" "
                f"will be approved automatically in {config.WARNING_LEAD_DAYS} days unless you respond.",
                work_request['requestId']
            )
        ]

    result = run_batch('Cancellation warning', candidates, 'cancellationId', warn)
    result['warned'] = result.pop('processed')
    return result
