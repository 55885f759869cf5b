"""
Work request lifecycle manager.

Owns the canonical status of a work request and the legal transitions
between statuses (see models.TRANSITIONS). Every transition:
  1. loads the request and checks the transition table,
  2. resolves the caller's role with role_of(),
  3. commits status + timestamp in one conditional write,
  4. returns (entity, effects) for the dispatcher.
"""
import time
from datetime import datetime, timezone, timedelta
from typing import Dict, Any, List, Optional, Tuple
from . import dynamo, effects
from .config import config
from .errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from .logging import log_transition
from .models import (
    ACTION_ROLES, TRANSITIONS, Action, ApplicationStatus, NotificationKind, Role, WorkRequestStatus
)


def current_time(now: Optional[int] = None) -> int:
    return int(now) if now is not None else int(time.time())


def role_of(work_request: Dict[str, Any], profile_id: str) -> Optional[str]:
    """Return Role.REQUESTER, Role.CONTRACTOR or Role.NONE for a profile."""
    if not profile_id:
        return Role.NONE
    if profile_id == work_request.get('requesterId'):
        return Role.REQUESTER
    if profile_id == work_request.get('contractorId'):
        return Role.CONTRACTOR
    return Role.NONE


def counterparty_of(work_request: Dict[str, Any], profile_id: str) -> Optional[str]:
    """Profile id of the other party to the contract."""
    if profile_id == work_request.get('requesterId'):
        return work_request.get('contractorId')
    return work_request.get('requesterId')


def is_overdue(deadline: Optional[str], now: Optional[int] = None) -> bool:
    """
    True once the deadline plus the grace window has passed.
    Only used to pick which cancellation path is offered; never changes status.
    """
    if not deadline:
        return False
    due = datetime.strptime(str(deadline), '%Y-%m-%d').replace(tzinfo=timezone.utc)
    moment = datetime.fromtimestamp(current_time(now), tz=timezone.utc)
    return moment > due + timedelta(days=config.OVERDUE_GRACE_DAYS)


def load_request(request_id: str) -> Dict[str, Any]:
    work_request = dynamo.get_item(config.WORK_REQUESTS_TABLE, {'requestId': request_id})
    if not work_request:
        raise NotFoundError(f"Work request {request_id} not found", requestId=request_id)
    return work_request


def next_status(work_request: Dict[str, Any], action: str) -> str:
    """Look up the transition table, raising InvalidStateError when illegal."""
    status = work_request.get('status')
    target = TRANSITIONS.get((status, action))
    if target is None:
        raise InvalidStateError(
            f"Cannot {action.replace('_', ' ')} while request is {status}",
            requestId=work_request.get('requestId'),
            status=status
        )
    return target


def authorize(work_request: Dict[str, Any], profile_id: str, action: str) -> str:
    """Check the caller is a party and holds the role the action needs."""
    role = role_of(work_request, profile_id)
    if role is Role.NONE:
        raise ForbiddenError("Not a party to this work request", requestId=work_request.get('requestId'))
    required = ACTION_ROLES[action]
    if required is not None and role != required:
        raise ForbiddenError(f"Only the {required} may {action.replace('_', ' ')}")
    return role


def _validate_price(price: Any) -> int:
    if isinstance(price, bool) or not isinstance(price, int):
        raise ValidationError("price must be an integer")
    if price < config.MIN_CONTRACT_PRICE:
        raise ValidationError(f"price must be at least {config.MIN_CONTRACT_PRICE}")
    return price


def _validate_deadline(deadline: Optional[str]) -> Optional[str]:
    if not deadline:
        return None
    try:
        return datetime.strptime(str(deadline), '%Y-%m-%d').date().isoformat()
    except ValueError:
        raise ValidationError("deadline must be an ISO date (YYYY-MM-DD)")


def accept_application(
    request_id: str,
    requester_id: str,
    application_id: str,
    applicant_id: str,
    price: Any,
    deadline: Optional[str] = None,
    now: Optional[int] = None
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Contract one applicant: open → contracted.

    A work request carries a single contract, so accepting fills its
    positions. In the same transaction the accepted application is marked,
    every other pending application is rejected and the application window
    is closed.

    Returns:
        (contracted work request, effects)
    """
    work_request = load_request(request_id)
    target = next_status(work_request, Action.ACCEPT_APPLICATION)
    authorize(work_request, requester_id, Action.ACCEPT_APPLICATION)

    final_price = _validate_price(price)
    deadline = _validate_deadline(deadline)

    application = dynamo.get_item(config.APPLICATIONS_TABLE, {'applicationId': application_id})
    if not application or application.get('requestId') != request_id:
        raise NotFoundError(f"Application {application_id} not found for request {request_id}")
    if application.get('applicantId') != applicant_id:
        raise ValidationError("applicantId does not match the application")
    if applicant_id == work_request.get('requesterId'):
        raise ValidationError("Requester cannot contract themselves")
    if application.get('status') != ApplicationStatus.PENDING:
        raise InvalidStateError(f"Application {application_id} is {application.get('status')}")

    others = [
        app for app in dynamo.query_index(
            config.APPLICATIONS_TABLE, config.REQUEST_INDEX, 'requestId', request_id
        )
        if app['applicationId'] != application_id and app.get('status') == ApplicationStatus.PENDING
    ]
    if len(others) + 2 > config.MAX_TRANSACTION_ITEMS:
        raise ValidationError(
            f"Too many pending applications ({len(others)}) to close the request atomically"
        )

    timestamp = str(current_time(now))
    contract_fields = {
        'status': target,
        'contractorId': applicant_id,
        'applicationId': application_id,
        'finalPrice': final_price,
        'contractedAt': timestamp,
        'applicationsClosed': True,
        'updatedAt': timestamp
    }
    if deadline:
        contract_fields['deadline'] = deadline

    ops = [
        dynamo.update_op(
            config.WORK_REQUESTS_TABLE,
            {'requestId': request_id},
            updates=contract_fields,
            expected={'status': WorkRequestStatus.OPEN, 'finalPrice': None}
        ),
        dynamo.update_op(
            config.APPLICATIONS_TABLE,
            {'applicationId': application_id},
            updates={'status': ApplicationStatus.ACCEPTED, 'decidedAt': timestamp},
            expected={'status': ApplicationStatus.PENDING}
        ),
    ]
    for other in others:
        ops.append(dynamo.update_op(
            config.APPLICATIONS_TABLE,
            {'applicationId': other['applicationId']},
            updates={'status': ApplicationStatus.REJECTED, 'decidedAt': timestamp},
            expected={'status': ApplicationStatus.PENDING}
        ))

    dynamo.transact_write(ops)
    log_transition('WorkRequest', request_id, work_request['status'], target, requester_id)

    contract = {**work_request, **contract_fields}
    return contract, [
        effects.notification(
            applicant_id,
            NotificationKind.ACCEPTED,
            'Your application was accepted',
            f"You have been contracted for \"{work_request.get('title', request_id)}\" "
            f"at {final_price}. Please wait for the payment.",
            request_id
        )
    ]


def pay(
    request_id: str,
    payer_id: str,
    payment_reference: Optional[str] = None,
    now: Optional[int] = None
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Record the captured payment: contracted → paid.
    The capture itself happens at the payment gateway before this call.
    """
    work_request = load_request(request_id)
    target = next_status(work_request, Action.PAY)
    authorize(work_request, payer_id, Action.PAY)

    timestamp = str(current_time(now))
    updates = {'status': target, 'paidAt': timestamp, 'updatedAt': timestamp}
    if payment_reference:
        updates['paymentReference'] = payment_reference

    updated = dynamo.update_if(
        config.WORK_REQUESTS_TABLE,
        {'requestId': request_id},
        updates=updates,
        expected={'status': WorkRequestStatus.CONTRACTED}
    )
    log_transition('WorkRequest', request_id, work_request['status'], target, payer_id)

    return updated, [
        effects.notification(
            work_request['contractorId'],
            NotificationKind.PAID,
            'Payment received',
            f"\"{work_request.get('title', request_id)}\" has been paid. You can start working.",
            request_id
        )
    ]
