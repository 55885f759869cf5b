"""
Respond Cancellation Handler.
POST /cancellations/{cancellationId}/respond
Body: { "decision": "approve" | "reject" }
"""
from shared.auth import get_profile_id
from shared.cancellation import respond_cancellation
from shared.effects import dispatch
from shared.logging import log_event
from shared.utils import action_response, error_response, format_response, get_path_param, parse_body


def handler(event, context):
    """
    Approval cancels the work request and refunds a captured payment;
    rejection keeps the contract running. A 409 "conflict" means the
    request was resolved concurrently (e.g. by the auto-approval sweep).
    """
    log_event(event)
    try:
        responder_id = get_profile_id(event)
        if not responder_id:
            return format_response(401, {'message': 'Unauthorized'})

        cancellation_id = get_path_param(event, 'cancellationId')
        body = parse_body(event)
        decision = str(body.get('decision', '')).lower()

        work_request, effects = respond_cancellation(cancellation_id, responder_id, decision)
        return action_response(200, 'workRequest', work_request, dispatch(effects))

    except Exception as e:
        return error_response(e)
