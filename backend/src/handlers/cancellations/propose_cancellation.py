"""
Propose Cancellation Handler.
POST /requests/{requestId}/cancellations
Body: { "reason": "..." }
"""
from shared.auth import get_profile_id
from shared.cancellation import propose_cancellation
from shared.effects import dispatch
from shared.logging import log_event
from shared.utils import action_response, error_response, format_response, get_path_param, parse_body


def handler(event, context):
    log_event(event)
    try:
        initiator_id = get_profile_id(event)
        if not initiator_id:
            return format_response(401, {'message': 'Unauthorized'})

        request_id = get_path_param(event, 'requestId')
        body = parse_body(event)

        cancellation, effects = propose_cancellation(request_id, initiator_id, body.get('reason'))
        return action_response(201, 'cancellation', cancellation, dispatch(effects))

    except Exception as e:
        return error_response(e)
