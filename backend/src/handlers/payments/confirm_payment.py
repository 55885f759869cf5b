"""
Confirm Payment Handler.
POST /requests/{requestId}/pay
Body: { "paymentReference": "pi_..." }

Called once the payment gateway has captured the contract price.
"""
from shared.auth import get_profile_id
from shared.effects import dispatch
from shared.lifecycle import pay
from shared.logging import log_event
from shared.utils import action_response, error_response, format_response, get_path_param, parse_body


def handler(event, context):
    log_event(event)
    try:
        payer_id = get_profile_id(event)
        if not payer_id:
            return format_response(401, {'message': 'Unauthorized'})

        request_id = get_path_param(event, 'requestId')
        body = parse_body(event)

        work_request, effects = pay(request_id, payer_id, body.get('paymentReference'))
        return action_response(200, 'workRequest', work_request, dispatch(effects))

    except Exception as e:
        return error_response(e)
