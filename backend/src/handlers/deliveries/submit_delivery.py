"""
Submit Delivery Handler.
POST /requests/{requestId}/deliveries
Body: { "message": "...", "deliveryLocator": "https://..." }
"""
from shared.auth import get_profile_id
from shared.deliveries import submit_delivery
from shared.effects import dispatch
from shared.logging import log_event
from shared.utils import action_response, error_response, format_response, get_path_param, parse_body


def handler(event, context):
    log_event(event)
    try:
        contractor_id = get_profile_id(event)
        if not contractor_id:
            return format_response(401, {'message': 'Unauthorized'})

        request_id = get_path_param(event, 'requestId')
        body = parse_body(event)

        delivery, effects = submit_delivery(
            request_id,
            contractor_id,
            body.get('message'),
            body.get('deliveryLocator')
        )
        return action_response(201, 'delivery', delivery, dispatch(effects))

    except Exception as e:
        return error_response(e)
