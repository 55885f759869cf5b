"""
Review Delivery Handler.
POST /deliveries/{deliveryId}/review
Body: { "decision": "approve" | "reject", "feedback": "..." }
"""
from shared.auth import get_profile_id
from shared.deliveries import review_delivery
from shared.effects import dispatch
from shared.logging import log_event
from shared.utils import action_response, error_response, format_response, get_path_param, parse_body


def handler(event, context):
    """
    Approving completes the contract; rejecting (feedback required) sends the
    request back to paid so the contractor can deliver again.
    """
    log_event(event)
    try:
        requester_id = get_profile_id(event)
        if not requester_id:
            return format_response(401, {'message': 'Unauthorized'})

        delivery_id = get_path_param(event, 'deliveryId')
        body = parse_body(event)
        decision = str(body.get('decision', '')).lower()

        work_request, effects = review_delivery(delivery_id, requester_id, decision, body.get('feedback'))
        return action_response(200, 'workRequest', work_request, dispatch(effects))

    except Exception as e:
        return error_response(e)
