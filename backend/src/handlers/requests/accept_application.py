"""
Accept Application Handler.
POST /requests/{requestId}/applications/{applicationId}/accept
Body: { "applicantId": "...", "price": 10000, "deadline": "2024-06-01" }
"""
from shared.auth import get_profile_id
from shared.effects import dispatch
from shared.lifecycle import accept_application
from shared.logging import log_event
from shared.utils import action_response, error_response, format_response, get_path_param, parse_body


def handler(event, context):
    """
    Contract one applicant. Other pending applications are rejected and the
    request stops accepting applications in the same transaction.
    """
    log_event(event)
    try:
        requester_id = get_profile_id(event)
        if not requester_id:
            return format_response(401, {'message': 'Unauthorized'})

        request_id = get_path_param(event, 'requestId')
        application_id = get_path_param(event, 'applicationId')
        body = parse_body(event)

        contract, effects = accept_application(
            request_id,
            requester_id,
            application_id,
            body.get('applicantId'),
            body.get('price'),
            body.get('deadline')
        )
        return action_response(200, 'contract', contract, dispatch(effects))

    except Exception as e:
        return error_response(e)
