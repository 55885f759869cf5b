"""
Payment gateway client.
Refunds are executed by the payments Lambda, which owns the card processor
credentials; this module only invokes it and interprets the reply.
"""
import boto3
import json
from typing import Optional
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .errors import DependencyError
from .logging import logger

lambda_client = boto3.client('lambda', region_name=config.AWS_REGION)


def refund(request_id: str, payment_reference: str, reason: str) -> Optional[str]:
    """
    Request a refund of the captured payment for a work request.

    Args:
        request_id: Work request the payment belongs to
        payment_reference: Reference returned by the capture
        reason: Free text stored with the refund

    Returns:
        Refund id reported by the gateway (may be None)

    Raises:
        DependencyError: the gateway could not be reached or refused the refund
    """
    if not config.REFUND_FUNCTION_NAME:
        raise DependencyError("REFUND_FUNCTION_NAME is not configured", requestId=request_id)

    try:
        response = lambda_client.invoke(
            FunctionName=config.REFUND_FUNCTION_NAME,
            InvocationType='RequestResponse',
            Payload=json.dumps({
                'requestId': request_id,
                'paymentReference': payment_reference,
                'reason': reason
            })
        )
        result = json.loads(response['Payload'].read() or b'{}')
    except (ClientError, BotoCoreError, ValueError) as e:
        logger.error(f"Refund invocation failed for request {request_id}: {e}")
        raise DependencyError("Refund request failed", requestId=request_id) from e

    if response.get('FunctionError') or result.get('statusCode', 200) >= 400:
        logger.error(f"Refund rejected for request {request_id}: {result}")
        raise DependencyError("Refund was rejected by the payment gateway", requestId=request_id)

    refund_id = result.get('refundId')
    logger.info(f"Refund {refund_id} created for request {request_id}")
    return refund_id
