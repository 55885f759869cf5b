"""
Notification relay over SQS.
A consumer of NOTIFICATIONS_QUEUE_URL stores each message in the
recipient's inbox; this side only enqueues.
"""
import boto3
import json
from typing import Dict, Any
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .logging import logger

sqs = boto3.client('sqs', region_name=config.AWS_REGION)


def send_message(queue_url: str, message_body: Dict[str, Any]) -> bool:
    """Enqueue one JSON message. Returns False instead of raising on AWS errors."""
    try:
        response = sqs.send_message(QueueUrl=queue_url, MessageBody=json.dumps(message_body, default=str))
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Could not enqueue message on {queue_url}: {e}")
        return False
    logger.info(f"Enqueued message {response.get('MessageId')} on {queue_url}")
    return True


def send_notification(recipient_id: str, kind: str, title: str, body: str, link: str) -> bool:
    """
    Relay one notification to a profile.

    Returns:
        True once the message is enqueued
    """
    if not config.NOTIFICATIONS_QUEUE_URL:
        logger.warning(f"NOTIFICATIONS_QUEUE_URL not set, dropping '{kind}' for {recipient_id}")
        return False

    return send_message(config.NOTIFICATIONS_QUEUE_URL, {
        'recipientId': recipient_id,
        'kind': kind,
        'title': title,
        'body': body,
        'link': link
    })
