"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the commissions backend.
"""
import os


class Config:
    """Centralized configuration from environment variables."""
    
    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')
    
    # DynamoDB Tables
    WORK_REQUESTS_TABLE = os.environ.get('WORK_REQUESTS_TABLE', '')
    APPLICATIONS_TABLE = os.environ.get('APPLICATIONS_TABLE', '')
    DELIVERIES_TABLE = os.environ.get('DELIVERIES_TABLE', '')
    CANCELLATIONS_TABLE = os.environ.get('CANCELLATIONS_TABLE', '')
    
    # DynamoDB Indexes
    REQUEST_INDEX = os.environ.get('REQUEST_INDEX', 'requestId-index')
    STATUS_INDEX = os.environ.get('STATUS_INDEX', 'status-createdAt-index')
    MAX_TRANSACTION_ITEMS = int(os.environ.get('MAX_TRANSACTION_ITEMS', '100'))
    
    # SQS Queues
    NOTIFICATIONS_QUEUE_URL = os.environ.get('NOTIFICATIONS_QUEUE_URL', '')
    
    # Payment gateway (Lambda that talks to the card processor)
    REFUND_FUNCTION_NAME = os.environ.get('REFUND_FUNCTION_NAME', '')
    
    # Contract rules
    MIN_CONTRACT_PRICE = int(os.environ.get('MIN_CONTRACT_PRICE', '500'))
    OVERDUE_GRACE_DAYS = int(os.environ.get('OVERDUE_GRACE_DAYS', '7'))
    
    # Scheduled sweeps
    CANCELLATION_AUTO_APPROVE_DAYS = int(os.environ.get('CANCELLATION_AUTO_APPROVE_DAYS', '7'))
    DELIVERY_AUTO_APPROVE_DAYS = int(os.environ.get('DELIVERY_AUTO_APPROVE_DAYS', '14'))
    WARNING_LEAD_DAYS = int(os.environ.get('WARNING_LEAD_DAYS', '3'))  # Reminder sent this long before auto-approval
    
    # Link prefix used in notification bodies
    APP_BASE_PATH = os.environ.get('APP_BASE_PATH', '')


config = Config()
