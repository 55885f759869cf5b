"""
DynamoDB utility functions for lifecycle persistence.

Every status change goes through update_if or transact_write, which attach a
ConditionExpression built from ``expected``:

    {'status': 'paid'}                 -> #status = :paid
    {'status': ('contracted', 'paid')} -> #status IN (...)
    {'pendingCancellationId': None}    -> attribute_not_exists(...)

A failed condition raises ConflictError; any other AWS failure raises
DependencyError so that nothing is committed half way.
"""
import boto3
from typing import List, Dict, Any, Optional
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .errors import ConflictError, DependencyError
from .logging import logger

dynamodb = boto3.resource('dynamodb', region_name=config.AWS_REGION)
serializer = TypeSerializer()


def build_update(
    updates: Optional[Dict[str, Any]] = None,
    expected: Optional[Dict[str, Any]] = None,
    remove: Optional[List[str]] = None,
    set_once: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Build UpdateExpression / ConditionExpression parameters.

    Args:
        updates: Fields to SET
        expected: Conditions that must hold at write time
        remove: Fields to REMOVE
        set_once: Fields to SET only when the attribute does not exist yet

    Returns:
        Dict of update_item keyword arguments (without Key/TableName)
    """
    names = {}
    values = {}
    set_parts = []
    conditions = []

    for i, (field, value) in enumerate((updates or {}).items()):
        names[f'#u{i}'] = field
        values[f':u{i}'] = value
        set_parts.append(f'#u{i} = :u{i}')

    for i, (field, value) in enumerate((set_once or {}).items()):
        names[f'#o{i}'] = field
        values[f':o{i}'] = value
        set_parts.append(f'#o{i} = if_not_exists(#o{i}, :o{i})')

    clauses = []
    if set_parts:
        clauses.append('SET ' + ', '.join(set_parts))
    if remove:
        for i, field in enumerate(remove):
            names[f'#r{i}'] = field
        clauses.append('REMOVE ' + ', '.join(f'#r{i}' for i in range(len(remove))))

    for i, (field, value) in enumerate((expected or {}).items()):
        names[f'#c{i}'] = field
        if value is None:
            conditions.append(f'attribute_not_exists(#c{i})')
        elif isinstance(value, (list, tuple)):
            placeholders = []
            for j, option in enumerate(value):
                values[f':c{i}_{j}'] = option
                placeholders.append(f':c{i}_{j}')
            conditions.append(f'#c{i} IN ({", ".join(placeholders)})')
        else:
            values[f':c{i}'] = value
            conditions.append(f'#c{i} = :c{i}')

    params = {'UpdateExpression': ' '.join(clauses)}
    if names:
        params['ExpressionAttributeNames'] = names
    if values:
        params['ExpressionAttributeValues'] = values
    if conditions:
        params['ConditionExpression'] = ' AND '.join(conditions)
    return params


def get_item(table_name: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Get a single item from DynamoDB (strongly consistent)."""
    try:
        table = dynamodb.Table(table_name)
        response = table.get_item(Key=key, ConsistentRead=True)
        return response.get('Item')
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error getting item from {table_name}: {e}")
        raise DependencyError(f"Could not read from {table_name}") from e


def put_item(table_name: str, item: Dict[str, Any], key_name: str) -> None:
    """Insert a new item; fails with ConflictError if the key is taken."""
    try:
        table = dynamodb.Table(table_name)
        table.put_item(
            Item=item,
            ConditionExpression='attribute_not_exists(#k)',
            ExpressionAttributeNames={'#k': key_name}
        )
    except ClientError as e:
        if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
            raise ConflictError(f"{key_name} {item.get(key_name)} already exists") from e
        logger.error(f"Error putting item into {table_name}: {e}")
        raise DependencyError(f"Could not write to {table_name}") from e
    except BotoCoreError as e:
        logger.error(f"Error putting item into {table_name}: {e}")
        raise DependencyError(f"Could not write to {table_name}") from e


def query_index(
    table_name: str,
    index_name: str,
    partition_key: str,
    partition_value: Any,
    range_key: Optional[str] = None,
    range_upper: Optional[Any] = None
) -> List[Dict[str, Any]]:
    """
    Query a GSI by partition value, optionally bounded above on the range key.
    Follows LastEvaluatedKey until the result set is exhausted.

    Args:
        table_name: Name of the DynamoDB table
        index_name: GSI name
        partition_key: GSI partition attribute
        partition_value: Value to match
        range_key: GSI sort attribute
        range_upper: Inclusive upper bound for range_key

    Returns:
        List of items matching the query
    """
    condition = Key(partition_key).eq(partition_value)
    if range_key and range_upper is not None:
        condition = condition & Key(range_key).lte(range_upper)

    query_params = {
        'IndexName': index_name,
        'KeyConditionExpression': condition
    }

    items = []
    try:
        table = dynamodb.Table(table_name)
        while True:
            response = table.query(**query_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            query_params['ExclusiveStartKey'] = last_key
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error querying {table_name}/{index_name}: {e}")
        raise DependencyError(f"Could not query {table_name}") from e


def update_if(
    table_name: str,
    key: Dict[str, Any],
    updates: Optional[Dict[str, Any]] = None,
    expected: Optional[Dict[str, Any]] = None,
    remove: Optional[List[str]] = None,
    set_once: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Conditionally update one item and return its new attributes."""
    params = build_update(updates, expected, remove, set_once)
    try:
        table = dynamodb.Table(table_name)
        response = table.update_item(Key=key, ReturnValues='ALL_NEW', **params)
        return response.get('Attributes', {})
    except ClientError as e:
        if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
            raise ConflictError(f"{table_name} {key} changed concurrently") from e
        logger.error(f"Error updating item in {table_name}: {e}")
        raise DependencyError(f"Could not update {table_name}") from e
    except BotoCoreError as e:
        logger.error(f"Error updating item in {table_name}: {e}")
        raise DependencyError(f"Could not update {table_name}") from e


def update_op(
    table_name: str,
    key: Dict[str, Any],
    updates: Optional[Dict[str, Any]] = None,
    expected: Optional[Dict[str, Any]] = None,
    remove: Optional[List[str]] = None,
    set_once: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Describe a conditional update for transact_write."""
    return {
        'action': 'update',
        'table': table_name,
        'key': key,
        'updates': updates or {},
        'expected': expected or {},
        'remove': remove or [],
        'set_once': set_once or {}
    }


def put_op(table_name: str, item: Dict[str, Any], key_name: str) -> Dict[str, Any]:
    """Describe an insert-if-absent for transact_write."""
    return {
        'action': 'put',
        'table': table_name,
        'item': item,
        'key_name': key_name
    }


def _serialize(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: serializer.serialize(v) for k, v in values.items()}


def _to_transact_item(op: Dict[str, Any]) -> Dict[str, Any]:
    if op['action'] == 'put':
        return {
            'Put': {
                'TableName': op['table'],
                'Item': _serialize(op['item']),
                'ConditionExpression': 'attribute_not_exists(#k)',
                'ExpressionAttributeNames': {'#k': op['key_name']}
            }
        }

    params = build_update(op['updates'], op['expected'], op['remove'], op['set_once'])
    if 'ExpressionAttributeValues' in params:
        params['ExpressionAttributeValues'] = _serialize(params['ExpressionAttributeValues'])
    return {
        'Update': {
            'TableName': op['table'],
            'Key': _serialize(op['key']),
            **params
        }
    }


def transact_write(ops: List[Dict[str, Any]]) -> None:
    """
    Apply update_op/put_op descriptions as one all-or-nothing transaction.

    Raises:
        ConflictError: a condition failed (some row already moved on)
        DependencyError: the transaction could not be executed
    """
    if len(ops) > config.MAX_TRANSACTION_ITEMS:
        raise DependencyError(f"Transaction of {len(ops)} items exceeds the DynamoDB limit")

    try:
        dynamodb.meta.client.transact_write_items(
            TransactItems=[_to_transact_item(op) for op in ops]
        )
    except ClientError as e:
        error_code = e.response['Error']['Code']
        if error_code == 'TransactionCanceledException':
            # Cancellation reasons correspond to the TransactItems list order
            reasons = e.response.get('CancellationReasons', [])
            codes = {r.get('Code') for r in reasons}
            if not reasons or codes & {'ConditionalCheckFailed', 'TransactionConflict'}:
                raise ConflictError("Transaction condition failed") from e
        logger.error(f"Transaction error: {e}")
        raise DependencyError("Could not commit transaction") from e
    except BotoCoreError as e:
        logger.error(f"Transaction error: {e}")
        raise DependencyError("Could not commit transaction") from e
