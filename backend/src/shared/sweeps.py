"""
Batch runner shared by the scheduled sweeps.
One item's failure never stops the batch; it is logged and reported.
"""
from typing import Any, Callable, Dict, List, Optional
from . import effects
from .errors import ConflictError
from .logging import logger


def run_batch(
    label: str,
    items: List[Dict[str, Any]],
    id_key: str,
    process: Callable[[Dict[str, Any]], Optional[List[Dict[str, Any]]]]
) -> Dict[str, Any]:
    """
    Apply process() to every item and dispatch the effects it returns.

    process() returns None to skip an item that no longer qualifies. A
    ConflictError means a concurrent writer got there first and is also a
    skip, with no effects dispatched.

    Returns:
        {'checked': n, 'processed': n, 'skipped': n, 'failed': [{'id', 'error'}]}
    """
    result = {'checked': len(items), 'processed': 0, 'skipped': 0, 'failed': []}

    for item in items:
        item_id = item.get(id_key)
        try:
            item_effects = process(item)
        except ConflictError:
            logger.info(f"{label} {item_id} changed concurrently, skipping")
            result['skipped'] += 1
            continue
        except Exception as e:
            logger.exception(f"Error processing {label} {item_id}")
            result['failed'].append({'id': item_id, 'error': str(e)})
            continue

        if item_effects is None:
            result['skipped'] += 1
            continue

        result['processed'] += 1
        for warning in effects.dispatch(item_effects):
            result['failed'].append({'id': item_id, 'error': warning})

    logger.info(
        f"{label} sweep: {result['processed']} processed, {result['skipped']} skipped, "
        f"{len(result['failed'])} failures out of {result['checked']}"
    )
    return result
