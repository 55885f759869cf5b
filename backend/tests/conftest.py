"""
Shared fixtures: an in-memory table double for shared.dynamo, plus
recorders for the notification relay and the payment gateway.
"""
import copy
import os
import sys
from collections import defaultdict

import pytest

# Add src to path for import
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from shared import dynamo, payments, sqs  # noqa: E402
from shared.config import config  # noqa: E402
from shared.errors import ConflictError  # noqa: E402

NOW = 1717200000  # 2024-06-01T00:00:00Z
DAY = 24 * 60 * 60

REQUESTER = 'requester-1'
CONTRACTOR = 'creator-a'
STRANGER = 'someone-else'
REQUEST_ID = 'req-1'


class FakeTables:
    """
    Stand-in for the shared.dynamo persistence functions.
    Implements the same condition semantics as build_update:
    equality, IN (tuple/list) and attribute_not_exists (None).
    """

    def __init__(self):
        self.tables = defaultdict(dict)
        self.hooks = []

    @staticmethod
    def _id(key):
        return tuple(sorted(key.items()))

    @staticmethod
    def _matches(item, expected):
        for field, value in expected.items():
            if value is None:
                if field in item:
                    return False
            elif isinstance(value, (list, tuple)):
                if item.get(field) not in value:
                    return False
            elif item.get(field) != value:
                return False
        return True

    def _run_hooks(self):
        while self.hooks:
            self.hooks.pop(0)()

    def before_next_write(self, callback):
        """Run callback just before the next write, to simulate a concurrent writer."""
        self.hooks.append(callback)

    # --- shared.dynamo contract ---

    def get_item(self, table_name, key):
        item = self.tables[table_name].get(self._id(key))
        return copy.deepcopy(item) if item else None

    def put_item(self, table_name, item, key_name):
        self._run_hooks()
        key = self._id({key_name: item[key_name]})
        if key in self.tables[table_name]:
            raise ConflictError(f"{key_name} exists")
        self.tables[table_name][key] = copy.deepcopy(item)

    def query_index(self, table_name, index_name, partition_key, partition_value,
                    range_key=None, range_upper=None):
        results = []
        for item in self.tables[table_name].values():
            if item.get(partition_key) != partition_value:
                continue
            if range_key and range_upper is not None:
                if range_key not in item or item[range_key] > range_upper:
                    continue
            results.append(copy.deepcopy(item))
        return results

    def _apply_update(self, table_name, key, updates, remove, set_once):
        item = dict(self.tables[table_name].get(self._id(key)) or key)
        item.update(copy.deepcopy(updates or {}))
        for field, value in (set_once or {}).items():
            item.setdefault(field, value)
        for field in remove or []:
            item.pop(field, None)
        self.tables[table_name][self._id(key)] = item
        return copy.deepcopy(item)

    def update_if(self, table_name, key, updates=None, expected=None, remove=None, set_once=None):
        self._run_hooks()
        current = self.tables[table_name].get(self._id(key)) or {}
        if not self._matches(current, expected or {}):
            raise ConflictError(f"{table_name} {key} changed concurrently")
        return self._apply_update(table_name, key, updates, remove, set_once)

    def transact_write(self, ops):
        self._run_hooks()
        for op in ops:
            table = self.tables[op['table']]
            if op['action'] == 'put':
                if self._id({op['key_name']: op['item'][op['key_name']]}) in table:
                    raise ConflictError("Transaction condition failed")
            elif not self._matches(table.get(self._id(op['key'])) or {}, op['expected']):
                raise ConflictError("Transaction condition failed")
        for op in ops:
            if op['action'] == 'put':
                key = self._id({op['key_name']: op['item'][op['key_name']]})
                self.tables[op['table']][key] = copy.deepcopy(op['item'])
            else:
                self._apply_update(op['table'], op['key'], op['updates'], op['remove'], op['set_once'])

    # --- test helpers ---

    def seed(self, table_name, key_name, item):
        self.tables[table_name][self._id({key_name: item[key_name]})] = copy.deepcopy(item)
        return item

    def all(self, table_name):
        return [copy.deepcopy(i) for i in self.tables[table_name].values()]

    def request(self, request_id=REQUEST_ID):
        return self.get_item(config.WORK_REQUESTS_TABLE, {'requestId': request_id})

    def application(self, application_id):
        return self.get_item(config.APPLICATIONS_TABLE, {'applicationId': application_id})

    def delivery(self, delivery_id):
        return self.get_item(config.DELIVERIES_TABLE, {'deliveryId': delivery_id})

    def cancellation(self, cancellation_id):
        return self.get_item(config.CANCELLATIONS_TABLE, {'cancellationId': cancellation_id})


class FakeGateway:
    """Records refund calls; set .error to make the next calls fail."""

    def __init__(self):
        self.calls = []
        self.error = None

    def refund(self, request_id, payment_reference, reason):
        self.calls.append({'requestId': request_id, 'paymentReference': payment_reference, 'reason': reason})
        if self.error:
            raise self.error
        return f"re_{len(self.calls)}"


@pytest.fixture(autouse=True)
def aws_config(monkeypatch):
    monkeypatch.setattr(config, 'WORK_REQUESTS_TABLE', 'work-requests')
    monkeypatch.setattr(config, 'APPLICATIONS_TABLE', 'applications')
    monkeypatch.setattr(config, 'DELIVERIES_TABLE', 'deliveries')
    monkeypatch.setattr(config, 'CANCELLATIONS_TABLE', 'cancellations')
    monkeypatch.setattr(config, 'NOTIFICATIONS_QUEUE_URL', 'https://sqs.test/notifications')
    monkeypatch.setattr(config, 'REFUND_FUNCTION_NAME', 'payments-refund')
    return config


@pytest.fixture
def tables(monkeypatch):
    fake = FakeTables()
    for name in ('get_item', 'put_item', 'query_index', 'update_if', 'transact_write'):
        monkeypatch.setattr(dynamo, name, getattr(fake, name))
    return fake


@pytest.fixture
def relay(monkeypatch):
    """Captured notifications, in send order."""
    sent = []

    def send_notification(recipient_id, kind, title, body, link):
        sent.append({'recipientId': recipient_id, 'kind': kind, 'title': title, 'body': body, 'link': link})
        return True

    monkeypatch.setattr(sqs, 'send_notification', send_notification)
    return sent


@pytest.fixture
def gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(payments, 'refund', fake.refund)
    return fake


@pytest.fixture
def make_request(tables):
    """Seed a work request in the given status with sensible defaults."""

    def _make(status='open', request_id=REQUEST_ID, **fields):
        item = {
            'requestId': request_id,
            'requesterId': REQUESTER,
            'title': 'Character portrait',
            'status': status,
            'createdAt': str(NOW - 30 * DAY)
        }
        if status != 'open':
            item.update({
                'contractorId': CONTRACTOR,
                'applicationId': 'app-1',
                'finalPrice': 10000,
                'deadline': '2024-06-20',
                'contractedAt': str(NOW - 20 * DAY),
                'applicationsClosed': True
            })
        if status in ('paid', 'delivered', 'completed'):
            item.update({'paidAt': str(NOW - 19 * DAY), 'paymentReference': 'pi_123'})
        item.update(fields)
        return tables.seed(config.WORK_REQUESTS_TABLE, 'requestId', item)

    return _make


@pytest.fixture
def make_delivery(tables):
    def _make(delivery_id='del-1', request_id=REQUEST_ID, status='pending', created_at=NOW - DAY, **fields):
        item = {
            'deliveryId': delivery_id,
            'requestId': request_id,
            'contractorId': CONTRACTOR,
            'status': status,
            'message': 'First draft attached',
            'deliveryLocator': 'https://files.test/draft.png',
            'createdAt': str(created_at)
        }
        item.update(fields)
        return tables.seed(config.DELIVERIES_TABLE, 'deliveryId', item)

    return _make


@pytest.fixture
def make_cancellation(tables):
    def _make(cancellation_id='can-1', request_id=REQUEST_ID, initiator_id=REQUESTER,
              status='pending', created_at=NOW - DAY, **fields):
        item = {
            'cancellationId': cancellation_id,
            'requestId': request_id,
            'initiatorId': initiator_id,
            'reason': 'No longer needed',
            'status': status,
            'overdue': False,
            'createdAt': str(created_at)
        }
        item.update(fields)
        tables.seed(config.CANCELLATIONS_TABLE, 'cancellationId', item)
        if status == 'pending':
            tables.update_if(
                config.WORK_REQUESTS_TABLE, {'requestId': request_id},
                updates={'pendingCancellationId': cancellation_id}
            )
        return item

    return _make
