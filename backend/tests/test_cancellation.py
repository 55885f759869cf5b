"""
Tests for the cancellation negotiation protocol and its auto-approval sweep.
"""
import pytest

from conftest import CONTRACTOR, DAY, NOW, REQUEST_ID, REQUESTER, STRANGER
from shared.cancellation import (
    propose_cancellation, respond_cancellation, send_cancellation_warnings, sweep_expired_cancellations
)
from shared.config import config
from shared.effects import dispatch
from shared.errors import ConflictError, DependencyError, ForbiddenError, InvalidStateError, ValidationError


def pending_for(tables, request_id=REQUEST_ID):
    return [
        c for c in tables.all(config.CANCELLATIONS_TABLE)
        if c['requestId'] == request_id and c['status'] == 'pending'
    ]


class TestPropose:

    def test_creates_pending_request(self, tables, make_request):
        make_request('paid')

        cancellation, effects = propose_cancellation(REQUEST_ID, CONTRACTOR, ' unavailable ', now=NOW)

        assert cancellation['status'] == 'pending'
        assert cancellation['reason'] == 'unavailable'
        assert cancellation['initiatorId'] == CONTRACTOR
        stored = tables.request()
        assert stored['status'] == 'paid'
        assert stored['pendingCancellationId'] == cancellation['cancellationId']
        assert [e['payload']['recipientId'] for e in effects] == [REQUESTER]
        assert effects[0]['payload']['kind'] == 'cancellation_requested'

    def test_reason_required(self, tables, make_request):
        make_request('contracted')

        with pytest.raises(ValidationError):
            propose_cancellation(REQUEST_ID, REQUESTER, '', now=NOW)
        assert pending_for(tables) == []

    def test_records_overdue_flag(self, tables, make_request):
        make_request('paid', deadline='2024-05-01')

        cancellation, _ = propose_cancellation(REQUEST_ID, REQUESTER, 'never delivered', now=NOW)

        assert cancellation['overdue'] is True

    def test_only_one_pending_at_a_time(self, tables, make_request):
        make_request('paid')
        propose_cancellation(REQUEST_ID, REQUESTER, 'first', now=NOW)

        with pytest.raises(InvalidStateError):
            propose_cancellation(REQUEST_ID, CONTRACTOR, 'second', now=NOW + 1)
        assert len(pending_for(tables)) == 1

    def test_concurrent_proposals_leave_one_pending(self, tables, make_request):
        make_request('paid')
        tables.before_next_write(lambda: propose_cancellation(REQUEST_ID, CONTRACTOR, 'rival', now=NOW))

        with pytest.raises(ConflictError):
            propose_cancellation(REQUEST_ID, REQUESTER, 'mine', now=NOW)

        pending = pending_for(tables)
        assert len(pending) == 1
        assert pending[0]['reason'] == 'rival'

    def test_new_proposal_allowed_after_rejection(self, tables, make_request):
        make_request('paid')
        first, _ = propose_cancellation(REQUEST_ID, CONTRACTOR, 'unavailable', now=NOW)
        respond_cancellation(first['cancellationId'], REQUESTER, 'reject', now=NOW + 1)

        second, _ = propose_cancellation(REQUEST_ID, CONTRACTOR, 'still unavailable', now=NOW + 2)

        assert tables.request()['pendingCancellationId'] == second['cancellationId']


class TestRespond:

    def test_reject_keeps_contract(self, tables, make_request):
        """Scenario 4."""
        make_request('paid')
        cancellation, _ = propose_cancellation(REQUEST_ID, CONTRACTOR, 'unavailable', now=NOW)

        work_request, effects = respond_cancellation(cancellation['cancellationId'], REQUESTER, 'reject', now=NOW + 5)

        stored_cancellation = tables.cancellation(cancellation['cancellationId'])
        assert stored_cancellation['status'] == 'rejected'
        assert stored_cancellation['resolvedAt'] == str(NOW + 5)
        stored = tables.request()
        assert stored['status'] == 'paid'
        assert 'pendingCancellationId' not in stored
        assert work_request['status'] == 'paid'
        assert [e['payload']['recipientId'] for e in effects] == [CONTRACTOR]
        assert effects[0]['payload']['kind'] == 'cancellation_rejected'

    def test_approve_cancels_and_refunds(self, tables, make_request):
        make_request('paid', paymentReference='pi_555')
        cancellation, _ = propose_cancellation(REQUEST_ID, REQUESTER, 'no longer needed', now=NOW)

        work_request, effects = respond_cancellation(cancellation['cancellationId'], CONTRACTOR, 'approve', now=NOW + 5)

        assert tables.cancellation(cancellation['cancellationId'])['status'] == 'approved'
        assert tables.cancellation(cancellation['cancellationId'])['resolution'] == 'responded'
        stored = tables.request()
        assert stored['status'] == 'cancelled'
        assert stored['cancelledAt'] == str(NOW + 5)
        assert 'pendingCancellationId' not in stored
        assert work_request['status'] == 'cancelled'
        assert [e['kind'] for e in effects] == ['notify', 'refund']
        assert effects[0]['payload']['recipientId'] == REQUESTER
        assert effects[1]['payload']['paymentReference'] == 'pi_555'

    def test_approve_without_payment_has_no_refund(self, tables, make_request):
        make_request('contracted')
        cancellation, _ = propose_cancellation(REQUEST_ID, REQUESTER, 'changed plans', now=NOW)

        _, effects = respond_cancellation(cancellation['cancellationId'], CONTRACTOR, 'approve', now=NOW + 5)

        assert [e['kind'] for e in effects] == ['notify']
        assert tables.request()['status'] == 'cancelled'

    def test_initiator_cannot_respond(self, tables, make_request):
        make_request('paid')
        cancellation, _ = propose_cancellation(REQUEST_ID, REQUESTER, 'no longer needed', now=NOW)

        with pytest.raises(ForbiddenError):
            respond_cancellation(cancellation['cancellationId'], REQUESTER, 'approve', now=NOW + 5)
        with pytest.raises(ForbiddenError):
            respond_cancellation(cancellation['cancellationId'], STRANGER, 'approve', now=NOW + 5)
        assert tables.cancellation(cancellation['cancellationId'])['status'] == 'pending'

    def test_already_resolved(self, tables, make_request, make_cancellation):
        make_request('paid')
        make_cancellation('can-1', status='rejected')

        with pytest.raises(InvalidStateError):
            respond_cancellation('can-1', CONTRACTOR, 'approve', now=NOW)

    def test_unknown_decision(self, tables, make_request, make_cancellation):
        make_request('paid')
        make_cancellation('can-1')

        with pytest.raises(ValidationError):
            respond_cancellation('can-1', CONTRACTOR, 'later', now=NOW)


class TestSweep:

    def test_expired_request_is_auto_approved(self, tables, make_request, relay, gateway):
        """Scenario 5."""
        make_request('paid', request_id='req-2', paymentReference='pi_999')
        cancellation, _ = propose_cancellation('req-2', REQUESTER, 'no longer needed', now=NOW)

        result = sweep_expired_cancellations(NOW + 8 * DAY)

        assert result['approved'] == 1
        assert result['failed'] == []
        stored_cancellation = tables.cancellation(cancellation['cancellationId'])
        assert stored_cancellation['status'] == 'approved'
        assert stored_cancellation['resolution'] == 'no_response'
        stored = tables.request('req-2')
        assert stored['status'] == 'cancelled'
        assert stored['refundStatus'] == 'Refunded'
        assert stored['refundId'] == 're_1'
        assert gateway.calls[0]['paymentReference'] == 'pi_999'
        assert relay[0]['recipientId'] == REQUESTER
        assert {n['recipientId'] for n in relay} == {REQUESTER, CONTRACTOR}

    def test_window_boundary(self, tables, make_request, make_cancellation, relay, gateway):
        make_request('paid', request_id='req-old')
        make_request('paid', request_id='req-new')
        make_cancellation('can-old', request_id='req-old', created_at=NOW - 7 * DAY)
        make_cancellation('can-new', request_id='req-new', created_at=NOW - 7 * DAY + 1)

        result = sweep_expired_cancellations(NOW)

        assert result['approved'] == 1
        assert tables.cancellation('can-old')['status'] == 'approved'
        assert tables.cancellation('can-new')['status'] == 'pending'

    def test_second_run_approves_nothing(self, tables, make_request, make_cancellation, relay, gateway):
        make_request('paid', request_id='req-a')
        make_request('contracted', request_id='req-b')
        make_cancellation('can-a', request_id='req-a', created_at=NOW - 9 * DAY)
        make_cancellation('can-b', request_id='req-b', initiator_id=CONTRACTOR, created_at=NOW - 10 * DAY)

        first = sweep_expired_cancellations(NOW)
        second = sweep_expired_cancellations(NOW + 60)

        assert first['approved'] == 2
        assert second['approved'] == 0
        assert second['failed'] == []
        assert len(gateway.calls) == 1
        assert len(relay) == 4

    def test_one_failure_does_not_stop_the_batch(self, tables, make_request, make_cancellation, relay, gateway):
        make_request('paid', request_id='req-a')
        make_cancellation('can-a', request_id='req-a', created_at=NOW - 9 * DAY)
        # Orphaned cancellation whose work request is gone
        tables.seed(config.CANCELLATIONS_TABLE, 'cancellationId', {
            'cancellationId': 'can-orphan', 'requestId': 'req-missing', 'initiatorId': REQUESTER,
            'reason': 'x', 'status': 'pending', 'createdAt': str(NOW - 9 * DAY)
        })

        result = sweep_expired_cancellations(NOW)

        assert result['approved'] == 1
        assert [f['id'] for f in result['failed']] == ['can-orphan']
        assert tables.request('req-a')['status'] == 'cancelled'

    def test_refund_failure_is_recorded_not_rolled_back(self, tables, make_request, make_cancellation,
                                                        relay, gateway):
        make_request('paid')
        make_cancellation('can-1', created_at=NOW - 9 * DAY)
        gateway.error = DependencyError("card processor unavailable")

        result = sweep_expired_cancellations(NOW)

        assert result['approved'] == 1
        assert result['failed'][0]['id'] == 'can-1'
        assert 'refund' in result['failed'][0]['error']
        stored = tables.request()
        assert stored['status'] == 'cancelled'
        assert stored['refundStatus'] == 'Failed'
        assert stored['refundError'] == 'card processor unavailable'

    def test_human_response_wins_race(self, tables, make_request, make_cancellation, relay, gateway):
        """Respond commits between the sweep's read and write: the sweep skips."""
        make_request('paid')
        make_cancellation('can-1', created_at=NOW - 9 * DAY)

        def human():
            _, effects = respond_cancellation('can-1', CONTRACTOR, 'approve', now=NOW)
            dispatch(effects)

        tables.before_next_write(human)
        result = sweep_expired_cancellations(NOW)

        assert result['approved'] == 0
        assert result['skipped'] == 1
        assert tables.cancellation('can-1')['status'] == 'approved'
        assert tables.cancellation('can-1')['resolution'] == 'responded'
        assert len(gateway.calls) == 1
        assert [n['recipientId'] for n in relay] == [REQUESTER]

    def test_sweep_wins_race(self, tables, make_request, make_cancellation, relay, gateway):
        """The sweep commits between respond's read and write: respond conflicts."""
        make_request('paid')
        make_cancellation('can-1', created_at=NOW - 9 * DAY)

        sweep_results = []
        tables.before_next_write(lambda: sweep_results.append(sweep_expired_cancellations(NOW)))

        with pytest.raises(ConflictError):
            respond_cancellation('can-1', CONTRACTOR, 'approve', now=NOW)

        assert sweep_results[0]['approved'] == 1
        assert tables.cancellation('can-1')['resolution'] == 'no_response'
        assert len(gateway.calls) == 1
        assert [n['recipientId'] for n in relay if n['kind'] == 'cancelled'].count(REQUESTER) == 1

    def test_warning_sent_once_to_responder(self, tables, make_request, make_cancellation, relay):
        make_request('paid')
        make_cancellation('can-1', initiator_id=CONTRACTOR, created_at=NOW - 4 * DAY)

        first = send_cancellation_warnings(NOW)
        second = send_cancellation_warnings(NOW + 3600)

        assert first['warned'] == 1
        assert second['warned'] == 0
        assert [(n['recipientId'], n['kind']) for n in relay] == [(REQUESTER, 'auto_approval_warning')]
