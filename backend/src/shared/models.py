"""
Data models and status constants for the commissions backend.
Based on the work-request lifecycle: open → contracted → paid → delivered → completed,
with cancelled reachable from contracted/paid and delivered looping back to paid on rejection.
"""


class WorkRequestStatus:
    """Work request lifecycle statuses."""
    OPEN = 'open'
    CONTRACTED = 'contracted'
    PAID = 'paid'
    DELIVERED = 'delivered'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    TERMINAL = (COMPLETED, CANCELLED)
    CANCELLABLE = (CONTRACTED, PAID)


class ApplicationStatus:
    """Applicant statuses for an open work request."""
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'


class DeliveryStatus:
    """Delivery review statuses."""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class CancellationStatus:
    """Cancellation request statuses."""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class CancellationResolution:
    """How a cancellation request left pending."""
    RESPONDED = 'responded'
    NO_RESPONSE = 'no_response'


class RefundStatus:
    """Refund bookkeeping written on the work request."""
    REFUNDED = 'Refunded'
    FAILED = 'Failed'


class Decision:
    """Counterparty decisions on deliveries and cancellations."""
    APPROVE = 'approve'
    REJECT = 'reject'

    ALL = (APPROVE, REJECT)


class Role:
    """Capability of a profile with respect to one work request."""
    REQUESTER = 'requester'
    CONTRACTOR = 'contractor'
    NONE = None


class Action:
    """Lifecycle actions that move a work request between statuses."""
    ACCEPT_APPLICATION = 'accept_application'
    PAY = 'pay'
    SUBMIT_DELIVERY = 'submit_delivery'
    APPROVE_DELIVERY = 'approve_delivery'
    REJECT_DELIVERY = 'reject_delivery'
    CANCEL = 'cancel'


# (current status, action) -> next status. Anything not listed is illegal.
TRANSITIONS = {
    (WorkRequestStatus.OPEN, Action.ACCEPT_APPLICATION): WorkRequestStatus.CONTRACTED,
    (WorkRequestStatus.CONTRACTED, Action.PAY): WorkRequestStatus.PAID,
    (WorkRequestStatus.CONTRACTED, Action.CANCEL): WorkRequestStatus.CANCELLED,
    (WorkRequestStatus.PAID, Action.SUBMIT_DELIVERY): WorkRequestStatus.DELIVERED,
    (WorkRequestStatus.PAID, Action.CANCEL): WorkRequestStatus.CANCELLED,
    (WorkRequestStatus.DELIVERED, Action.APPROVE_DELIVERY): WorkRequestStatus.COMPLETED,
    (WorkRequestStatus.DELIVERED, Action.REJECT_DELIVERY): WorkRequestStatus.PAID,
}

# Role allowed to trigger each action; None means either party.
ACTION_ROLES = {
    Action.ACCEPT_APPLICATION: Role.REQUESTER,
    Action.PAY: Role.REQUESTER,
    Action.SUBMIT_DELIVERY: Role.CONTRACTOR,
    Action.APPROVE_DELIVERY: Role.REQUESTER,
    Action.REJECT_DELIVERY: Role.REQUESTER,
    Action.CANCEL: None,
}


class NotificationKind:
    """Notification types relayed to the counterparty."""
    ACCEPTED = 'accepted'
    PAID = 'paid'
    DELIVERED = 'delivered'
    DELIVERY_REJECTED = 'delivery_rejected'
    COMPLETED = 'completed'
    CANCELLATION_REQUESTED = 'cancellation_requested'
    CANCELLATION_REJECTED = 'cancellation_rejected'
    CANCELLED = 'cancelled'
    AUTO_APPROVAL_WARNING = 'auto_approval_warning'
