"""
Typed errors raised by lifecycle operations.
Handlers translate them into API Gateway responses using status_code.
"""


class LifecycleError(Exception):
    """Base class for errors surfaced to the caller."""
    status_code = 500
    code = 'error'

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {'error': self.code, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return body


class InvalidStateError(LifecycleError):
    """The requested transition does not apply to the current status."""
    status_code = 409
    code = 'invalid_state'


class ForbiddenError(LifecycleError):
    """Caller is not a party, or is the wrong party, for this action."""
    status_code = 403
    code = 'forbidden'


class ValidationError(LifecycleError):
    """Missing or malformed input."""
    status_code = 400
    code = 'validation_error'


class NotFoundError(LifecycleError):
    status_code = 404
    code = 'not_found'


class ConflictError(LifecycleError):
    """A conditional write lost to a concurrent transition."""
    status_code = 409
    code = 'conflict'


class DependencyError(LifecycleError):
    """Persistence, payment or notification collaborator failed."""
    status_code = 502
    code = 'dependency_error'
