"""
Service-layer exceptions.
Each carries the HTTP status the API layer answers with; the message is user-facing.
"""


class ServiceError(Exception):
    """Base class for expected, caller-recoverable failures."""

    status_code = 400


class InterestError(ServiceError):
    pass


class InterestNotFoundError(InterestError):
    status_code = 404


class InterestForbiddenError(InterestError):
    status_code = 403


class InterestConflictError(InterestError):
    status_code = 409


class InterestExpiredError(InterestError):
    status_code = 410


class InterestLimitError(InterestError):
    status_code = 429


class InterestValidationError(InterestError):
    status_code = 400


class NotificationNotFoundError(ServiceError):
    status_code = 404


class UnknownNotificationTypeError(ValueError):
    """Programmer error: a notification type with no preference category."""
