"""Domain error taxonomy.

Every rule violation in the engine surfaces as one of these. The API layer
maps them to HTTP responses in a single handler; nothing in the engine
catches them to log and carry on.
"""


class QuoteDeskError(Exception):
    """Base exception for domain-rule errors."""

    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(QuoteDeskError):
    status_code = 404


class InvalidStateTransition(QuoteDeskError):
    status_code = 409


class LockedQuoteMutation(QuoteDeskError):
    status_code = 409


class RevisionNotAllowed(QuoteDeskError):
    status_code = 409


class ConcurrentModification(QuoteDeskError):
    status_code = 409


class ValidationError(QuoteDeskError):
    status_code = 422


class CurrencyRateMissing(ValidationError):
    pass


class Unauthorized(QuoteDeskError):
    status_code = 403


class PaymentVerificationFailed(QuoteDeskError):
    status_code = 402


class InsufficientFunds(QuoteDeskError):
    status_code = 402
