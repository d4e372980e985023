"""
Business errors raised by the onboarding core.
Each carries a stable `code`; the HTTP layer maps codes to status codes in one place (main.py).
"""
from __future__ import annotations


class OnboardingError(Exception):
    """Base class for all business-meaning-bearing errors."""

    code = "ONBOARDING_ERROR"
    # When set, the request session commits pending writes before the error propagates.
    commit_on_failure = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidStateTransitionError(OnboardingError):
    """Precondition on the current application status was violated. Never retried."""

    code = "INVALID_STATE_TRANSITION"


class BusinessRuleViolationError(OnboardingError):
    code = "BUSINESS_RULE_VIOLATION"


class DuplicateIdentityError(OnboardingError):
    code = "DUPLICATE_IDENTITY"

    def __init__(self, message: str, duplicate_type: str):
        super().__init__(message)
        self.duplicate_type = duplicate_type


class RateLimitExceededError(OnboardingError):
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, resource: str, limit: int, window_ms: int, retry_after_ms: int):
        super().__init__(
            f"Rate limit exceeded for {resource}. Limit: {limit} requests per {window_ms} ms. "
            f"Try again in {retry_after_ms} ms."
        )
        self.resource = resource
        self.limit = limit
        self.window_ms = window_ms
        self.retry_after_ms = retry_after_ms
        self.remaining = 0

    @property
    def retry_after_seconds(self) -> int:
        return max(1, -(-self.retry_after_ms // 1000))


class TokenInvalidError(OnboardingError):
    """Expired, malformed or tampered token. Callers treat all three as unauthenticated."""

    code = "TOKEN_INVALID"


class AuthenticationError(OnboardingError):
    code = "AUTHENTICATION_FAILED"


class SessionExpiredError(AuthenticationError):
    """Staff session is unknown, terminated, timed out or used from a different client.

    Termination of the session must still be persisted.
    """

    code = "SESSION_INVALID"
    commit_on_failure = True


class GenerationExhaustedError(OnboardingError):
    """Unique account number could not be produced within the retry ceiling."""

    code = "GENERATION_EXHAUSTED"


class ResourceNotFoundError(OnboardingError):
    code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: object):
        super().__init__(f"{resource_type} with ID {resource_id} not found")
        self.resource_type = resource_type
        self.resource_id = str(resource_id)


class ConcurrencyConflictError(OnboardingError):
    """Optimistic version check failed at save time."""

    code = "CONCURRENT_MODIFICATION"


class OtpExpiredError(OnboardingError):
    code = "OTP_EXPIRED"
    commit_on_failure = True


class OtpMaxAttemptsError(OnboardingError):
    code = "OTP_MAX_ATTEMPTS"
    commit_on_failure = True


class InvalidOtpError(BusinessRuleViolationError):
    """Wrong code; the incremented attempt counter must still be persisted."""

    code = "INVALID_OTP"
    commit_on_failure = True
