from __future__ import annotations


class AuthServiceError(Exception):
    pass


class ValidationFailed(AuthServiceError):
    pass


class OtpRejected(AuthServiceError):
    """Verification refused. ``reason`` is for logs and tests, never for clients."""

    NOT_FOUND = "not_found"
    NO_CODE = "no_code"
    MISMATCH = "mismatch"
    EXPIRED = "expired"

    def __init__(self, reason: str):
        super().__init__(f"OTP rejected: {reason}")
        self.reason = reason


class ServiceUnavailable(AuthServiceError):
    pass


class TokenConfigurationError(AuthServiceError):
    pass


class InvalidSessionToken(AuthServiceError):
    pass


class RateLimited(AuthServiceError):
    def __init__(self, retry_after_seconds: int):
        super().__init__(f"Rate limited, retry after {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds


class SmsDeliveryError(AuthServiceError):
    pass


class AuthProviderError(AuthServiceError):
    pass
