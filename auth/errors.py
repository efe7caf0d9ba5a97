"""
auth/errors.py -- Typed failures raised by the auth engine.

Every business failure is an AuthError subclass carrying a stable `code`.
The request layer maps codes to transport responses; it never inspects
messages. InfrastructureError is not an AuthError: store and
hashing faults surface as a generic failure.

Credential failures share one message so a caller cannot tell a wrong
password from an unknown, inactive, or deleted account.
"""

from __future__ import annotations


class InfrastructureError(Exception):
    """Store or hashing fault. Not a business outcome."""


class AuthError(Exception):
    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class DuplicateEmailError(AuthError):
    code = "duplicate_email"
    message = "Email already in use."


class InvalidCredentialsError(AuthError):
    code = "invalid_credentials"
    message = "Invalid credentials."


class InvalidTokenError(AuthError):
    code = "invalid_token"
    message = "Invalid token."


class SessionExpiredError(AuthError):
    code = "session_expired"
    message = "Session expired. Please log in again."


class ReuseDetectedError(AuthError):
    """A rotated-away refresh token was presented.

    By the time this is raised every session of the account has been revoked.
    """

    code = "reuse_detected"
    message = "Refresh token reuse detected. All sessions have been revoked."


class InvalidOrExpiredTokenError(AuthError):
    code = "invalid_or_expired_token"
    message = "Invalid or expired token."


class AccountNotFoundError(AuthError):
    code = "not_found"
    message = "Account not found."
