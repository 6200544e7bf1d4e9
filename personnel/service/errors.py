from __future__ import annotations

from enum import Enum
from typing import Optional


class AuthErrorKind(str, Enum):
    """Closed set of authentication/authorization failure kinds.

    Callers branch on ``exc.kind``; messages are for humans only.
    """

    INVALID_CREDENTIALS = "invalid_credentials"
    MISSING_AUTHORIZATION = "missing_authorization"
    MALFORMED_AUTHORIZATION = "malformed_authorization"
    INVALID_TOKEN = "invalid_token"
    TOKEN_REVOKED = "token_revoked"
    FORBIDDEN = "forbidden"
    INFRASTRUCTURE = "infrastructure"


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP status_code and a stable
    error_code:
    - validation_error (400)
    - unauthorized (401)
    - forbidden (403)
    - not_found (404)
    - conflict (409)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "validation_error"
    kind: Optional[AuthErrorKind] = None

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}

    @property
    def public_message(self) -> str:
        """Message safe to return to the client."""
        return self.message


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401).

    Umbrella for every request-authentication failure. The concrete reason
    stays in ``message``/``kind`` for logs; clients only see "unauthorized".
    """
    status_code = 401
    error_code = "unauthorized"

    def __init__(self, message: str, *, kind: AuthErrorKind, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.kind = kind

    @property
    def public_message(self) -> str:
        return "unauthorized"


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password; never says which."""

    def __init__(self, message: str = "invalid credentials", **kwargs) -> None:
        super().__init__(message, kind=AuthErrorKind.INVALID_CREDENTIALS, **kwargs)

    @property
    def public_message(self) -> str:
        return "invalid credentials"


class InvalidTokenError(AuthenticationError):
    """Malformed, mis-signed or expired token."""

    def __init__(self, message: str = "invalid token", **kwargs) -> None:
        super().__init__(message, kind=AuthErrorKind.INVALID_TOKEN, **kwargs)


class TokenRevokedError(AuthenticationError):
    """Token has no live cache entry (logged out or cache TTL elapsed)."""

    def __init__(self, message: str = "token revoked", **kwargs) -> None:
        super().__init__(message, kind=AuthErrorKind.TOKEN_REVOKED, **kwargs)


class ForbiddenError(ServiceError):
    """Access denied - insufficient permissions (403)."""
    status_code = 403
    error_code = "forbidden"
    kind = AuthErrorKind.FORBIDDEN


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """Resource conflict, e.g., duplicate creation (409)."""
    status_code = 409
    error_code = "conflict"


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"

    @property
    def public_message(self) -> str:
        return "internal server error"


class InfrastructureError(ServerError):
    """Credential store or session cache unreachable or erroring."""
    kind = AuthErrorKind.INFRASTRUCTURE


__all__ = [
    "AuthErrorKind",
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "TokenRevokedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "ServerError",
    "InfrastructureError",
]
