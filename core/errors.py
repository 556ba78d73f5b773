"""
core/errors.py -- Error taxonomy shared by every layer.

Every failure is raised as a ServiceError subclass at the point where it is
detected. The subclass fixes the kind (client or server) and the HTTP status;
the caller supplies the service number and a human-readable message. Layers
above let the error pass through unchanged -- the API exception handler is
the only place that turns it into a response.

Wire code: "<service>-<kind>", e.g. "1-1" is an auth client error and
"3-2" a dog owner server error.

Underlying causes are attached with `raise ... from exc` so the handler can
expose them as `trace` in debug mode.

Layer rule: core/ is the kernel. No imports from api/, auth/, or accounts/.
"""

from __future__ import annotations

from enum import IntEnum


class Service(IntEnum):
    """Functional area an error belongs to (first half of the wire code)."""

    OTHER = 0
    AUTH = 1
    DOG_OWNER = 3
    ORG = 6
    DOGRUN_MANAGER = 7


class ErrorKind(IntEnum):
    """Who caused the failure (second half of the wire code)."""

    CLIENT = 1
    SERVER = 2


class ServiceError(Exception):
    """Base class for all classified failures."""

    kind: ErrorKind = ErrorKind.SERVER
    status_code: int = 500
    default_service: Service = Service.OTHER
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, *, service: Service | None = None) -> None:
        self.message = message or self.default_message
        self.service = service if service is not None else self.default_service
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return f"{int(self.service)}-{int(self.kind)}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ClientError(ServiceError):
    kind = ErrorKind.CLIENT
    status_code = 400
    default_message = "The request could not be processed."


class ServerError(ServiceError):
    kind = ErrorKind.SERVER
    status_code = 500


# ---------------------------------------------------------------------------
# Client errors
# ---------------------------------------------------------------------------


class InvalidIdentifier(ClientError):
    """Exactly one of email / phone number must be supplied."""

    default_message = "Provide either an email address or a phone number, not both."


class AlreadyRegistered(ClientError):
    status_code = 409
    default_message = "This identifier is already registered."


class CredentialNotFound(ClientError):
    status_code = 401
    default_service = Service.AUTH
    default_message = "Invalid credentials."


class AuthenticationFailed(ClientError):
    status_code = 401
    default_service = Service.AUTH
    default_message = "Invalid credentials."


class AccountNotFound(ClientError):
    status_code = 404
    default_message = "Account not found."


class TokenMissing(ClientError):
    status_code = 401
    default_service = Service.AUTH
    default_message = "Authentication required."


class TokenInvalid(ClientError):
    status_code = 401
    default_service = Service.AUTH
    default_message = "Invalid token."


class TokenExpired(ClientError):
    status_code = 401
    default_service = Service.AUTH
    default_message = "Token has expired."


class SessionRevoked(ClientError):
    status_code = 401
    default_service = Service.AUTH
    default_message = "Session is no longer valid."


class Forbidden(ClientError):
    status_code = 403
    default_service = Service.AUTH
    default_message = "This feature is not available for your account."


# ---------------------------------------------------------------------------
# Server errors
# ---------------------------------------------------------------------------


class HashingFailed(ServerError):
    default_message = "Failed to hash password."


class SigningFailed(ServerError):
    default_service = Service.AUTH
    default_message = "Failed to sign token."


class SessionIdGenerationFailed(ServerError):
    default_service = Service.AUTH
    default_message = "Failed to generate session id."


class StoreFailure(ServerError):
    default_message = "Database operation failed."


class DataInconsistency(ServerError):
    default_service = Service.AUTH
    default_message = "Stored data is inconsistent."


class UnexpectedError(ServerError):
    pass
