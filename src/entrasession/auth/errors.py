"""Error taxonomy for credential selection, token acquisition and injection.

Every exception carries a ``retryable`` flag so that the HTTP layer can
decide on its own backoff without inspecting concrete types. Messages never
contain secret values.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all authentication errors raised by this package."""

    retryable: bool = False


class ConfigurationError(AuthError, ValueError):
    """A required field is missing or invalid for the selected strategy.

    Detected when the backend is built, before any network activity.
    """

    def __init__(self, field: str, mode: str, message: str | None = None) -> None:
        self.field = field
        self.mode = mode
        detail = message or "is invalid"
        super().__init__(f"{mode}: '{field}' {detail}")


class MissingFieldError(ConfigurationError):
    """A field required by the selected strategy is not set."""

    def __init__(self, field: str, mode: str, hint: str | None = None) -> None:
        message = "is required"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(field, mode, message)


class InvalidCertificateError(ConfigurationError):
    """The configured certificate could not be read or parsed."""


class CredentialError(AuthError):
    """Base class for failures while acquiring a token from a backend."""


class CredentialUnavailableError(CredentialError):
    """The backend cannot be used in this environment.

    Only skipped silently inside the default fallback chain.
    """


class NetworkError(CredentialError, OSError):
    """Transient failure talking to the identity backend (includes timeouts)."""

    retryable = True


class AcquisitionTimeoutError(NetworkError):
    """A backend call did not finish within its timeout.

    The call is abandoned but may still be running, so the refresh that
    saw it does not start another one.
    """


class DeniedError(CredentialError):
    """The backend was reached but rejected the credential."""


class HeaderError(AuthError):
    """The authentication header could not be built."""


class InvalidHeaderValueError(HeaderError):
    """The secret contains characters that are illegal in a header value."""


class InvalidHeaderNameError(HeaderError, ValueError):
    """A custom header name is not a valid HTTP token."""


class UnauthorizedError(AuthError):
    """The request was still unauthorized after the allowed refresh."""

    def __init__(self, message: str, status_code: int = 401) -> None:
        self.status_code = status_code
        super().__init__(message)


class RefreshFailedError(AuthError):
    """Refreshing the token failed permanently; do not retry."""
