"""Credential selection, token caching and header injection.

Public API:
- AuthConfig, Strategy, AuthHeaderSetting (settings)
- build_backend(), resolve_header_kind() (credential selection)
- CredentialSession (one cache + one backend per client)
- RefreshCoordinator (refresh-on-401)
- AuthHeaderKind, inject() (header injection)
- AzureCloud and scope/authority constants
"""

from .backends import (
    AzureIdentityBackend,
    ChainedBackend,
    CredentialBackend,
    ResolvedToken,
    StaticKeyBackend,
)
from .cache import SAFETY_BUFFER_SECONDS, TokenCache
from .config import AuthConfig, AuthHeaderSetting, Strategy
from .errors import (
    AcquisitionTimeoutError,
    AuthError,
    ConfigurationError,
    CredentialError,
    CredentialUnavailableError,
    DeniedError,
    HeaderError,
    InvalidCertificateError,
    InvalidHeaderNameError,
    InvalidHeaderValueError,
    MissingFieldError,
    NetworkError,
    RefreshFailedError,
    UnauthorizedError,
)
from .factory import DeviceCodePrompt, build_backend, resolve_header_kind
from .headers import AuthHeaderKind, inject
from .refresh import AttemptState, RefreshCoordinator, RequestAttempt
from .scopes import COGNITIVE_SERVICES_SCOPE, AzureCloud
from .session import CredentialSession

__all__ = [
    "AuthConfig",
    "AuthHeaderSetting",
    "Strategy",
    "build_backend",
    "resolve_header_kind",
    "DeviceCodePrompt",
    "CredentialBackend",
    "AzureIdentityBackend",
    "ChainedBackend",
    "StaticKeyBackend",
    "ResolvedToken",
    "TokenCache",
    "SAFETY_BUFFER_SECONDS",
    "CredentialSession",
    "RefreshCoordinator",
    "RequestAttempt",
    "AttemptState",
    "AuthHeaderKind",
    "inject",
    "AzureCloud",
    "COGNITIVE_SERVICES_SCOPE",
    "AuthError",
    "ConfigurationError",
    "MissingFieldError",
    "InvalidCertificateError",
    "CredentialError",
    "CredentialUnavailableError",
    "AcquisitionTimeoutError",
    "NetworkError",
    "DeniedError",
    "HeaderError",
    "InvalidHeaderValueError",
    "InvalidHeaderNameError",
    "UnauthorizedError",
    "RefreshFailedError",
]
