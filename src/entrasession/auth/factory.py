from __future__ import annotations

import logging
import os
import re
from typing import Callable

from azure.identity import (
    AzureCliCredential,
    CertificateCredential,
    ClientSecretCredential,
    DeviceCodeCredential,
    EnvironmentCredential,
    ManagedIdentityCredential,
)

from .backends import (
    AzureIdentityBackend,
    ChainedBackend,
    CredentialBackend,
    StaticKeyBackend,
)
from .certificate import load_certificate
from .config import AuthConfig, AuthHeaderSetting, Strategy
from .errors import ConfigurationError, InvalidHeaderNameError, MissingFieldError
from .headers import AuthHeaderKind

logger = logging.getLogger(__name__)

ENV_TENANT_ID = "AZURE_TENANT_ID"
ENV_CLIENT_ID = "AZURE_CLIENT_ID"
ENV_CLIENT_SECRET = "AZURE_CLIENT_SECRET"
ENV_CLIENT_CERTIFICATE_PATH = "AZURE_CLIENT_CERTIFICATE_PATH"
ENV_API_KEY = "AZURE_OPENAI_API_KEY"

# Same character set azure-identity accepts for a tenant
_TENANT_ID = re.compile(r"[A-Za-z0-9.\-]+")

DeviceCodePrompt = Callable[[str, str], None]
"""Receives ``(verification_uri, user_code)`` before polling starts."""


def _log_device_code(verification_uri: str, user_code: str) -> None:
    logger.warning(
        "To sign in, open %s and enter the code %s", verification_uri, user_code
    )


def _from_env(value: str | None, env_var: str) -> str | None:
    """Explicit value first, then the environment; blank counts as unset."""
    if value:
        return value
    env_value = os.environ.get(env_var, "").strip()
    return env_value or None


def _require(
    value: str | None, field: str, mode: Strategy, hint: str | None = None
) -> str:
    if not value:
        raise MissingFieldError(field, mode.value, hint)
    return value


def _check_tenant(
    tenant_id: str | None, mode: Strategy, field: str = "tenant_id"
) -> str | None:
    """Reject tenant IDs the azure-identity constructors would refuse."""
    if tenant_id is not None and not _TENANT_ID.fullmatch(tenant_id):
        raise ConfigurationError(
            field,
            mode.value,
            "is not a valid tenant ID (letters, digits, '-' and '.' only)",
        )
    return tenant_id


def _device_code_backend(
    tenant_id: str | None,
    client_id: str | None,
    cfg: AuthConfig,
    prompt: DeviceCodePrompt,
) -> AzureIdentityBackend:
    kwargs = {}
    if tenant_id:
        kwargs["tenant_id"] = tenant_id
    if client_id:
        kwargs["client_id"] = client_id
    credential = DeviceCodeCredential(
        authority=cfg.effective_authority,
        prompt_callback=lambda uri, code, _expires_on: prompt(uri, code),
        timeout=int(cfg.device_code_timeout),
        **kwargs,
    )
    return AzureIdentityBackend(
        "device_code", credential, timeout=cfg.device_code_timeout
    )


def _managed_identity_backend(client_id: str | None) -> AzureIdentityBackend:
    return AzureIdentityBackend(
        "managed_identity", ManagedIdentityCredential(client_id=client_id)
    )


def _cli_backend(cfg: AuthConfig) -> AzureIdentityBackend:
    return AzureIdentityBackend(
        "azure_cli",
        AzureCliCredential(process_timeout=int(cfg.acquire_timeout)),
    )


def _environment_backend(cfg: AuthConfig) -> AzureIdentityBackend:
    _check_tenant(os.environ.get(ENV_TENANT_ID), cfg.strategy, ENV_TENANT_ID)
    return AzureIdentityBackend(
        "environment", EnvironmentCredential(authority=cfg.effective_authority)
    )


def build_backend(
    config: AuthConfig | None = None,
    *,
    device_code_callback: DeviceCodePrompt | None = None,
) -> CredentialBackend:
    """Construct the :class:`CredentialBackend` selected by ``config``.

    All required fields are checked here, before any network activity. A
    client certificate is read and parsed immediately.

    Args:
        config: Auth configuration. If ``None``, settings are read from the
            environment and the default chain is used unless a strategy is set.
        device_code_callback: Receives the verification URL and user code
            for the device code flow. In ``default`` mode the device code
            link is only part of the chain when a callback is given.

    Returns:
        A backend bound to the selected strategy.

    Raises:
        ConfigurationError: A field required by the strategy is missing or
            invalid; the message names the field and the strategy.
    """
    cfg = config or AuthConfig()
    mode = cfg.strategy
    authority = cfg.effective_authority
    logger.debug("Building %s credential backend", mode.value)

    match mode:
        case Strategy.DEVICE_CODE:
            return _device_code_backend(
                _check_tenant(_require(cfg.tenant_id, "tenant_id", mode), mode),
                _require(cfg.client_id, "client_id", mode),
                cfg,
                device_code_callback or _log_device_code,
            )
        case Strategy.MANAGED_IDENTITY:
            return _managed_identity_backend(cfg.client_id)
        case Strategy.CLIENT_SECRET:
            tenant_id = _check_tenant(_require(cfg.tenant_id, "tenant_id", mode), mode)
            client_id = _require(cfg.client_id, "client_id", mode)
            client_secret = _require(
                _from_env(
                    cfg.client_secret.get_secret_value() if cfg.client_secret else None,
                    ENV_CLIENT_SECRET,
                ),
                "client_secret",
                mode,
                f"or set {ENV_CLIENT_SECRET}",
            )
            return AzureIdentityBackend(
                "client_secret",
                ClientSecretCredential(
                    tenant_id=tenant_id,
                    client_id=client_id,
                    client_secret=client_secret,
                    authority=authority,
                ),
            )
        case Strategy.CLIENT_CERTIFICATE:
            tenant_id = _check_tenant(_require(cfg.tenant_id, "tenant_id", mode), mode)
            client_id = _require(cfg.client_id, "client_id", mode)
            if cfg.certificate_path is None:
                raise MissingFieldError("certificate_path", mode.value)
            password = (
                cfg.certificate_password.get_secret_value()
                if cfg.certificate_password
                else None
            )
            certificate = load_certificate(cfg.certificate_path, password)
            logger.debug("Loaded client certificate %s", certificate.thumbprint)
            return AzureIdentityBackend(
                "client_certificate",
                CertificateCredential(
                    tenant_id=tenant_id,
                    client_id=client_id,
                    certificate_data=certificate.data,
                    password=certificate.password,
                    authority=authority,
                ),
            )
        case Strategy.CLI:
            return _cli_backend(cfg)
        case Strategy.ENVIRONMENT:
            _require(os.environ.get(ENV_TENANT_ID), ENV_TENANT_ID, mode)
            _require(os.environ.get(ENV_CLIENT_ID), ENV_CLIENT_ID, mode)
            if not (
                os.environ.get(ENV_CLIENT_SECRET)
                or os.environ.get(ENV_CLIENT_CERTIFICATE_PATH)
            ):
                raise MissingFieldError(
                    ENV_CLIENT_SECRET,
                    mode.value,
                    f"or set {ENV_CLIENT_CERTIFICATE_PATH}",
                )
            return _environment_backend(cfg)
        case Strategy.API_KEY:
            key = _require(
                _from_env(
                    cfg.api_key.get_secret_value() if cfg.api_key else None,
                    ENV_API_KEY,
                ),
                "api_key",
                mode,
                f"or set {ENV_API_KEY}",
            )
            return StaticKeyBackend(key)
        case _:
            links: list[CredentialBackend] = [
                _environment_backend(cfg),
                _managed_identity_backend(cfg.client_id),
                _cli_backend(cfg),
            ]
            if device_code_callback is not None:
                links.append(
                    _device_code_backend(
                        _check_tenant(cfg.tenant_id, mode),
                        cfg.client_id,
                        cfg,
                        device_code_callback,
                    )
                )
            return ChainedBackend(links)


def resolve_header_kind(config: AuthConfig | None = None) -> AuthHeaderKind:
    """Pick the outbound header shape for ``config``.

    Without an explicit ``auth_header``, raw API keys use ``api-key`` and
    every identity strategy uses ``Authorization: Bearer``.

    Raises:
        ConfigurationError: ``auth_header`` is ``custom`` without a valid
            ``auth_header_name``.
    """
    cfg = config or AuthConfig()
    setting = cfg.auth_header
    if setting is None:
        setting = (
            AuthHeaderSetting.API_KEY
            if cfg.strategy is Strategy.API_KEY
            else AuthHeaderSetting.BEARER
        )

    match setting:
        case AuthHeaderSetting.API_KEY:
            return AuthHeaderKind.api_key()
        case AuthHeaderSetting.CUSTOM:
            name = _require(cfg.auth_header_name, "auth_header_name", cfg.strategy)
            try:
                return AuthHeaderKind.custom(name)
            except InvalidHeaderNameError:
                raise ConfigurationError(
                    "auth_header_name",
                    cfg.strategy.value,
                    "is not a valid HTTP header name",
                ) from None
        case _:
            return AuthHeaderKind.bearer()
