from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .scopes import AzureCloud, authority_from_url


class Strategy(str, Enum):
    """Supported authentication strategies."""

    DEFAULT = "default"
    DEVICE_CODE = "device_code"
    MANAGED_IDENTITY = "managed_identity"
    CLIENT_SECRET = "client_secret"
    CLIENT_CERTIFICATE = "client_certificate"
    CLI = "azure_cli"
    ENVIRONMENT = "environment"
    API_KEY = "api_key"


class AuthHeaderSetting(str, Enum):
    """Outbound header shape requested in configuration."""

    BEARER = "bearer"
    API_KEY = "api_key"
    CUSTOM = "custom"


class AuthConfig(BaseSettings):
    """Configuration for selecting a credential backend and header shape.

    Explicit keyword arguments win over environment variables. Required
    fields are checked when the backend is built (see
    :func:`entrasession.auth.factory.build_backend`), not here, so that a
    missing field is reported together with the strategy that needs it.

    Environment variables (aliases supported where noted):
        - AZURE_AUTH_STRATEGY
        - AZURE_TENANT_ID
        - AZURE_CLIENT_ID (alias: AZURE_MANAGED_IDENTITY_CLIENT_ID)
        - AZURE_CLIENT_SECRET
        - AZURE_CLIENT_CERTIFICATE_PATH
        - AZURE_CLIENT_CERTIFICATE_PASSWORD
        - AZURE_OPENAI_API_KEY
        - AZURE_CLOUD
        - AZURE_SCOPE
        - AZURE_AUTHORITY_HOST
        - AZURE_AUTH_HEADER
        - AZURE_AUTH_HEADER_NAME
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    # With validation_alias set, the field name is only accepted as input
    # when it is listed in the alias choices too.

    strategy: Strategy = Field(
        default=Strategy.DEFAULT,
        validation_alias=AliasChoices("strategy", "mode", "AZURE_AUTH_STRATEGY"),
    )
    tenant_id: str | None = Field(
        default=None, validation_alias=AliasChoices("tenant_id", "AZURE_TENANT_ID")
    )
    client_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "client_id", "AZURE_CLIENT_ID", "AZURE_MANAGED_IDENTITY_CLIENT_ID"
        ),
    )
    client_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("client_secret", "AZURE_CLIENT_SECRET"),
    )
    certificate_path: Path | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "certificate_path", "AZURE_CLIENT_CERTIFICATE_PATH"
        ),
    )
    certificate_password: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "certificate_password", "AZURE_CLIENT_CERTIFICATE_PASSWORD"
        ),
    )
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("api_key", "AZURE_OPENAI_API_KEY"),
    )
    cloud: AzureCloud = Field(
        default=AzureCloud.PUBLIC,
        validation_alias=AliasChoices("cloud", "AZURE_CLOUD"),
    )
    scope: str | None = Field(
        default=None, validation_alias=AliasChoices("scope", "AZURE_SCOPE")
    )
    authority: str | None = Field(
        default=None,
        validation_alias=AliasChoices("authority", "AZURE_AUTHORITY_HOST"),
    )
    auth_header: AuthHeaderSetting | None = Field(
        default=None,
        validation_alias=AliasChoices("auth_header", "AZURE_AUTH_HEADER"),
    )
    auth_header_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("auth_header_name", "AZURE_AUTH_HEADER_NAME"),
    )
    acquire_timeout: float = Field(default=30.0, gt=0)
    acquire_attempts: int = Field(default=3, ge=1, le=10)
    device_code_timeout: float = Field(default=900.0, gt=0)

    @field_validator("authority")
    @classmethod
    def _ensure_absolute_authority(cls, v: str | None) -> str | None:
        """Sovereign authority overrides must be absolute URLs."""
        if v is None:
            return v
        authority_from_url(v)
        return v.rstrip("/")

    @model_validator(mode="after")
    def _custom_cloud_needs_endpoints(self) -> "AuthConfig":
        if self.cloud is AzureCloud.CUSTOM:
            missing = [f for f in ("authority", "scope") if not getattr(self, f)]
            if missing:
                raise ValueError(
                    f"cloud 'custom' requires an explicit {' and '.join(missing)}"
                )
        return self

    @property
    def effective_scope(self) -> str:
        """Explicit scope, or the default scope of the configured cloud."""
        return self.scope or self.cloud.scope

    @property
    def effective_authority(self) -> str:
        """Explicit authority, or the authority host of the configured cloud."""
        return self.authority or self.cloud.authority
