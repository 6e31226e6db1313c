from __future__ import annotations

import logging
from typing import Any

from .backends import CredentialBackend
from .cache import TokenCache
from .config import AuthConfig
from .errors import AuthError
from .factory import DeviceCodePrompt, build_backend, resolve_header_kind
from .headers import AuthHeaderKind, inject

logger = logging.getLogger(__name__)


class CredentialSession:
    """One authenticated client's credentials: backend, cache and header kind.

    Each client instance owns its own session; sessions never share a cache,
    so several configured endpoints can coexist. The header kind is fixed for
    the lifetime of the session.
    """

    def __init__(
        self,
        backend: CredentialBackend,
        header_kind: AuthHeaderKind,
        cache: TokenCache,
    ) -> None:
        self._backend = backend
        self._header_kind = header_kind
        self._cache = cache
        self._closed = False

    @classmethod
    def from_config(
        cls,
        config: AuthConfig | None = None,
        *,
        device_code_callback: DeviceCodePrompt | None = None,
        retry_backoff: float = 1.0,
    ) -> "CredentialSession":
        """Select the backend and header kind for ``config`` and bind a cache.

        Raises:
            ConfigurationError: See :func:`build_backend`.
        """
        cfg = config or AuthConfig()
        header_kind = resolve_header_kind(cfg)
        backend = build_backend(cfg, device_code_callback=device_code_callback)
        cache = TokenCache(
            cfg.effective_scope,
            acquire_timeout=cfg.acquire_timeout,
            max_attempts=cfg.acquire_attempts,
            retry_backoff=retry_backoff,
        )
        logger.debug(
            "Created credential session (backend=%s, header=%s, scope=%s)",
            backend.name,
            header_kind,
            cfg.effective_scope,
        )
        return cls(backend, header_kind, cache)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(backend={self._backend.name!r}, "
            f"header={str(self._header_kind)!r})"
        )

    def __enter__(self) -> "CredentialSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def backend(self) -> CredentialBackend:
        return self._backend

    @property
    def header_kind(self) -> AuthHeaderKind:
        return self._header_kind

    @property
    def cache(self) -> TokenCache:
        return self._cache

    @property
    def refreshable(self) -> bool:
        """False for raw API keys: a static key cannot be refreshed."""
        return self._backend.refreshable and not self._header_kind.is_api_key

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise AuthError("Credential session is closed")

    def get_token(self, *, wait_timeout: float | None = None) -> str:
        """Return a valid secret, acquiring one if the cache is stale."""
        self._check_open()
        return self._cache.get_or_refresh(self._backend, wait_timeout=wait_timeout)

    def force_refresh(self, *, wait_timeout: float | None = None) -> str:
        """Drop the cached secret and acquire a new one."""
        self._check_open()
        return self._cache.force_refresh(self._backend, wait_timeout=wait_timeout)

    def apply(self, request: Any) -> Any:
        """Inject the current secret into ``request`` and return it."""
        inject(self._header_kind, self.get_token(), request)
        return request

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cache.clear()
        close = getattr(self._backend, "close", None)
        if close is not None:
            close()
