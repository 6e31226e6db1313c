from __future__ import annotations

import logging
from typing import Any

import requests
from requests.auth import AuthBase

from entrasession.auth.config import AuthConfig
from entrasession.auth.factory import DeviceCodePrompt
from entrasession.auth.refresh import RefreshCoordinator
from entrasession.auth.session import CredentialSession

logger = logging.getLogger(__name__)


class SessionAuth(AuthBase):
    """``requests`` auth hook that injects the session's current secret."""

    def __init__(self, session: CredentialSession) -> None:
        self._session = session

    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        return self._session.apply(r)


class ApiClient:
    """HTTP client for one API endpoint authenticated by one credential session."""

    def __init__(
        self,
        base_url: str,
        *,
        auth: AuthConfig | None = None,
        session: CredentialSession | None = None,
        timeout: float = 60.0,
        device_code_callback: DeviceCodePrompt | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Absolute URL that request paths are joined to.
            auth: Authentication configuration. Ignored when ``session`` is
                given; if both are omitted, settings come from the environment.
            session: An existing credential session to take ownership of.
            timeout: HTTP request timeout in seconds, independent of the
                token acquisition timeout.
            device_code_callback: Receives the verification URL and user code
                when the device code flow needs the user.

        Raises:
            ConfigurationError: The auth configuration is incomplete.
        """
        self._base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._credentials = session or CredentialSession.from_config(
            auth, device_code_callback=device_code_callback
        )
        self._coordinator = RefreshCoordinator(self._credentials)
        self._http = requests.Session()
        self._http.auth = SessionAuth(self._credentials)

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def credentials(self) -> CredentialSession:
        return self._credentials

    @property
    def http(self) -> requests.Session:
        """Underlying ``requests`` session, e.g. for mounting adapters."""
        return self._http

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request, refreshing the token once on a 401.

        Other error statuses are returned unchanged; the caller owns its own
        backoff policy.

        Raises:
            UnauthorizedError: Still 401 after one refresh, or a static key
                was rejected.
            RefreshFailedError: The refresh failed permanently.
            NetworkError: Token acquisition failed transiently.
        """
        url = self._url(path)
        kwargs.setdefault("timeout", self.timeout)

        def _send() -> requests.Response:
            response = self._http.request(method, url, **kwargs)
            logger.debug("%s %s -> %s", method, url, response.status_code)
            return response

        return self._coordinator.run(
            _send,
            is_unauthorized=lambda response: response.status_code == 401,
            status_of=lambda response: response.status_code,
        )

    def get(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", path, **kwargs)

    def close(self) -> None:
        self._http.close()
        self._credentials.close()
