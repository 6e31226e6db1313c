"""Refresh-on-401 protocol.

Each logical request gets a :class:`RequestAttempt`. The first 401 forces one
cache refresh and asks the caller to retry; a second 401 is terminal. Static
API keys are never refreshed, so their first 401 is already terminal.

States per attempt::

    ACTIVE --401--> REFRESH_IN_FLIGHT --ok--> ACTIVE (retry once)
    ACTIVE --401 after refresh--> FAILED
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, TypeVar

from .errors import (
    CredentialUnavailableError,
    DeniedError,
    NetworkError,
    RefreshFailedError,
    UnauthorizedError,
)
from .session import CredentialSession

logger = logging.getLogger(__name__)

R = TypeVar("R")


class AttemptState(str, Enum):
    ACTIVE = "active"
    REFRESH_IN_FLIGHT = "refresh_in_flight"
    FAILED = "failed"


class RequestAttempt:
    """Tracks whether one logical request has already used its refresh."""

    def __init__(self, session: CredentialSession) -> None:
        self._session = session
        self.state = AttemptState.ACTIVE
        self.refreshed = False

    def on_unauthorized(self, status_code: int = 401) -> None:
        """Handle a 401 for this request.

        Returns normally when the token was refreshed and the caller should
        resend the same request once.

        Raises:
            UnauthorizedError: Already refreshed once, or the session holds a
                static key.
            NetworkError: The refresh failed transiently; retryable I/O error.
            RefreshFailedError: The refresh failed permanently; do not retry.
        """
        if self.refreshed:
            self.state = AttemptState.FAILED
            raise UnauthorizedError(
                "Request is still unauthorized after refreshing the token",
                status_code,
            )
        if not self._session.refreshable:
            self.state = AttemptState.FAILED
            raise UnauthorizedError(
                f"Request was rejected and the {self._session.header_kind} "
                "credential cannot be refreshed",
                status_code,
            )

        self.state = AttemptState.REFRESH_IN_FLIGHT
        logger.debug("Got HTTP %s, forcing token refresh", status_code)
        try:
            self._session.force_refresh()
        except NetworkError:
            self.state = AttemptState.FAILED
            raise
        except (DeniedError, CredentialUnavailableError) as e:
            self.state = AttemptState.FAILED
            raise RefreshFailedError(f"Token refresh failed permanently: {e}") from e
        self.refreshed = True
        self.state = AttemptState.ACTIVE


class RefreshCoordinator:
    """Drives the bounded retry of one request around a single forced refresh."""

    def __init__(self, session: CredentialSession) -> None:
        self._session = session

    def begin(self) -> RequestAttempt:
        return RequestAttempt(self._session)

    def run(
        self,
        send: Callable[[], R],
        is_unauthorized: Callable[[R], bool],
        status_of: Callable[[R], int] = lambda _: 401,
    ) -> R:
        """Call ``send`` and resend it at most once after a refresh.

        ``send`` must attach a fresh header on every call, e.g. via
        :meth:`CredentialSession.apply`.
        """
        attempt = self.begin()
        while True:
            response = send()
            if not is_unauthorized(response):
                return response
            attempt.on_unauthorized(status_of(response))
