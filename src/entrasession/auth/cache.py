"""Session-owned token cache with single-flight refresh.

One lock guards two pieces of state: the current :class:`ResolvedToken` and
an in-flight marker (a :class:`concurrent.futures.Future`). The lock is never
held across a backend call. The first caller that finds the cache stale
installs the marker and starts a refresh on a background thread; everyone
else, including that first caller, waits on the same future and receives
the same secret or the same exception.

A waiter that gives up (``wait_timeout``) only stops waiting. The refresh is
owned by its background thread and still completes for the other waiters.

At most one backend call runs per cache. A call that exceeds its timeout
ends the refresh without a retry, and later refreshes fail fast until the
abandoned call returns.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable

from .backends import CredentialBackend, ResolvedToken
from .errors import AcquisitionTimeoutError, NetworkError

logger = logging.getLogger(__name__)

SAFETY_BUFFER_SECONDS = 300.0


class TokenCache:
    """Holds at most one token for one scope and coalesces refreshes."""

    def __init__(
        self,
        scope: str,
        *,
        acquire_timeout: float = 30.0,
        max_attempts: int = 3,
        retry_backoff: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize an empty cache.

        Args:
            scope: Scope passed to every backend acquisition.
            acquire_timeout: Seconds one acquisition may take unless the
                backend declares its own ``timeout``. Expiry is reported as
                :class:`AcquisitionTimeoutError`, a :class:`NetworkError` that
                is not retried within the same refresh.
            max_attempts: Upper bound on acquisitions per refresh when the
                backend itself raises :class:`NetworkError`.
            retry_backoff: Base delay for exponential backoff between those
                attempts.
            clock: Returns the current time in seconds since the epoch.
        """
        self.scope = scope
        self.acquire_timeout = acquire_timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff
        self._clock = clock
        self._lock = threading.Lock()
        self._token: ResolvedToken | None = None
        self._flight: Future[str] | None = None
        # Backend call abandoned after a timeout, possibly still running
        self._stalled: threading.Thread | None = None

    @property
    def current(self) -> ResolvedToken | None:
        """The cached token, valid or not."""
        with self._lock:
            return self._token

    def is_valid(self) -> bool:
        with self._lock:
            return self._valid_locked()

    def _valid_locked(self) -> bool:
        return self._token is not None and self._token.is_valid(
            self._clock(), SAFETY_BUFFER_SECONDS
        )

    def get_or_refresh(
        self, backend: CredentialBackend, *, wait_timeout: float | None = None
    ) -> str:
        """Return the cached secret if still valid, otherwise refresh it.

        Raises:
            CredentialError: The refresh failed; every concurrent waiter sees
                the same exception.
        """
        with self._lock:
            if self._valid_locked():
                logger.debug("Using cached token")
                return self._token.secret
            flight = self._join_or_start_locked(backend)
        return self._wait(flight, wait_timeout)

    def force_refresh(
        self, backend: CredentialBackend, *, wait_timeout: float | None = None
    ) -> str:
        """Discard the cached token and acquire a new one."""
        with self._lock:
            logger.debug("Discarding cached token")
            self._token = None
            flight = self._join_or_start_locked(backend)
        return self._wait(flight, wait_timeout)

    def clear(self) -> None:
        with self._lock:
            self._token = None

    def _join_or_start_locked(self, backend: CredentialBackend) -> Future[str]:
        if self._flight is not None:
            logger.debug("Joining in-flight token refresh")
            return self._flight
        flight: Future[str] = Future()
        flight.set_running_or_notify_cancel()
        self._flight = flight
        threading.Thread(
            target=self._run_flight,
            args=(backend, flight),
            name="token-refresh",
            daemon=True,
        ).start()
        return flight

    def _wait(self, flight: Future[str], wait_timeout: float | None) -> str:
        try:
            return flight.result(timeout=wait_timeout)
        except FutureTimeoutError:
            raise NetworkError("Timed out waiting for the token refresh") from None

    def _run_flight(self, backend: CredentialBackend, flight: Future[str]) -> None:
        try:
            token = self._acquire_with_retry(backend)
        except BaseException as e:
            # Previous token stays in place; the next caller starts a new flight.
            with self._lock:
                self._flight = None
            flight.set_exception(e)
            return
        with self._lock:
            self._token = token
            self._flight = None
        flight.set_result(token.secret)

    def _acquire_with_retry(self, backend: CredentialBackend) -> ResolvedToken:
        for attempt in range(1, self.max_attempts + 1):
            try:
                token = self._acquire_once(backend)
            except AcquisitionTimeoutError:
                raise
            except NetworkError as e:
                if attempt == self.max_attempts:
                    raise
                delay = self.retry_backoff * (2 ** (attempt - 1))
                if delay:
                    delay += random.uniform(0, 0.5)  # jitter
                logger.warning(
                    "Token acquisition via %s failed (%s). Retrying in %.1f seconds "
                    "(attempt %d/%d)",
                    backend.name,
                    e,
                    delay,
                    attempt,
                    self.max_attempts,
                )
                time.sleep(delay)
                continue
            logger.info(
                "Acquired token via %s (valid for %.0f seconds)",
                backend.name,
                token.ttl,
            )
            return token
        raise RuntimeError("Unreachable")

    def _acquire_once(self, backend: CredentialBackend) -> ResolvedToken:
        # Only flight threads touch _stalled, and flights never overlap.
        if self._stalled is not None:
            if self._stalled.is_alive():
                raise AcquisitionTimeoutError(
                    f"A previous token acquisition via {backend.name} is still running"
                )
            self._stalled = None
        timeout = getattr(backend, "timeout", None) or self.acquire_timeout
        call: Future[ResolvedToken] = Future()
        call.set_running_or_notify_cancel()

        def _call() -> None:
            try:
                call.set_result(backend.acquire(self.scope))
            except BaseException as e:
                call.set_exception(e)

        # A hung backend call is abandoned, not joined.
        worker = threading.Thread(target=_call, name="token-acquire", daemon=True)
        worker.start()
        try:
            token = call.result(timeout=timeout)
        except FutureTimeoutError:
            self._stalled = worker
            raise AcquisitionTimeoutError(
                f"Token acquisition via {backend.name} timed out after {timeout:.0f}s"
            ) from None
        return token
