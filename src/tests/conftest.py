from __future__ import annotations

import os
import threading
import time
from typing import Any, Iterator

import pytest

from entrasession.auth import factory
from entrasession.auth.backends import ResolvedToken

# Settings read by AuthConfig that have no AZURE_ prefix.
_UNPREFIXED_SETTINGS = (
    "MODE",
    "STRATEGY",
    "ACQUIRE_TIMEOUT",
    "ACQUIRE_ATTEMPTS",
    "DEVICE_CODE_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clear_azure_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove AZURE_* vars to prevent cross-test leakage.

    Yields:
        Iterator[None]: Context manager semantics for pytest.
    """
    to_clear = [
        k
        for k in os.environ.keys()
        if k.upper().startswith("AZURE_") or k.upper() in _UNPREFIXED_SETTINGS
    ]
    for k in to_clear:
        monkeypatch.delenv(k, raising=False)
    yield


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeBackend:
    """Counts acquisitions and hands out ``token-<n>``.

    ``errors`` is consumed one entry per call (``None`` means succeed);
    ``gate`` blocks every call until it is set.
    """

    refreshable = True

    def __init__(
        self,
        name: str = "fake",
        *,
        ttl: float = 3600.0,
        clock: Any = time.time,
        gate: threading.Event | None = None,
        errors: list[BaseException | None] | None = None,
        always_raise: BaseException | None = None,
        timeout: float | None = None,
    ) -> None:
        self.name = name
        self.ttl = ttl
        self.clock = clock
        self.gate = gate
        self.errors = list(errors or [])
        self.always_raise = always_raise
        self.timeout = timeout
        self.calls = 0
        self.scopes: list[str] = []
        self._lock = threading.Lock()

    def acquire(self, scope: str) -> ResolvedToken:
        with self._lock:
            self.calls += 1
            n = self.calls
            self.scopes.append(scope)
            error = self.errors.pop(0) if self.errors else None
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.always_raise is not None:
            raise self.always_raise
        if error is not None:
            raise error
        return ResolvedToken(
            secret=f"token-{n}", acquired_at=self.clock(), ttl=self.ttl
        )


def wait_for(predicate: Any, timeout: float = 5.0) -> None:
    """Poll until ``predicate()`` is true or fail the test."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not reached in time")
        time.sleep(0.005)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def stub_identity(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    """Replace the azure.identity credentials used by the factory with recorders.

    Returns:
        dict[str, Any]: Recorder classes by credential name, for assertions.
    """

    class _Recorder:
        """Factory to create recorder classes that capture init kwargs."""

        def __init__(self, name: str) -> None:
            self.name = name
            self.cls = self._make(name)

        @staticmethod
        def _make(name: str):
            class _C:
                last_args: tuple[Any, ...] | None = None
                last_kwargs: dict[str, Any] | None = None
                call_count: int = 0

                def __init__(self, *args: Any, **kwargs: Any) -> None:
                    type(self).last_args = args
                    type(self).last_kwargs = dict(kwargs)
                    type(self).call_count += 1

                def get_token(self, *scopes: str, **kwargs: Any) -> Any:
                    raise AssertionError("no network calls expected")

            _C.__name__ = name
            _C.__qualname__ = name
            return _C

    names = [
        "AzureCliCredential",
        "CertificateCredential",
        "ClientSecretCredential",
        "DeviceCodeCredential",
        "EnvironmentCredential",
        "ManagedIdentityCredential",
    ]
    recorders = {n: _Recorder(n) for n in names}
    for n, rec in recorders.items():
        monkeypatch.setattr(factory, n, rec.cls)

    return {n: rec.cls for n, rec in recorders.items()}


@pytest.fixture()
def make_backend() -> type[FakeBackend]:
    return FakeBackend


@pytest.fixture()
def until() -> Any:
    return wait_for
