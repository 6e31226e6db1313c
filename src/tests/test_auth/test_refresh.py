from __future__ import annotations

from typing import Any

import pytest

from entrasession.auth.backends import StaticKeyBackend
from entrasession.auth.cache import TokenCache
from entrasession.auth.errors import (
    CredentialUnavailableError,
    DeniedError,
    NetworkError,
    RefreshFailedError,
    UnauthorizedError,
)
from entrasession.auth.headers import AuthHeaderKind
from entrasession.auth.refresh import AttemptState, RefreshCoordinator
from entrasession.auth.session import CredentialSession


def _session(backend: Any, kind: AuthHeaderKind | None = None) -> CredentialSession:
    return CredentialSession(
        backend,
        kind or AuthHeaderKind.bearer(),
        TokenCache("scope", retry_backoff=0, max_attempts=1),
    )


class _Server:
    """Answers with scripted statuses and records the header it saw."""

    def __init__(self, session: CredentialSession, statuses: list[int]) -> None:
        self.session = session
        self.statuses = list(statuses)
        self.seen: list[str] = []

    def send(self) -> int:
        headers: dict[str, str] = {}
        self.session.apply(headers)
        self.seen.extend(headers.values())
        return self.statuses.pop(0)


def _run(server: _Server) -> int:
    return RefreshCoordinator(server.session).run(
        server.send,
        is_unauthorized=lambda status: status == 401,
        status_of=lambda status: status,
    )


def test_401_then_success__exactly_one_refresh(make_backend: Any) -> None:
    backend = make_backend()
    server = _Server(_session(backend), [401, 200])

    assert _run(server) == 200
    assert backend.calls == 2
    assert server.seen == ["Bearer token-1", "Bearer token-2"]


def test_401_twice__terminal_without_third_attempt(make_backend: Any) -> None:
    backend = make_backend()
    server = _Server(_session(backend), [401, 401, 200])

    with pytest.raises(UnauthorizedError, match="after refreshing") as excinfo:
        _run(server)

    assert excinfo.value.status_code == 401
    assert backend.calls == 2
    assert server.statuses == [200]


def test_api_key_session__401_is_immediately_terminal(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    session = _session(StaticKeyBackend("key"), AuthHeaderKind.api_key())
    calls: list[str] = []
    monkeypatch.setattr(session, "force_refresh", lambda **kw: calls.append("refresh"))
    server = _Server(session, [401, 200])

    with pytest.raises(UnauthorizedError, match="cannot be refreshed"):
        _run(server)

    assert calls == []
    assert server.seen == ["key"]
    assert not session.refreshable


def test_static_key_in_custom_header__not_refreshable() -> None:
    session = _session(StaticKeyBackend("key"), AuthHeaderKind.custom("X-Key"))
    attempt = RefreshCoordinator(session).begin()
    with pytest.raises(UnauthorizedError):
        attempt.on_unauthorized()
    assert attempt.state is AttemptState.FAILED


def test_state_machine__active_refresh_active_failed(make_backend: Any) -> None:
    session = _session(make_backend())
    attempt = RefreshCoordinator(session).begin()
    assert attempt.state is AttemptState.ACTIVE
    assert attempt.refreshed is False

    attempt.on_unauthorized()
    assert attempt.state is AttemptState.ACTIVE
    assert attempt.refreshed is True

    with pytest.raises(UnauthorizedError):
        attempt.on_unauthorized()
    assert attempt.state is AttemptState.FAILED


def test_each_request__gets_its_own_refresh(make_backend: Any) -> None:
    backend = make_backend()
    session = _session(backend)
    coordinator = RefreshCoordinator(session)

    first, second = coordinator.begin(), coordinator.begin()
    first.on_unauthorized()
    second.on_unauthorized()
    assert backend.calls == 2


def test_transient_refresh_failure__surfaces_as_retryable_io(make_backend: Any) -> None:
    backend = make_backend(errors=[None, NetworkError("metadata endpoint timeout")])
    server = _Server(_session(backend), [401, 200])

    with pytest.raises(NetworkError) as excinfo:
        _run(server)
    assert isinstance(excinfo.value, OSError)
    assert excinfo.value.retryable


@pytest.mark.parametrize(
    "error", [DeniedError("secret revoked"), CredentialUnavailableError("gone")]
)
def test_permanent_refresh_failure__distinct_non_retryable(
    make_backend: Any, error: Exception
) -> None:
    backend = make_backend(errors=[None, error])
    server = _Server(_session(backend), [401, 200])

    with pytest.raises(RefreshFailedError) as excinfo:
        _run(server)
    assert excinfo.value.retryable is False
    assert excinfo.value.__cause__ is error
    assert server.statuses == [200]
