"""Credential backends: one token-acquisition capability, several strategies.

Every backend implements :class:`CredentialBackend`. The orchestration layer
(cache, session, refresh coordinator) never inspects which concrete backend
it holds; it only calls :meth:`CredentialBackend.acquire` and reads the
``refreshable`` and ``timeout`` attributes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from time import time
from typing import TYPE_CHECKING, Protocol, Sequence

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.identity import CredentialUnavailableError as IdentityUnavailableError

from .errors import CredentialUnavailableError, DeniedError, NetworkError

if TYPE_CHECKING:
    from azure.core.credentials import TokenCredential

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class ResolvedToken:
    """A secret together with the moment it was acquired and its lifetime.

    ``ttl`` is in seconds and must be positive. The secret is redacted from
    ``repr()`` so a token can be logged or put in an error without leaking it.
    """

    secret: str = field(repr=False)
    acquired_at: float
    ttl: float

    def __post_init__(self) -> None:
        if not self.ttl > 0:
            raise ValueError("ttl must be positive")

    @property
    def expires_at(self) -> float:
        return self.acquired_at + self.ttl

    def is_valid(self, now: float, safety_buffer: float) -> bool:
        """True while ``now`` is before expiry minus ``safety_buffer``."""
        return now < self.expires_at - safety_buffer


class CredentialBackend(Protocol):
    """Capability to acquire a fresh secret for a scope."""

    name: str
    refreshable: bool
    timeout: float | None

    def acquire(self, scope: str) -> ResolvedToken:
        """Return a new token or raise a :class:`CredentialError` subclass."""
        ...


class AzureIdentityBackend:
    """Backend driven by an ``azure.identity`` :class:`TokenCredential`.

    Maps azure-core/azure-identity exceptions onto the package taxonomy:
    unavailable credentials, transient transport failures and denials.
    """

    refreshable = True

    def __init__(
        self,
        name: str,
        credential: "TokenCredential",
        *,
        timeout: float | None = None,
    ) -> None:
        self.name = name
        self.timeout = timeout
        self._credential = credential

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    def acquire(self, scope: str) -> ResolvedToken:
        try:
            access_token = self._credential.get_token(scope)
        except IdentityUnavailableError as e:
            raise CredentialUnavailableError(f"{self.name}: {e.message}") from None
        except ClientAuthenticationError as e:
            raise DeniedError(f"{self.name}: authentication rejected ({e.message})") from None
        except (ServiceRequestError, ServiceResponseError) as e:
            raise NetworkError(f"{self.name}: {e.message}") from None
        except HttpResponseError as e:
            if e.status_code in TRANSIENT_STATUS_CODES:
                raise NetworkError(
                    f"{self.name}: identity endpoint returned HTTP {e.status_code}"
                ) from None
            raise DeniedError(
                f"{self.name}: identity endpoint returned HTTP {e.status_code}"
            ) from None

        now = time()
        return ResolvedToken(
            secret=access_token.token,
            acquired_at=now,
            ttl=max(1.0, access_token.expires_on - now),
        )

    def close(self) -> None:
        close = getattr(self._credential, "close", None)
        if close is not None:
            close()


class StaticKeyBackend:
    """Raw API key: never expires and can never be refreshed."""

    name = "api_key"
    refreshable = False
    timeout = None

    def __init__(self, key: str) -> None:
        self._key = key

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def acquire(self, scope: str) -> ResolvedToken:
        return ResolvedToken(secret=self._key, acquired_at=time(), ttl=math.inf)


class ChainedBackend:
    """Ordered fallback over several backends, resolved lazily.

    The first acquisition walks the chain. A link that reports
    :class:`CredentialUnavailableError` is skipped; any other failure stops
    the walk and propagates, so a real credential problem is not masked by a
    later link. The first link that succeeds is remembered and used for
    every later acquisition.
    """

    name = "default"
    refreshable = True

    def __init__(self, links: Sequence[CredentialBackend]) -> None:
        if not links:
            raise ValueError("ChainedBackend needs at least one link")
        self._links = list(links)
        self._selected: CredentialBackend | None = None

    def __repr__(self) -> str:
        names = ", ".join(link.name for link in self._links)
        return f"{type(self).__name__}([{names}])"

    @property
    def links(self) -> list[CredentialBackend]:
        return list(self._links)

    @property
    def selected(self) -> CredentialBackend | None:
        """The link that produced the first token, if any."""
        return self._selected

    @property
    def timeout(self) -> float | None:
        if self._selected is not None:
            return self._selected.timeout
        timeouts = [link.timeout for link in self._links if link.timeout is not None]
        return sum(timeouts) if timeouts else None

    def acquire(self, scope: str) -> ResolvedToken:
        if self._selected is not None:
            return self._selected.acquire(scope)

        skipped: list[str] = []
        for link in self._links:
            try:
                token = link.acquire(scope)
            except CredentialUnavailableError as e:
                logger.debug("Skipping %s: %s", link.name, e)
                skipped.append(str(e))
                continue
            logger.info("Default credential chain resolved to %s", link.name)
            self._selected = link
            return token

        raise CredentialUnavailableError(
            "No credential in the default chain is available. Attempted: "
            + "; ".join(skipped)
        )

    def close(self) -> None:
        for link in self._links:
            close = getattr(link, "close", None)
            if close is not None:
                close()
