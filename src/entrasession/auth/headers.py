"""Outbound authentication header shapes and injection."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Final

from .errors import InvalidHeaderNameError, InvalidHeaderValueError

AUTHORIZATION_HEADER: Final[str] = "Authorization"
API_KEY_HEADER: Final[str] = "api-key"

# RFC 9110 token characters
_TOKEN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
# Visible ASCII, space, horizontal tab and obs-text; no other control bytes
_FIELD_VALUE = re.compile(r"[\t\x20-\x7e\x80-\xff]+")


@dataclass(frozen=True)
class AuthHeaderKind:
    """Which header carries the secret, and with which prefix.

    Build instances with :meth:`bearer`, :meth:`api_key` or :meth:`custom`.
    """

    header_name: str
    prefix: str = ""
    label: str = "custom"

    @classmethod
    def bearer(cls) -> "AuthHeaderKind":
        return cls(AUTHORIZATION_HEADER, prefix="Bearer ", label="bearer")

    @classmethod
    def api_key(cls) -> "AuthHeaderKind":
        return cls(API_KEY_HEADER, label="api_key")

    @classmethod
    def custom(cls, name: str) -> "AuthHeaderKind":
        if not _TOKEN.fullmatch(name or ""):
            raise InvalidHeaderNameError(f"Invalid header name: {name!r}")
        return cls(name, label="custom")

    @property
    def is_api_key(self) -> bool:
        return self.label == "api_key"

    def __str__(self) -> str:
        if self.label == "custom":
            return f"custom({self.header_name})"
        return self.label


# Every header name the injector may have written before; only one survives.
_KNOWN_AUTH_HEADERS = (AUTHORIZATION_HEADER, API_KEY_HEADER)


def format_header(kind: AuthHeaderKind, secret: str) -> tuple[str, str]:
    """Return the ``(name, value)`` pair for ``secret`` under ``kind``.

    Raises:
        InvalidHeaderValueError: If the secret is empty or contains characters
            that are illegal in an HTTP header value. The secret itself is not
            part of the message.
    """
    if not secret or not _FIELD_VALUE.fullmatch(secret):
        raise InvalidHeaderValueError(
            f"Secret for the {kind} header contains characters that are not "
            "allowed in an HTTP header value"
        )
    if secret != secret.strip(" \t"):
        raise InvalidHeaderValueError(
            f"Secret for the {kind} header has leading or trailing whitespace"
        )
    return kind.header_name, f"{kind.prefix}{secret}"


def inject(kind: AuthHeaderKind, secret: str, request: Any) -> None:
    """Attach the authentication header for ``secret`` to ``request``.

    ``request`` is anything with a mutable ``headers`` mapping, such as a
    :class:`requests.PreparedRequest`, or the header mapping itself.

    Exactly one authentication header leaves the client. ``Authorization``,
    ``api-key`` and ``kind.header_name`` are removed first, whoever set
    them, so a caller-supplied ``Authorization`` header does not survive
    under a custom header kind.
    """
    name, value = format_header(kind, secret)
    headers = getattr(request, "headers", request)
    for existing in list(headers):
        if existing.lower() in (h.lower() for h in (*_KNOWN_AUTH_HEADERS, name)):
            del headers[existing]
    headers[name] = value
