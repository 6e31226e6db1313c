from __future__ import annotations

from enum import Enum
from typing import Final
from urllib.parse import urlparse

COGNITIVE_SERVICES_SCOPE: Final[str] = "https://cognitiveservices.azure.com/.default"
US_GOV_COGNITIVE_SERVICES_SCOPE: Final[str] = (
    "https://cognitiveservices.azure.us/.default"
)
CHINA_COGNITIVE_SERVICES_SCOPE: Final[str] = (
    "https://cognitiveservices.azure.cn/.default"
)

PUBLIC_AUTHORITY: Final[str] = "https://login.microsoftonline.com"
US_GOV_AUTHORITY: Final[str] = "https://login.microsoftonline.us"
CHINA_AUTHORITY: Final[str] = "https://login.chinacloudapi.cn"


class AzureCloud(str, Enum):
    """Azure cloud environments with their own identity endpoints."""

    PUBLIC = "public"
    US_GOVERNMENT = "us_government"
    CHINA = "china"
    CUSTOM = "custom"  # AuthConfig requires explicit authority and scope

    @property
    def authority(self) -> str:
        """Default Entra ID authority host for this cloud."""
        if self is AzureCloud.US_GOVERNMENT:
            return US_GOV_AUTHORITY
        if self is AzureCloud.CHINA:
            return CHINA_AUTHORITY
        return PUBLIC_AUTHORITY

    @property
    def scope(self) -> str:
        """Default Cognitive Services scope for this cloud."""
        if self is AzureCloud.US_GOVERNMENT:
            return US_GOV_COGNITIVE_SERVICES_SCOPE
        if self is AzureCloud.CHINA:
            return CHINA_COGNITIVE_SERVICES_SCOPE
        return COGNITIVE_SERVICES_SCOPE


def authority_from_url(url: str) -> str:
    """Return the URL authority (scheme + host).

    Args:
        url: Absolute URL (e.g., "https://login.microsoftonline.us/tenant").

    Returns:
        The "<scheme>://<host>" portion of the URL.

    Raises:
        ValueError: If ``url`` is not absolute or lacks a host.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError("authority must be an absolute URL")
    return f"{parsed.scheme}://{parsed.netloc}"

