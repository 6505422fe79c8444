"""Caller IP resolution.

A commenter is identified by the public IP the comment was written from. The
IP stamps authorship and deduplicates likes; it is never shown to readers.
Only writes need it: reading comments never resolves an IP.
"""

import ipaddress
import logging
from typing import Optional, Protocol

import httpx

from blog_common.errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_URL = "https://api.ipify.org?format=json"


class IpResolver(Protocol):
    async def resolve(self) -> str:
        """Return the caller's public IP."""
        ...


def normalize_ip(value: str) -> str:
    """Canonical text form of an IP, or NetworkError if it is not one."""
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError as exc:
        raise NetworkError(f"Invalid IP address: {value!r}") from exc


def client_ip_from_headers(forwarded_for: Optional[str], peer: Optional[str]) -> Optional[str]:
    """Pick the caller IP for an HTTP request.

    The first hop of X-Forwarded-For wins over the socket peer so the blog can
    sit behind a reverse proxy.
    """
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return peer


def is_local_address(ip: Optional[str]) -> bool:
    """True for a missing or loopback caller address."""
    if not ip:
        return True
    try:
        return ipaddress.ip_address(ip.strip()).is_loopback
    except ValueError:
        return False


class StaticIpResolver:
    """Resolver for an IP already known, e.g. taken from the request."""

    def __init__(self, ip: Optional[str]):
        self._ip = ip

    async def resolve(self) -> str:
        if not self._ip:
            raise NetworkError("Could not determine caller IP")
        return normalize_ip(self._ip)


class HttpIpResolver:
    """Ask a public IP echo service (ipify format: {"ip": "..."}).

    Used for callers on the same machine as the server, whose request
    address says nothing about who they are publicly.
    """

    def __init__(self, url: str = DEFAULT_LOOKUP_URL, timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._cached: Optional[str] = None

    @property
    def known_ip(self) -> Optional[str]:
        """The IP from the last successful lookup, without asking again."""
        return self._cached

    async def resolve(self) -> str:
        if self._cached:
            return self._cached

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(self.url)
                response.raise_for_status()
                ip = response.json()["ip"]
            except (httpx.HTTPError, KeyError, ValueError) as exc:
                logger.warning("IP lookup via %s failed: %s", self.url, exc)
                raise NetworkError("Could not resolve caller IP") from exc

        self._cached = normalize_ip(ip)
        return self._cached
