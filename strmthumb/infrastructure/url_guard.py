"""Validation of remote media URLs before any network access.

A URL is accepted only when it is a well-formed http(s) URL whose host is,
or resolves exclusively to, public addresses. Loopback, private, link-local,
multicast, reserved and unspecified ranges are refused so that a pointer file
cannot make the service fetch internal resources.
"""
import asyncio
import ipaddress
import logging
import socket
from typing import Awaitable, Callable, List, Optional, Union
from urllib.parse import urlsplit

from strmthumb.domain.errors import SourceUnavailableError, UnsafeSourceError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Resolver = Callable[[str], Awaitable[List[str]]]

ALLOWED_SCHEMES = ("http", "https")


def is_forbidden_address(address: IPAddress) -> bool:
    mapped = getattr(address, "ipv4_mapped", None)
    if mapped is not None:
        address = mapped
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_multicast
        or address.is_reserved
        or address.is_unspecified
    )


async def resolve_host(host: str) -> List[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


class UrlGuard:
    """Rejects malformed or internal-network URLs."""

    def __init__(self, resolver: Optional[Resolver] = None):
        self._resolver = resolver or resolve_host

    @staticmethod
    def check_syntax(url: str) -> str:
        """Returns the hostname of a well-formed http(s) URL."""
        if not url or any(ch.isspace() for ch in url):
            raise UnsafeSourceError("Invalid video URL: empty or contains whitespace")
        try:
            parts = urlsplit(url)
            parts.port  # raises ValueError on a malformed port
        except ValueError as e:
            raise UnsafeSourceError(f"Invalid video URL: {e}")
        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            raise UnsafeSourceError(f"Unsupported URL scheme '{parts.scheme or '(none)'}': only http/https allowed")
        if not parts.hostname:
            raise UnsafeSourceError("Invalid video URL: missing host")
        return parts.hostname

    async def validate(self, url: str) -> str:
        """Returns the URL unchanged when safe; raises UnsafeSourceError otherwise."""
        host = self.check_syntax(url)

        try:
            literal = ipaddress.ip_address(host)
        except ValueError:
            literal = None

        if literal is not None:
            addresses = [literal]
        else:
            try:
                resolved = await self._resolver(host)
            except (OSError, UnicodeError) as e:
                raise SourceUnavailableError(f"Cannot resolve host '{host}': {e}")
            if not resolved:
                raise SourceUnavailableError(f"Cannot resolve host '{host}'")
            addresses = [ipaddress.ip_address(addr.split("%", 1)[0]) for addr in resolved]

        for address in addresses:
            if is_forbidden_address(address):
                logger.warning(f"Blocked URL to non-public address {address}: {url}")
                raise UnsafeSourceError(f"URL points to a non-public address ({address})")
        return url
