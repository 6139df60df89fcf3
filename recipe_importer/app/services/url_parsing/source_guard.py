"""URL validation performed before any outbound request (SSRF defense)."""

import ipaddress
import logging
import re
import socket
from typing import Callable, Iterable, List
from urllib.parse import urlsplit

from recipe_importer.app.services.url_parsing.models import SourceVerdict

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = frozenset({"http", "https"})
ALLOWED_PORTS = frozenset({80, 443, 8080, 8443})

BLOCKED_HOSTNAME_PATTERNS = (
    re.compile(r"\Alocalhost\Z", re.IGNORECASE),
    re.compile(r"\.local\Z", re.IGNORECASE),
    re.compile(r"\.internal\Z", re.IGNORECASE),
    re.compile(r"\.localhost\Z", re.IGNORECASE),
)

BLOCKED_NETWORKS = (
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("0.0.0.0/32"),
    ipaddress.ip_network("::/128"),
)

Resolver = Callable[[str], Iterable[str]]


class HostResolutionError(Exception):
    pass


def system_resolver(host: str) -> List[str]:
    """Resolve a hostname to every address the system resolver returns."""
    try:
        infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError, OSError) as exc:
        raise HostResolutionError(str(exc)) from exc
    return [info[4][0] for info in infos]


def is_blocked_hostname(host: str) -> bool:
    return any(pattern.search(host) for pattern in BLOCKED_HOSTNAME_PATTERNS)


def is_blocked_address(address: str) -> bool:
    """True for loopback, private, link-local, unspecified or unparseable addresses."""
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return True
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in BLOCKED_NETWORKS)


def _reject(reason: str) -> SourceVerdict:
    return SourceVerdict(allowed=False, reason=reason)


def validate_source_url(raw_url, resolver: Resolver = system_resolver) -> SourceVerdict:
    """Decide whether a user-supplied URL is safe to fetch. First rejection wins."""
    if raw_url is None or not str(raw_url).strip():
        return _reject("URL cannot be blank")
    url = str(raw_url).strip()

    try:
        parts = urlsplit(url)
        port = parts.port
        host = parts.hostname
    except ValueError:
        return _reject("Invalid URL format")

    if (parts.scheme or "").lower() not in ALLOWED_SCHEMES:
        return _reject("Only http and https URLs are allowed")
    if not host:
        return _reject("URL must have a valid host")
    if parts.username is not None or parts.password is not None or "@" in parts.netloc:
        return _reject("URLs with username or password are not allowed")
    if port is not None and port not in ALLOWED_PORTS:
        return _reject(f"Port {port} is not allowed")
    if is_blocked_hostname(host):
        return _reject("This hostname is not allowed")

    try:
        addresses = list(resolver(host))
    except HostResolutionError:
        addresses = []
    if not addresses:
        logger.info("Could not resolve host %s", host)
        return _reject("Could not resolve hostname")

    if any(is_blocked_address(address) for address in addresses):
        logger.info("Blocked private or internal address for host %s", host)
        return _reject("URLs pointing to private or internal addresses are not allowed")

    return SourceVerdict(allowed=True)
