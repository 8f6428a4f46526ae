"""SSRF protection: validates tenant-supplied Evolution API base URLs.

validate_base_url() is purely lexical. It never touches the network, so it is
safe to call from request handlers and settings validators alike.
ensure_resolves_public() is the opt-in DNS re-check for callers that need to
close the rebinding gap; it resolves synchronously.
"""

from __future__ import annotations

import ipaddress
import re
import socket
from urllib.parse import urlsplit

_DANGEROUS_SCHEMES = frozenset({"file", "ftp", "javascript", "data", "vbscript"})

_LOOPBACK_HOSTS = frozenset({
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "[::1]",
    "0000:0000:0000:0000:0000:0000:0000:0001",
})

# (network, category) pairs checked against IP-literal hostnames
_BLOCKED_NETWORKS = [
    (ipaddress.ip_network("10.0.0.0/8"), "private"),
    (ipaddress.ip_network("172.16.0.0/12"), "private"),
    (ipaddress.ip_network("192.168.0.0/16"), "private"),
    (ipaddress.ip_network("169.254.0.0/16"), "link_local"),
    (ipaddress.ip_network("224.0.0.0/4"), "multicast"),
    # IPv6
    (ipaddress.ip_network("fc00::/7"), "private"),
    (ipaddress.ip_network("fe80::/10"), "link_local"),
    (ipaddress.ip_network("ff00::/8"), "multicast"),
]

_BLOCKED_MESSAGES = {
    "private": "Base URL cannot point to private IP addresses",
    "link_local": "Base URL cannot point to link-local addresses",
    "multicast": "Base URL cannot point to multicast addresses",
}

_EXPLICIT_HTTP = re.compile(r"^https?://", re.IGNORECASE)
_SCHEME_PREFIX = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):")
_PORT_SUFFIX = re.compile(r"^\d*(?:[/?#]|$)")
_FORBIDDEN_HOST_CHARS = re.compile(r"[\x00-\x20#%/:<>?@\[\\\]^|\x7f]")
_NUMERIC_HOST = re.compile(r"^(?:0x[0-9a-f]*|\d+)(?:\.(?:0x[0-9a-f]*|\d+)){0,3}$")


class UnsafeUrlError(ValueError):
    """Base class for rejected base URLs.

    Args:
        message: Human-readable description, safe to return to the caller.
        reason: Machine-readable cause, used to pick localized copy.
    """

    error_key = "whatsapp.invalid_base_url"

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self) -> dict:
        """Wire representation returned by the API error handler."""
        return {
            "success": False,
            "error_key": self.error_key,
            "message": self.message,
            "reason": self.reason,
        }


class InvalidBaseUrlError(UnsafeUrlError):
    """Input is absent, malformed, or uses a disallowed scheme."""


class PrivateAddressBlockedError(UnsafeUrlError):
    """Host is a loopback, private, link-local, or multicast address."""

    error_key = "whatsapp.private_address_blocked"

    def __init__(self, message: str, *, category: str, address: str) -> None:
        super().__init__(message, reason=category)
        self.category = category
        self.address = address


def validate_base_url(candidate: str | None, allow_http: bool = False) -> str:
    """Validate and canonicalize a base URL for outbound HTTP calls.

    The returned string is the trimmed input with trailing slashes removed and
    ``https://`` prepended when no scheme was given. Port, path, query,
    fragment and casing are kept as supplied.

    Args:
        candidate: Raw value from user input.
        allow_http: Accept the plain ``http`` scheme for this call site.

    Returns:
        The canonical URL.

    Raises:
        InvalidBaseUrlError: Absent, empty, malformed, or wrong scheme.
        PrivateAddressBlockedError: Host is a loopback or reserved literal.
    """
    if not isinstance(candidate, str) or not candidate.strip():
        raise InvalidBaseUrlError(
            "Base URL is required and must be a non-empty string", reason="required"
        )

    normalized = candidate.strip().rstrip("/")
    if not normalized:
        raise InvalidBaseUrlError("Base URL cannot be empty", reason="empty")

    normalized = _qualify_scheme(normalized)

    try:
        parts = urlsplit(normalized)
        parts.port  # raises on a non-numeric or out-of-range port
    except ValueError as exc:
        raise InvalidBaseUrlError("Invalid URL format", reason="malformed") from exc

    scheme = parts.scheme.lower()
    if scheme in _DANGEROUS_SCHEMES:
        raise InvalidBaseUrlError("Unsupported URL protocol", reason="unsupported_protocol")
    if scheme != "https" and not (allow_http and scheme == "http"):
        raise InvalidBaseUrlError("Base URL must use HTTPS protocol", reason="insecure_scheme")

    if "\\" in parts.netloc:
        raise InvalidBaseUrlError("Invalid URL format", reason="malformed")

    hostname = _comparable_host(parts.hostname or "")

    if hostname in _LOOPBACK_HOSTS:
        raise PrivateAddressBlockedError(
            "Base URL cannot point to localhost", category="loopback", address=hostname
        )

    address = _as_ip_literal(hostname)
    if address is not None:
        if _is_local(address):
            raise PrivateAddressBlockedError(
                "Base URL cannot point to localhost", category="loopback", address=str(address)
            )
        category = _blocked_category(address)
        if category is not None:
            raise PrivateAddressBlockedError(
                _BLOCKED_MESSAGES[category], category=category, address=str(address)
            )
    elif _FORBIDDEN_HOST_CHARS.search(hostname):
        raise InvalidBaseUrlError("Invalid URL format", reason="malformed")

    if not hostname:
        raise InvalidBaseUrlError("Base URL must have a valid hostname", reason="missing_hostname")

    return normalized


def ensure_resolves_public(url: str) -> None:
    """Resolve the host of a validated URL and reject blocked addresses.

    Every address returned by the resolver is checked, so a name with one
    public and one private record is rejected.

    Raises:
        InvalidBaseUrlError: The URL has no host or the host does not resolve.
        PrivateAddressBlockedError: A resolved address is in a blocked range.
    """
    hostname = urlsplit(url).hostname
    if not hostname:
        raise InvalidBaseUrlError("Base URL must have a valid hostname", reason="missing_hostname")

    try:
        addr_infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as exc:
        raise InvalidBaseUrlError(
            f"Cannot resolve hostname '{hostname}'", reason="unresolvable"
        ) from exc

    for addr_info in addr_infos:
        try:
            ip = ipaddress.ip_address(addr_info[4][0])
        except ValueError:
            continue

        ip = _unscoped(ip)
        if _is_local(ip) or ip.is_loopback:
            raise PrivateAddressBlockedError(
                f"Base URL resolves to blocked address {ip}", category="loopback", address=str(ip)
            )
        category = _blocked_category(ip)
        if category is not None:
            raise PrivateAddressBlockedError(
                f"Base URL resolves to blocked address {ip}", category=category, address=str(ip)
            )


def _qualify_scheme(normalized: str) -> str:
    """Return the URL with an explicit scheme, rejecting non-HTTP schemes.

    ``host:port`` looks like ``scheme:rest``; it is told apart by the digits
    after the colon.
    """
    if _EXPLICIT_HTTP.match(normalized):
        return normalized

    match = _SCHEME_PREFIX.match(normalized)
    if match:
        scheme = match.group(1).lower()
        rest = normalized[match.end():]
        if scheme in _DANGEROUS_SCHEMES:
            raise InvalidBaseUrlError("Unsupported URL protocol", reason="unsupported_protocol")
        if scheme in ("http", "https"):
            # "https:host" or a bare "https:" left over after slash stripping
            raise InvalidBaseUrlError("Invalid URL format", reason="malformed")
        if rest.startswith("//") or not _PORT_SUFFIX.match(rest):
            raise InvalidBaseUrlError("Base URL must use HTTPS protocol", reason="insecure_scheme")

    return f"https://{normalized}"


def _comparable_host(hostname: str) -> str:
    hostname = hostname.lower()
    if hostname.endswith(".") and hostname != ".":
        hostname = hostname[:-1]
    return hostname


def _is_local(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """Loopback denylist entries, any spelling of ``::1``, and the unspecified addresses."""
    if address.is_unspecified or str(address) in _LOOPBACK_HOSTS:
        return True
    return address.version == 6 and address.is_loopback


def _unscoped(
    address: ipaddress.IPv4Address | ipaddress.IPv6Address,
) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    """Drop an IPv6 zone ID and unwrap IPv4-mapped addresses.

    A scoped address never compares equal to its unscoped form, so ``::1%lo``
    would otherwise slip past the loopback and range checks.
    """
    if isinstance(address, ipaddress.IPv6Address):
        if address.scope_id is not None:
            address = ipaddress.IPv6Address(str(address).split("%", 1)[0])
        if address.ipv4_mapped is not None:
            return address.ipv4_mapped
    return address


def _as_ip_literal(hostname: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Interpret hostname as an IP literal the way a resolver would.

    Dotted-quad, IPv6, and the numeric IPv4 shorthands (hex, octal, fewer
    than four parts) all count. Returns None for a DNS name.
    """
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        address = None

    if address is None and _NUMERIC_HOST.match(hostname):
        try:
            address = ipaddress.IPv4Address(socket.inet_aton(hostname))
        except OSError:
            address = None

    if address is None:
        return None
    return _unscoped(address)


def _blocked_category(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> str | None:
    for network, category in _BLOCKED_NETWORKS:
        if address.version == network.version and address in network:
            return category
    return None
