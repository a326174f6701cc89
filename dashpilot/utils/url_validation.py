"""URL validation utilities for SSRF (Server-Side Request Forgery) protection.

Webhook endpoints are user-controlled URLs that DashPilot will POST to from
inside its own network. This module rejects endpoints that would let a user
reach internal services, cloud metadata endpoints or the host itself.

Rules, in order:
- The URL must use http or https and contain a hostname
- Static blocklist: localhost, 127.0.0.1, 0.0.0.0, ::1 (case-insensitive)
- IP-literal hosts are checked directly against private/reserved ranges
- Hostnames are resolved; ANY private/reserved address rejects the URL
- Hostnames that fail to resolve are ALLOWED with a warning (fail-open)

The check runs when an endpoint is created or updated, not at delivery time.

References:
- OWASP SSRF Prevention Cheat Sheet
- CWE-918: Server-Side Request Forgery (SSRF)
- RFC 1918: Private Address Space
- RFC 4193: Unique Local IPv6 Unicast Addresses
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass, field
from urllib.parse import urlparse

from dashpilot.exceptions import SSRFProtectionError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")

# Hosts rejected before any DNS lookup
BLOCKED_HOSTS = {
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "localhost.localdomain",
    "ip6-localhost",
    "ip6-loopback",
}

# Private IP ranges (RFC 1918, RFC 4193, and other reserved ranges)
PRIVATE_IP_RANGES = [
    ipaddress.ip_network("10.0.0.0/8"),  # Private Class A
    ipaddress.ip_network("172.16.0.0/12"),  # Private Class B
    ipaddress.ip_network("192.168.0.0/16"),  # Private Class C
    ipaddress.ip_network("127.0.0.0/8"),  # Loopback
    ipaddress.ip_network("169.254.0.0/16"),  # Link-local (AWS metadata: 169.254.169.254)
    ipaddress.ip_network("::1/128"),  # IPv6 loopback
    ipaddress.ip_network("fe80::/10"),  # IPv6 link-local
    ipaddress.ip_network("fc00::/7"),  # IPv6 unique local addresses
    ipaddress.ip_network("0.0.0.0/8"),  # "This" network
    ipaddress.ip_network("100.64.0.0/10"),  # Shared address space (CGN)
    ipaddress.ip_network("192.0.0.0/24"),  # IETF protocol assignments
    ipaddress.ip_network("198.18.0.0/15"),  # Benchmarking
    ipaddress.ip_network("224.0.0.0/4"),  # Multicast
    ipaddress.ip_network("240.0.0.0/4"),  # Reserved
    ipaddress.ip_network("ff00::/8"),  # IPv6 multicast
]


@dataclass
class ValidationResult:
    """Outcome of validating a webhook URL."""

    allowed: bool
    reason: str | None = None
    host: str | None = None
    resolved_addresses: list[str] = field(default_factory=list)
    dns_failed: bool = False


def is_private_ip(ip_address: str) -> bool:
    """Check if an IP address is private, loopback, link-local or reserved.

    Args:
        ip_address: IP address string (IPv4 or IPv6)

    Returns:
        True if the IP is private/internal, False otherwise

    Raises:
        ValueError: If ip_address is not a valid IP address
    """
    try:
        ip_obj = ipaddress.ip_address(ip_address)
    except ValueError:
        raise ValueError(f"Invalid IP address: {ip_address}")

    # Example: ::ffff:127.0.0.1
    if isinstance(ip_obj, ipaddress.IPv6Address) and ip_obj.ipv4_mapped:
        return is_private_ip(str(ip_obj.ipv4_mapped))

    for network in PRIVATE_IP_RANGES:
        if ip_obj in network:
            return True

    return (
        ip_obj.is_private
        or ip_obj.is_loopback
        or ip_obj.is_link_local
        or ip_obj.is_multicast
        or ip_obj.is_reserved
        or ip_obj.is_unspecified
    )


def resolve_hostname(hostname: str) -> list[str] | None:
    """Resolve a hostname to every IP address it points to.

    Args:
        hostname: Domain name to resolve

    Returns:
        De-duplicated list of IP address strings, or None if resolution failed
    """
    try:
        addr_info = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except (socket.gaierror, socket.herror, OSError):
        return None

    addresses: list[str] = []
    for _family, _type, _proto, _canonname, sockaddr in addr_info:
        ip_str = str(sockaddr[0])
        if ip_str not in addresses:
            addresses.append(ip_str)

    return addresses or None


def validate_url(url: str) -> ValidationResult:
    """Validate a webhook URL against the SSRF policy.

    Args:
        url: The URL to validate

    Returns:
        ValidationResult; ``allowed`` is False when the URL must be rejected
    """
    if not url:
        return ValidationResult(allowed=False, reason="URL cannot be empty")

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as e:
        return ValidationResult(allowed=False, reason=f"Invalid URL format: {e}")

    if parsed.scheme not in ALLOWED_SCHEMES:
        return ValidationResult(
            allowed=False,
            reason=f"URL scheme '{parsed.scheme}' not allowed. "
            f"Allowed schemes: {', '.join(ALLOWED_SCHEMES)}",
        )

    if not hostname:
        return ValidationResult(allowed=False, reason="URL must include a hostname")

    # Normalize hostname (IDN to punycode, lowercase)
    try:
        host = hostname.encode("idna").decode("ascii").lower()
    except UnicodeError:
        return ValidationResult(allowed=False, reason=f"Invalid hostname: {hostname}")

    if host in BLOCKED_HOSTS:
        return ValidationResult(
            allowed=False,
            reason=f"URL cannot point to localhost or private addresses: {host}",
            host=host,
        )

    # IP literals are checked as-is, no DNS involved
    try:
        ip_obj = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        ip_obj = None

    if ip_obj is not None:
        if is_private_ip(str(ip_obj)):
            return ValidationResult(
                allowed=False,
                reason=f"URL cannot point to private or reserved IP addresses: {ip_obj}",
                host=host,
                resolved_addresses=[str(ip_obj)],
            )
        return ValidationResult(allowed=True, host=host, resolved_addresses=[str(ip_obj)])

    addresses = resolve_hostname(host)
    if addresses is None:
        # Might be a valid external domain with slow or flaky DNS
        logger.warning(f"DNS resolution failed for webhook URL host '{host}', allowing: {url}")
        return ValidationResult(allowed=True, host=host, dns_failed=True)

    for address in addresses:
        try:
            private = is_private_ip(address)
        except ValueError:
            continue
        if private:
            logger.warning(f"Blocked webhook URL: {host} resolves to private IP {address}")
            return ValidationResult(
                allowed=False,
                reason=f"Hostname '{host}' resolves to private or reserved IP address: {address}",
                host=host,
                resolved_addresses=addresses,
            )

    return ValidationResult(allowed=True, host=host, resolved_addresses=addresses)


def ensure_safe_webhook_url(url: str) -> ValidationResult:
    """Validate a webhook URL and raise if it is rejected.

    Args:
        url: Webhook endpoint URL

    Returns:
        The passing ValidationResult

    Raises:
        SSRFProtectionError: If the URL fails SSRF validation
    """
    result = validate_url(url)
    if not result.allowed:
        raise SSRFProtectionError(
            f"Webhook URL cannot point to private/internal addresses. {result.reason}"
        )
    return result
