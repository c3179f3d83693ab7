"""URL parsing and SSRF checks for outbound crawl requests."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from geocrawl.core.errors import ValidationError

# Blocked hostnames for SSRF protection (case-insensitive)
# Note: localhost is handled separately by allow_private_hosts
BLOCKED_HOSTNAMES = {
    "metadata.google.internal",
    "metadata",
}

ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class TargetUrl:
    """A URL split into the parts the crawler works with.

    Attributes:
        url: The original URL string
        origin: Scheme and authority, e.g. "https://example.com:8443"
        hostname: Lowercased hostname
        path: URL path, "/" when empty
    """

    url: str
    origin: str
    hostname: str
    path: str


def parse_target_url(url: str) -> TargetUrl:
    """Parse a crawl target into origin, hostname and path.

    Args:
        url: Absolute http(s) URL

    Returns:
        TargetUrl for the URL

    Raises:
        ValidationError: If the URL is malformed, not http(s), or has no host
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationError(f"Malformed URL: {url!r}")

    try:
        parsed = urlsplit(url.strip())
        # Accessing port validates it; urlsplit is lazy about this
        parsed.port
    except ValueError as e:
        raise ValidationError(f"Malformed URL: {url}") from e

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationError(f"URL must use http or https scheme: {url}")

    hostname = parsed.hostname
    if not hostname:
        raise ValidationError(f"URL missing hostname: {url}")

    return TargetUrl(
        url=url,
        origin=f"{parsed.scheme.lower()}://{parsed.netloc.rsplit('@', 1)[-1]}",
        hostname=hostname.lower(),
        path=parsed.path or "/",
    )


def normalize_domain(value: str | None) -> str | None:
    """Reduce a user-supplied domain to a bare lowercase hostname.

    Accepts "example.com", "www.example.com", "https://example.com/about" and
    the like. A leading "www." is dropped.

    Returns:
        The hostname, or None when ``value`` is blank or unparseable
    """
    if not value or not value.strip():
        return None
    text = value.strip().lower()
    if "://" not in text:
        text = f"//{text}"
    try:
        hostname = urlsplit(text).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return hostname.removeprefix("www.")


def url_domain(url: str) -> str | None:
    """Return the lowercase hostname of ``url`` without a leading "www."."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return hostname.lower().removeprefix("www.")


def is_same_site(url: str, domain: str | None) -> bool:
    """Return True if ``url`` is on ``domain`` or one of its subdomains.

    Example:
        >>> is_same_site("https://blog.example.com/post", "example.com")
        True
        >>> is_same_site("https://notexample.com/", "example.com")
        False
    """
    if not domain:
        return False
    hostname = url_domain(url)
    return hostname is not None and (
        hostname == domain or hostname.endswith(f".{domain}")
    )


class UrlValidator:
    """Validates crawl targets and prevents SSRF.

    Args:
        allow_private_hosts: Allow localhost and private/reserved IP addresses
    """

    def __init__(self, allow_private_hosts: bool = False) -> None:
        self.allow_private_hosts = allow_private_hosts

    def validate(self, url: str) -> TargetUrl:
        """Parse a URL and check it does not target internal resources.

        Args:
            url: URL to validate

        Returns:
            Parsed TargetUrl

        Raises:
            ValidationError: If URL is malformed or poses an SSRF risk
        """
        target = parse_target_url(url)
        hostname = target.hostname

        if hostname in BLOCKED_HOSTNAMES:
            raise ValidationError(f"Blocked hostname: {url}")

        if self.allow_private_hosts:
            return target

        try:
            ip = ipaddress.ip_address(hostname)
        except ValueError:
            ip = None
            # Decimal (2130706433) or hex (0x7f000001) forms of 127.0.0.1
            if re.match(r"^(0x[0-9a-fA-F]+|\d{8,})$", hostname):
                raise ValidationError(
                    f"IP address in alternate notation not allowed: {url}"
                )

        if hostname == "localhost" or (ip is not None and ip.is_loopback):
            raise ValidationError(f"Localhost access not allowed: {url}")

        if ip is not None and (
            ip.is_private
            or ip.is_link_local
            or ip.is_reserved
            or ip.is_multicast
            or ip.is_unspecified
        ):
            raise ValidationError(f"Non-public IP addresses not allowed: {url}")

        return target
