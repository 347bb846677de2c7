"""Target URI validation.

The target is resolved once, at configuration time, so that a bad URI is
reported before any virtual user starts instead of failing every request.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from urllib.parse import urlsplit

from loadcheck._internal.errors import ConfigError

_SUPPORTED_SCHEMES = ("http", "https")
_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class ValidatedTarget:
    """A destination URL that passed validation.

    Attributes:
        url: The normalised URL requests are sent to.
        scheme: ``"http"`` or ``"https"``.
        host: Host name or IP address.
        port: Explicit port, or the scheme default.
    """

    url: str
    scheme: str
    host: str
    port: int

    def join(self, path: str) -> str:
        """Build a request URL for ``path`` relative to the target.

        The path is appended to the target URL, so a target of
        ``http://api.test/v1`` and a path of ``/items`` give
        ``http://api.test/v1/items``. An empty path returns the target URL
        itself and absolute URLs are returned unchanged.

        Args:
            path: Path (``"/items"``) or absolute URL.

        Returns:
            The resolved URL.
        """
        if not path:
            return self.url
        if urlsplit(path).scheme:
            return path
        return f"{self.url.rstrip('/')}/{path.lstrip('/')}"

    def __str__(self) -> str:
        return self.url


def resolve(raw_uri: str | None) -> ValidatedTarget:
    """Validate a raw URI and return it as a ``ValidatedTarget``.

    Args:
        raw_uri: The URI as supplied by the user (flag, file or environment).

    Returns:
        The validated target.

    Raises:
        ConfigError: If the URI is missing, empty, not http(s), has no host,
            carries an invalid port or is otherwise malformed.
    """
    if raw_uri is None or not raw_uri.strip():
        msg = "Target URI is empty; set LOAD_TEST_URI or pass --uri"
        raise ConfigError(msg)

    uri = raw_uri.strip()
    if any(ch.isspace() for ch in uri):
        msg = f"Target URI must not contain whitespace: {uri!r}"
        raise ConfigError(msg)

    try:
        parts = urlsplit(uri)
        host = parts.hostname
        if host and "[" in parts.netloc:
            ipaddress.IPv6Address(host)
    except ValueError as exc:
        msg = f"Target URI is malformed: {uri!r} ({exc})"
        raise ConfigError(msg) from None

    scheme = parts.scheme.lower()
    if not scheme:
        msg = f"Target URI has no scheme (expected http:// or https://): {uri!r}"
        raise ConfigError(msg)
    if scheme not in _SUPPORTED_SCHEMES:
        msg = f"Unsupported target scheme {scheme!r} in {uri!r}; only http and https are supported"
        raise ConfigError(msg)

    if not host:
        msg = f"Target URI has no host: {uri!r}"
        raise ConfigError(msg)

    try:
        port = parts.port
    except ValueError:
        msg = f"Target URI has an invalid port: {uri!r}"
        raise ConfigError(msg) from None

    return ValidatedTarget(
        url=uri,
        scheme=scheme,
        host=host,
        port=port if port is not None else _DEFAULT_PORTS[scheme],
    )
