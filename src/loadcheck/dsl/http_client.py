"""Instrumented HTTP client with auto-timing, one instance per virtual user."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy

from loadcheck import __version__
from loadcheck._internal.errors import NetworkError

if TYPE_CHECKING:
    from loadcheck._internal.types import Headers, ResponseHeaders
    from loadcheck.dsl.target import ValidatedTarget

USER_AGENT = f"loadcheck/{__version__}"


@dataclass(frozen=True)
class Response:
    """A fully read HTTP response, as seen by checks.

    A request that failed at the transport level is represented with
    ``status == 0`` and ``error`` set, so that status checks simply fail.

    Attributes:
        method: HTTP method of the request.
        url: Full request URL.
        status: HTTP status code (0 if the request failed).
        latency_ms: Time from sending the request to reading the full body.
        headers: Response headers, case-insensitive; a name sent several
            times keeps all of its values.
        body: Raw response body.
        error: Transport error description, None on success.
    """

    method: str
    url: str
    status: int
    latency_ms: float
    headers: ResponseHeaders = field(default_factory=lambda: CIMultiDictProxy(CIMultiDict()))
    body: bytes = b""
    error: str | None = None

    @classmethod
    def from_network_error(cls, exc: NetworkError) -> Response:
        """Build the status-0 response recorded for a transport failure."""
        return cls(
            method=exc.method,
            url=exc.url,
            status=0,
            latency_ms=exc.latency_ms,
            error=str(exc),
        )

    @property
    def ok(self) -> bool:
        """Return True for 2xx responses."""
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        """Decode the body as text, replacing undecodable bytes."""
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.body)


class HttpClient:
    """Async HTTP client wrapping ``aiohttp.ClientSession``.

    Each virtual user owns one client, so connections are reused within a
    virtual user but never shared between them. Every request is timed and
    its body read before returning, and transport failures (connection
    errors, DNS failures, timeouts) are raised as ``NetworkError``.

    Attributes:
        target: The validated target that relative paths are resolved
            against.
        headers: Mutable headers applied to every request.
        vu_id: Identifier of the owning virtual user.
    """

    def __init__(
        self,
        target: ValidatedTarget,
        headers: Headers | None = None,
        *,
        vu_id: int = 0,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            target: Target that request paths are resolved against.
            headers: Default headers applied to every request.
            vu_id: Virtual user identifier for outcome attribution.
            timeout: Total per-request timeout in seconds.
        """
        self.target = target
        self.headers: Headers = {"User-Agent": USER_AGENT, **(headers or {})}
        self.vu_id = vu_id
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpClient:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def get(self, path: str = "", **kwargs: Any) -> Response:
        """Send a GET request to ``path`` (the target itself by default)."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str = "", **kwargs: Any) -> Response:
        """Send a POST request."""
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str = "", **kwargs: Any) -> Response:
        """Send a PUT request."""
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str = "", **kwargs: Any) -> Response:
        """Send a PATCH request."""
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str = "", **kwargs: Any) -> Response:
        """Send a DELETE request."""
        return await self.request("DELETE", path, **kwargs)

    async def request(self, method: str, path: str = "", **kwargs: Any) -> Response:
        """Send an HTTP request and read the whole response.

        Args:
            method: HTTP method (GET, POST, etc.).
            path: Path appended to the target URL, or an absolute URL.
            **kwargs: Additional keyword arguments passed to aiohttp
                (``json``, ``data``, ``params``, ``headers``...). Headers
                given here are merged over the client headers.

        Returns:
            The fully read ``Response``.

        Raises:
            NetworkError: If the request fails before a response is read.
            RuntimeError: If the client is used outside of an async context
                manager.
        """
        if self._session is None:
            msg = "HttpClient must be used as an async context manager"
            raise RuntimeError(msg)

        url = self.target.join(path)
        headers = {**self.headers, **kwargs.pop("headers", {})}

        start = time.monotonic()
        try:
            async with self._session.request(method, url, headers=headers, **kwargs) as resp:
                body = await resp.read()
                status = resp.status
                resp_headers = CIMultiDictProxy(CIMultiDict(resp.headers))
        except (aiohttp.ClientError, TimeoutError) as exc:
            latency_ms = (time.monotonic() - start) * 1000
            detail = str(exc) or "request timed out"
            raise NetworkError(
                f"{type(exc).__name__}: {detail}",
                method=method,
                url=url,
                latency_ms=latency_ms,
            ) from exc

        return Response(
            method=method,
            url=url,
            status=status,
            latency_ms=(time.monotonic() - start) * 1000,
            headers=resp_headers,
            body=body,
        )
