"""HTTP client used for baseline and injection requests."""

import itertools
import time
from dataclasses import dataclass

import httpx

from mutascan.errors import NetworkError

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_0) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/605.1.15",
)


@dataclass
class HTTPResponse:
    """Captured response with its round-trip time in seconds."""

    url: str
    status_code: int
    headers: dict[str, str]
    body: str
    response_time: float
    content_type: str = ""
    server: str = ""

    @property
    def elapsed_ms(self) -> int:
        return int(self.response_time * 1000)


class HTTPClient:
    """Async HTTP client for scan requests.

    Requests without a User-Agent header get one from :data:`USER_AGENTS`,
    rotating in request order.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        follow_redirects: bool = False,
        verify_ssl: bool = False,
        proxy: str | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.follow_redirects = follow_redirects
        self.verify_ssl = verify_ssl
        self.proxy = proxy
        self.headers = dict(headers or {})
        self._transport = transport
        self._agents = itertools.cycle(USER_AGENTS)
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=self.follow_redirects,
            verify=self.verify_ssl,
            proxy=self.proxy,
            headers=self.headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        content: str | None = None,
        timeout: float | None = None,
    ) -> HTTPResponse:
        """Make an HTTP request. Transport failures raise NetworkError."""
        if not self.client:
            raise RuntimeError("HTTPClient must be entered with `async with` before use")

        request_headers = dict(headers or {})
        if not any(name.lower() == "user-agent" for name in (*self.headers, *request_headers)):
            request_headers["User-Agent"] = next(self._agents)

        start = time.perf_counter()
        try:
            response = await self.client.request(
                method=method,
                url=url,
                headers=request_headers,
                content=content,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise NetworkError(url, f"timed out ({type(exc).__name__})") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(url, str(exc) or type(exc).__name__) from exc
        elapsed = time.perf_counter() - start

        return HTTPResponse(
            url=str(response.url),
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.text,
            response_time=elapsed,
            content_type=response.headers.get("content-type", ""),
            server=response.headers.get("server", ""),
        )

    async def get(self, url: str, headers: dict[str, str] | None = None) -> HTTPResponse:
        """Make a GET request."""
        return await self.request("GET", url, headers=headers)
