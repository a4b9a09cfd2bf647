"""HTTPX client for the upstream static origin."""

from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from diet_tracker.domain.http import NetworkError, ProxyRequest, StoredResponse
from diet_tracker.services.router import OriginFetcher

# Headers that describe one hop and must not be replayed or stored.
_HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
}


@dataclass
class HttpxOriginClient(OriginFetcher):
    """Fetches page requests from the origin the app is published on."""

    origin_url: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 15.0

    @classmethod
    def create(cls, origin_url: str, timeout_seconds: float) -> "HttpxOriginClient":
        """Create an origin client with a managed httpx session."""
        return cls(
            origin_url=origin_url,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
        )

    def upstream_url(self, url: str) -> str:
        """Rewrite a public URL onto the origin, keeping path and query."""
        parts = urlsplit(url)
        target = self.origin_url.rstrip("/") + (parts.path or "/")
        if parts.query:
            target = f"{target}?{parts.query}"
        return target

    async def fetch(self, request: ProxyRequest) -> StoredResponse:
        """Fetch a GET request from the origin."""
        return await self.forward(request, body=None)

    async def forward(
        self, request: ProxyRequest, body: bytes | None = None
    ) -> StoredResponse:
        """Send any request to the origin without consulting the cache."""
        try:
            response = await self.http_client.request(
                request.method,
                self.upstream_url(request.url),
                headers=_forwardable(request.headers),
                content=body,
                timeout=self.timeout_seconds,
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"Origin unreachable for {request.url}: {exc}") from exc
        return StoredResponse(
            status=response.status_code,
            headers=_forwardable(tuple(response.headers.items())),
            body=response.content,
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _forwardable(headers: tuple[tuple[str, str], ...]) -> tuple[tuple[str, str], ...]:
    return tuple(
        (name, value) for name, value in headers if name.lower() not in _HOP_BY_HOP
    )
