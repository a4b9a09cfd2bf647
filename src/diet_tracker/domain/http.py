"""Request and response snapshots handled by the cache worker."""

from dataclasses import dataclass, field, replace
from urllib.parse import urlsplit


class NetworkError(Exception):
    """Raised when the upstream origin could not be reached."""


class OfflineNavigationError(NetworkError):
    """Raised when a navigation misses the network and every cache fallback."""


@dataclass(frozen=True)
class ProxyRequest:
    """A request intercepted from the page."""

    method: str
    url: str
    navigate: bool = False
    headers: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def cache_key(self) -> tuple[str, str]:
        """Identity used for cache entries."""
        return (self.method.upper(), self.url)

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme.lower()

    @property
    def origin(self) -> str:
        return origin_of(self.url)

    def with_url(self, url: str) -> "ProxyRequest":
        """Return a GET request for another URL carrying the same headers."""
        return replace(self, method="GET", url=url, navigate=False)


@dataclass(frozen=True)
class StoredResponse:
    """Immutable response snapshot: status, headers and body."""

    status: int
    headers: tuple[tuple[str, str], ...] = field(default_factory=tuple)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300  # noqa: PLR2004

    def header(self, name: str) -> str | None:
        """Return the first header value matching name, case-insensitively."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def clone(self) -> "StoredResponse":
        """Return an independent copy of the snapshot."""
        return StoredResponse(
            status=self.status, headers=tuple(self.headers), body=bytes(self.body)
        )


def origin_of(url: str) -> str:
    """Return scheme://host[:port] for a URL, lowercased."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()
