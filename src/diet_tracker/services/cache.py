"""Generation-tagged response cache abstractions."""

from dataclasses import dataclass
from typing import Protocol

from diet_tracker.domain.http import ProxyRequest, StoredResponse


class CacheGeneration(Protocol):
    """One named version of the response cache."""

    name: str

    async def match(self, request: ProxyRequest) -> StoredResponse | None:
        """Return the stored response for the request key, if any."""

    async def put(self, request: ProxyRequest, response: StoredResponse) -> None:
        """Store a response snapshot under the request key."""


class CacheStorage(Protocol):
    """Durable store holding every cache generation."""

    async def keys(self) -> list[str]:
        """Return the names of all existing generations."""

    async def open(self, name: str) -> CacheGeneration:
        """Return the named generation, creating it if needed."""

    async def delete(self, name: str) -> bool:
        """Delete a generation and its entries; return whether it existed."""


@dataclass
class InMemoryCacheGeneration(CacheGeneration):
    """Dictionary-backed generation."""

    name: str
    _entries: dict[tuple[str, str], StoredResponse]

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries = {}

    async def match(self, request: ProxyRequest) -> StoredResponse | None:
        """Return the stored response for the request key, if any."""
        return self._entries.get(request.cache_key)

    async def put(self, request: ProxyRequest, response: StoredResponse) -> None:
        """Store a response; only GET requests may be cached."""
        if request.method.upper() != "GET":
            raise ValueError(f"Cannot cache {request.method} requests")
        self._entries[request.cache_key] = response

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class InMemoryCacheStorage(CacheStorage):
    """In-memory storage for local runs and tests."""

    _generations: dict[str, InMemoryCacheGeneration]

    def __init__(self) -> None:
        self._generations = {}

    async def keys(self) -> list[str]:
        """Return generation names in creation order."""
        return list(self._generations)

    async def open(self, name: str) -> InMemoryCacheGeneration:
        """Return the named generation, creating it if needed."""
        generation = self._generations.get(name)
        if generation is None:
            generation = InMemoryCacheGeneration(name)
            self._generations[name] = generation
        return generation

    async def delete(self, name: str) -> bool:
        """Delete a generation and its entries."""
        return self._generations.pop(name, None) is not None
