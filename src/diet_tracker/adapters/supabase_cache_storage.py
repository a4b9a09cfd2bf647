"""Supabase-backed durable cache storage."""

import asyncio
import base64
from dataclasses import dataclass

from supabase import Client

from diet_tracker.domain.http import ProxyRequest, StoredResponse
from diet_tracker.services.cache import CacheGeneration, CacheStorage

_GENERATIONS_TABLE = "cache_generations"
_ENTRIES_TABLE = "cache_entries"


@dataclass
class SupabaseCacheGeneration(CacheGeneration):
    """One generation stored as rows of the cache_entries table."""

    client: Client
    name: str

    async def match(self, request: ProxyRequest) -> StoredResponse | None:
        """Return the stored response for the request key, if any."""
        return await asyncio.to_thread(self._match, request)

    async def put(self, request: ProxyRequest, response: StoredResponse) -> None:
        """Upsert the response row for the request key."""
        if request.method.upper() != "GET":
            raise ValueError(f"Cannot cache {request.method} requests")
        await asyncio.to_thread(self._put, request, response)

    def _match(self, request: ProxyRequest) -> StoredResponse | None:
        method, url = request.cache_key
        response = (
            self.client.table(_ENTRIES_TABLE)
            .select("status, headers, body_b64")
            .eq("generation", self.name)
            .eq("method", method)
            .eq("url", url)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return StoredResponse(
            status=int(row["status"]),
            headers=tuple((str(k), str(v)) for k, v in row.get("headers") or []),
            body=base64.b64decode(row.get("body_b64") or ""),
        )

    def _put(self, request: ProxyRequest, response: StoredResponse) -> None:
        method, url = request.cache_key
        self.client.table(_ENTRIES_TABLE).upsert(
            {
                "generation": self.name,
                "method": method,
                "url": url,
                "status": response.status,
                "headers": [list(pair) for pair in response.headers],
                "body_b64": base64.b64encode(response.body).decode("ascii"),
            },
            on_conflict="generation,method,url",
        ).execute()


@dataclass
class SupabaseCacheStorage(CacheStorage):
    """Generations persisted in Supabase so they survive restarts."""

    client: Client

    async def keys(self) -> list[str]:
        """Return the names of all stored generations."""
        return await asyncio.to_thread(self._keys)

    async def open(self, name: str) -> SupabaseCacheGeneration:
        """Ensure the generation row exists and return a handle to it."""
        await asyncio.to_thread(self._ensure, name)
        return SupabaseCacheGeneration(client=self.client, name=name)

    async def delete(self, name: str) -> bool:
        """Delete a generation with all of its entries."""
        return await asyncio.to_thread(self._delete, name)

    def _keys(self) -> list[str]:
        response = (
            self.client.table(_GENERATIONS_TABLE)
            .select("name")
            .order("created_at")
            .execute()
        )
        return [str(row["name"]) for row in response.data or []]

    def _ensure(self, name: str) -> None:
        self.client.table(_GENERATIONS_TABLE).upsert(
            {"name": name}, on_conflict="name", ignore_duplicates=True
        ).execute()

    def _delete(self, name: str) -> bool:
        self.client.table(_ENTRIES_TABLE).delete().eq("generation", name).execute()
        response = (
            self.client.table(_GENERATIONS_TABLE).delete().eq("name", name).execute()
        )
        return bool(response.data)
