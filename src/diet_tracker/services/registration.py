"""Registration of cache worker versions on behalf of the page."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from diet_tracker.domain.http import ProxyRequest, StoredResponse
from diet_tracker.domain.lifecycle import LifecycleEvent, WorkerPhase
from diet_tracker.services.worker import CacheWorker, ClientRegistry

_logger = logging.getLogger(__name__)

WorkerFactory = Callable[[str, ClientRegistry], CacheWorker]


@dataclass
class WorkerRegistration:
    """Tracks the installing, waiting and active workers for the app scope."""

    worker_factory: WorkerFactory
    clients: ClientRegistry = field(default_factory=ClientRegistry)
    installing: CacheWorker | None = None
    waiting: CacheWorker | None = None
    active: CacheWorker | None = None

    @property
    def update_available(self) -> bool:
        """A new version is installed while an older one still controls pages."""
        return self.waiting is not None and self.active is not None

    async def register(self, generation: str) -> CacheWorker:
        """Install a worker for ``generation`` and settle it into a slot."""
        if self.active is not None and self.active.generation == generation:
            return self.active
        if self.waiting is not None and self.waiting.generation == generation:
            return self.waiting
        worker = self.worker_factory(generation, self.clients)
        self.installing = worker
        try:
            await worker.install()
        except Exception:
            _logger.exception("Worker %s failed to install", generation)
            await worker.dispatch(LifecycleEvent.INSTALL_FAILED)
            self.installing = None
            raise
        self.installing = None
        await self._settle(worker)
        return worker

    async def post_message(self, payload: object) -> None:
        """Deliver a control message to the waiting worker, else the active one."""
        target = self.waiting or self.active
        if target is None:
            return
        await target.handle_message(payload)
        await self._settle(target)

    async def handle_fetch(self, request: ProxyRequest) -> StoredResponse | None:
        """Route a request through the active worker, if there is one."""
        if self.active is None:
            return None
        return await self.active.handle_fetch(request)

    def open_client(self, client_id: str) -> None:
        """Track a new page; it starts out controlled by the active worker."""
        self.clients.open(client_id, self.active)

    async def close_client(self, client_id: str) -> None:
        """Forget a page; the last one closing releases a waiting worker."""
        self.clients.close(client_id)
        if self.waiting is not None and len(self.clients) == 0:
            worker = self.waiting
            await worker.activate(LifecycleEvent.CLIENTS_RELEASED)
            await self._settle(worker)

    async def _settle(self, worker: CacheWorker) -> None:
        if worker.phase is WorkerPhase.WAITING and self.active is None:
            # Nothing controls the scope yet, so no one is waited for.
            await worker.activate(LifecycleEvent.CLIENTS_RELEASED)
        if worker.phase is WorkerPhase.WAITING:
            if self.waiting is not None and self.waiting is not worker:
                await self.waiting.dispatch(LifecycleEvent.SUPERSEDED)
            self.waiting = worker
            return
        if worker.phase is WorkerPhase.ACTIVE and self.active is not worker:
            previous = self.active
            self.active = worker
            if self.waiting is worker:
                self.waiting = None
            if previous is not None:
                await previous.dispatch(LifecycleEvent.SUPERSEDED)

    def describe(self) -> dict[str, object]:
        """Return a JSON-friendly snapshot of the registration."""
        return {
            "active": _describe_worker(self.active),
            "waiting": _describe_worker(self.waiting),
            "installing": _describe_worker(self.installing),
            "update_available": self.update_available,
            "open_clients": len(self.clients),
        }


def _describe_worker(worker: CacheWorker | None) -> dict[str, str] | None:
    if worker is None:
        return None
    return {"generation": worker.generation, "phase": str(worker.phase)}
