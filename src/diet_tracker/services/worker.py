"""Cache worker lifecycle controller."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from diet_tracker.domain.http import ProxyRequest, StoredResponse
from diet_tracker.domain.lifecycle import (
    Effect,
    LifecycleEvent,
    WorkerPhase,
    WorkerState,
    transition,
)
from diet_tracker.domain.messages import parse_control_message
from diet_tracker.services.cache import CacheStorage
from diet_tracker.services.router import RequestRouter

_logger = logging.getLogger(__name__)

ControllerListener = Callable[[str, "CacheWorker"], None]


@dataclass
class ClientRegistry:
    """Open page instances and the worker controlling each of them."""

    controllers: dict[str, "CacheWorker | None"] = field(default_factory=dict)
    listeners: list[ControllerListener] = field(default_factory=list)

    def open(self, client_id: str, controller: "CacheWorker | None" = None) -> None:
        """Track a newly opened page."""
        self.controllers[client_id] = controller

    def close(self, client_id: str) -> None:
        """Forget a closed page."""
        self.controllers.pop(client_id, None)

    def controller_of(self, client_id: str) -> "CacheWorker | None":
        return self.controllers.get(client_id)

    def claim(self, worker: "CacheWorker") -> list[str]:
        """Make ``worker`` the controller of every open page.

        Listeners are told about each page whose controller changed; that is
        the signal for the page to reload.
        """
        changed = [
            client_id
            for client_id, current in self.controllers.items()
            if current is not worker
        ]
        for client_id in changed:
            self.controllers[client_id] = worker
            for listener in self.listeners:
                listener(client_id, worker)
        return changed

    def __len__(self) -> int:
        return len(self.controllers)


@dataclass
class CacheWorker:
    """One version of the cache worker, bound to a cache generation."""

    storage: CacheStorage
    router: RequestRouter
    clients: ClientRegistry
    skip_waiting_on_install: bool = True
    state: WorkerState = field(init=False)

    def __post_init__(self) -> None:
        self.state = WorkerState(generation=self.router.generation)

    @property
    def generation(self) -> str:
        return self.state.generation

    @property
    def phase(self) -> WorkerPhase:
        return self.state.phase

    async def install(self) -> None:
        """Install without precaching, then ask to skip the waiting phase."""
        await self.dispatch(LifecycleEvent.INSTALLED)
        if self.skip_waiting_on_install:
            await self.skip_waiting()

    async def skip_waiting(self) -> bool:
        """Activate now instead of waiting for open pages to close."""
        return await self.activate(LifecycleEvent.SKIP_WAITING)

    async def activate(self, event: LifecycleEvent) -> bool:
        """Apply an activating event, staying in place if cleanup fails.

        A failed eviction is logged and leaves the worker waiting, so a later
        skip-waiting message or page release can retry the handover.
        """
        try:
            await self.dispatch(event)
        except Exception:
            _logger.exception("Worker %s failed to activate", self.generation)
            return False
        return self.phase is WorkerPhase.ACTIVE

    async def handle_message(self, payload: object) -> None:
        """Apply a control message; anything unrecognized is ignored."""
        if parse_control_message(payload) is None:
            _logger.debug("Ignoring control message: %r", payload)
            return
        await self.skip_waiting()

    async def handle_fetch(self, request: ProxyRequest) -> StoredResponse | None:
        """Route a request; only the active worker intercepts anything."""
        if self.phase is not WorkerPhase.ACTIVE:
            return None
        return await self.router.handle(request)

    async def dispatch(self, event: LifecycleEvent) -> WorkerState:
        """Run the effects of a lifecycle event in order, then apply it.

        The new phase is only recorded once every effect has completed; if an
        effect raises, the worker keeps its previous phase.
        """
        result = transition(self.state, event)
        for effect in result.effects:
            if effect is Effect.EVICT_STALE_GENERATIONS:
                await self.evict_stale_generations()
            elif effect is Effect.CLAIM_CLIENTS:
                self.clients.claim(self)
        if result.state.phase is not self.state.phase:
            _logger.info(
                "Worker %s: %s -> %s (%s)",
                self.generation,
                self.state.phase,
                result.state.phase,
                event,
            )
        self.state = result.state
        if self.phase is WorkerPhase.REDUNDANT:
            self.router.retired = True
        return self.state

    async def evict_stale_generations(self) -> list[str]:
        """Delete every generation other than this worker's own."""
        stale = [name for name in await self.storage.keys() if name != self.generation]
        await asyncio.gather(*(self.storage.delete(name) for name in stale))
        if stale:
            _logger.info("Evicted stale cache generations: %s", ", ".join(stale))
        return stale
