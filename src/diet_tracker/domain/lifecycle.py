"""Cache worker lifecycle as a pure state machine."""

from dataclasses import dataclass, replace
from enum import StrEnum


class WorkerPhase(StrEnum):
    """Lifecycle phase of a cache worker."""

    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVE = "active"
    REDUNDANT = "redundant"


class LifecycleEvent(StrEnum):
    """Events that move a worker through its lifecycle."""

    INSTALLED = "installed"
    INSTALL_FAILED = "install_failed"
    SKIP_WAITING = "skip_waiting"
    CLIENTS_RELEASED = "clients_released"
    SUPERSEDED = "superseded"


class Effect(StrEnum):
    """Side effects the worker must run after a transition, in order."""

    EVICT_STALE_GENERATIONS = "evict_stale_generations"
    CLAIM_CLIENTS = "claim_clients"


_ACTIVATION_EFFECTS = (Effect.EVICT_STALE_GENERATIONS, Effect.CLAIM_CLIENTS)


@dataclass(frozen=True)
class WorkerState:
    """Lifecycle state owned by one worker."""

    generation: str
    phase: WorkerPhase = WorkerPhase.INSTALLING


@dataclass(frozen=True)
class Transition:
    """Result of applying an event: the next state and effects to run."""

    state: WorkerState
    effects: tuple[Effect, ...] = ()


def transition(state: WorkerState, event: LifecycleEvent) -> Transition:
    """Return the state reached from ``state`` on ``event``.

    Events that do not apply to the current phase leave the state unchanged
    and produce no effects.
    """
    phase = state.phase
    if phase is WorkerPhase.REDUNDANT:
        return Transition(state)
    if event is LifecycleEvent.SUPERSEDED:
        return Transition(replace(state, phase=WorkerPhase.REDUNDANT))
    if phase is WorkerPhase.INSTALLING:
        if event is LifecycleEvent.INSTALLED:
            return Transition(replace(state, phase=WorkerPhase.WAITING))
        if event is LifecycleEvent.INSTALL_FAILED:
            return Transition(replace(state, phase=WorkerPhase.REDUNDANT))
    if phase is WorkerPhase.WAITING and event in {
        LifecycleEvent.SKIP_WAITING,
        LifecycleEvent.CLIENTS_RELEASED,
    }:
        return Transition(
            replace(state, phase=WorkerPhase.ACTIVE), effects=_ACTIVATION_EFFECTS
        )
    return Transition(state)
