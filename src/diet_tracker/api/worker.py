"""Admin endpoints for the cache worker, with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

if TYPE_CHECKING:
    from diet_tracker.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/worker", dependencies=[Depends(require_admin)])
async def worker_state(request: Request) -> dict[str, object]:
    """Return the registration slots and the generations in storage."""
    container: AppContainer = request.app.state.container
    state = container.registration.describe()
    state["stored_generations"] = await container.storage.keys()
    return state


@router.post("/worker/register", dependencies=[Depends(require_admin)])
async def register_generation(
    request: Request, generation: str = Query(min_length=1)
) -> dict[str, object]:
    """Install a worker for a new build's cache generation."""
    container: AppContainer = request.app.state.container
    await container.registration.register(generation)
    return container.registration.describe()
