"""FastAPI application factory."""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import FastAPI, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from diet_tracker.api.worker import router as worker_admin_router
from diet_tracker.app_logging import configure_logging
from diet_tracker.containers import AppContainer
from diet_tracker.domain.foods import (
    LabelReading,
    MealEstimate,
    MeteredAnalysis,
    ScannedFood,
)
from diet_tracker.domain.http import (
    NetworkError,
    OfflineNavigationError,
    ProxyRequest,
    StoredResponse,
)
from diet_tracker.domain.routing import is_navigation
from diet_tracker.services.metering import MeteringUnavailableError, QuotaExceededError
from diet_tracker.services.vision import (
    VisionQuotaExceededError,
    VisionUnavailableError,
)

_PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class PhotoAnalysisRequest(BaseModel):
    """Body for photo analysis."""

    image: str = Field(min_length=1)
    mode: Literal["food", "label"] = "food"


class MeteredAnalysisRequest(BaseModel):
    """Body for metered analysis."""

    image: str = Field(min_length=1)
    subscriber_id: str = Field(min_length=1)


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        await state_container.registration.register(
            state_container.settings.cache_generation
        )
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container
    pending_reloads: set[str] = set()

    def flag_reload(client_id: str, _worker: object) -> None:
        pending_reloads.add(client_id)

    container.registration.clients.listeners.append(flag_reload)

    app.include_router(worker_admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/worker/messages", status_code=status.HTTP_202_ACCEPTED)
    async def post_worker_message(request: Request) -> Response:
        """Page-to-worker control channel; unknown messages are dropped."""
        state_container: AppContainer = request.app.state.container
        raw = await request.body()
        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            payload = None
        await state_container.registration.post_message(payload)
        return Response(status_code=status.HTTP_202_ACCEPTED)

    @app.put("/worker/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def open_client(client_id: str, request: Request) -> Response:
        """Register an open page instance."""
        state_container: AppContainer = request.app.state.container
        state_container.registration.open_client(client_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/worker/clients/{client_id}")
    async def client_status(client_id: str, request: Request) -> dict[str, object]:
        """Report the page's controlling generation and whether to reload.

        The reload flag is set when a newly activated worker claims the page
        and is cleared once read.
        """
        state_container: AppContainer = request.app.state.container
        clients = state_container.registration.clients
        if client_id not in clients.controllers:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Unknown client"
            )
        controller = clients.controller_of(client_id)
        reload = client_id in pending_reloads
        pending_reloads.discard(client_id)
        return {
            "client_id": client_id,
            "controller": controller.generation if controller else None,
            "reload": reload,
        }

    @app.delete("/worker/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def close_client(client_id: str, request: Request) -> Response:
        """Forget a closed page instance."""
        state_container: AppContainer = request.app.state.container
        await state_container.registration.close_client(client_id)
        pending_reloads.discard(client_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/api/foods/barcode/{barcode}")
    async def lookup_barcode(barcode: str, request: Request) -> ScannedFood:
        """Look up a packaged food by barcode."""
        state_container: AppContainer = request.app.state.container
        if not barcode.isdigit():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST)
        food = await state_container.food_lookup_service.lookup(barcode)
        if food is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Product not found"
            )
        return food

    @app.post("/api/vision/analyze")
    async def analyze_photo(
        body: PhotoAnalysisRequest, request: Request
    ) -> MealEstimate | LabelReading:
        """Estimate macros from a meal photo or read a nutrition label."""
        state_container: AppContainer = request.app.state.container
        try:
            return await state_container.photo_service.analyze(body.image, body.mode)
        except VisionUnavailableError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
            ) from exc
        except VisionQuotaExceededError as exc:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc)
            ) from exc
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
            ) from exc
        except Exception as exc:
            logger.exception("Photo analysis failed")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY, detail="Analysis failed"
            ) from exc

    @app.post("/api/metering/analyze")
    async def metered_analysis(
        body: MeteredAnalysisRequest, request: Request
    ) -> MeteredAnalysis:
        """Run an analysis that counts against the subscriber's quota."""
        state_container: AppContainer = request.app.state.container
        try:
            return await state_container.metering_service.analyze(
                body.image, body.subscriber_id
            )
        except MeteringUnavailableError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
            ) from exc
        except QuotaExceededError as exc:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": str(exc),
                    "reset_date": exc.reset_date.isoformat()
                    if exc.reset_date
                    else None,
                },
            ) from exc
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
            ) from exc
        except Exception as exc:
            logger.exception("Metered analysis failed")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY, detail="Analysis failed"
            ) from exc

    @app.api_route("/{path:path}", methods=_PROXY_METHODS, include_in_schema=False)
    async def proxy(path: str, request: Request) -> Response:
        """Serve page requests through the active cache worker."""
        state_container: AppContainer = request.app.state.container
        headers = dict(request.headers)
        proxy_request = ProxyRequest(
            method=request.method,
            url=str(request.url),
            navigate=is_navigation(request.method, headers),
            headers=tuple(request.headers.items()),
        )
        try:
            served = await state_container.registration.handle_fetch(proxy_request)
            if served is None:
                served = await state_container.origin.forward(
                    proxy_request, body=await request.body() or None
                )
        except OfflineNavigationError:
            logger.warning("Offline with no cached page for %s", path)
            return Response(
                "Offline and this page is not cached.",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                media_type="text/plain",
            )
        except NetworkError:
            logger.warning("Origin unreachable for %s", path)
            return Response(
                "Upstream origin unreachable.",
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                media_type="text/plain",
            )
        return _to_response(served)

    return app


def _to_response(served: StoredResponse) -> Response:
    response = Response(content=served.body, status_code=served.status)
    for name, value in served.headers:
        response.headers.append(name, value)
    return response
