"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from nutrition_lookup.app_logging import configure_logging
from nutrition_lookup.containers import AppContainer
from nutrition_lookup.domain.nutrition import (
    LookupMode,
    LookupOptions,
    LookupResult,
    NotFound,
    PlaceholderResult,
)


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        try:
            await app.state.container.close_resources()
        except Exception:
            logger.exception("Failed to close provider sessions")

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/providers")
    async def providers(request: Request) -> dict[str, object]:
        """Report configured providers, disabled ones and their budgets."""
        state_container: AppContainer = request.app.state.container
        return state_container.orchestrator.provider_status()

    @app.get("/lookup/name")
    async def lookup_name(  # noqa: PLR0913
        request: Request,
        q: str = Query(min_length=1),
        mode: LookupMode | None = None,
        max_providers: int | None = Query(default=None, ge=1),
        timeout_ms: int | None = Query(default=None, ge=1),
        ttl_ms: int | None = Query(default=None, ge=0),
    ) -> dict[str, object]:
        """Look up a food by name."""
        state_container: AppContainer = request.app.state.container
        if not q.strip():
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)
        result = await state_container.orchestrator.lookup_by_name(
            q,
            LookupOptions(
                max_providers=max_providers,
                mode=mode,
                timeout_ms=timeout_ms,
                ttl_ms=ttl_ms,
            ),
        )
        return _result_payload(result)

    @app.get("/lookup/barcode/{code}", response_model=None)
    async def lookup_barcode(  # noqa: PLR0913
        code: str,
        request: Request,
        mode: LookupMode | None = None,
        max_providers: int | None = Query(default=None, ge=1),
        timeout_ms: int | None = Query(default=None, ge=1),
        ttl_ms: int | None = Query(default=None, ge=0),
    ) -> dict[str, object] | JSONResponse:
        """Look up a product by barcode."""
        state_container: AppContainer = request.app.state.container
        if not code.strip().isdigit():
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Barcode must be numeric",
            )
        result = await state_container.orchestrator.lookup_by_barcode(
            code,
            LookupOptions(
                max_providers=max_providers,
                mode=mode,
                timeout_ms=timeout_ms,
                ttl_ms=ttl_ms,
            ),
        )
        if isinstance(result, NotFound):
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content=_result_payload(result),
            )
        return _result_payload(result)

    return app


def _result_payload(result: LookupResult) -> dict[str, object]:
    """Render a lookup result with a status discriminator."""
    if isinstance(result, NotFound):
        return {"status": "not_found", **result.to_dict()}
    if isinstance(result, PlaceholderResult):
        return {"status": "placeholder", **result.to_dict()}
    return {"status": "reconciled", **result.to_dict()}
