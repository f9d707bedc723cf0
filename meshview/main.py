"""FastAPI application factory with lifespan events."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meshview.api.dependencies import set_topology_service
from meshview.api.router import api_router
from meshview.config import get_settings
from meshview.renderer.networkx_renderer import NetworkXRenderer
from meshview.services.mesh_client import MeshClient
from meshview.services.topology_service import TopologyService
from meshview.utils.exceptions import FetchFailure, InvalidTransitionError, RendererError
from meshview.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    service = TopologyService(
        client=MeshClient(settings),
        renderer=NetworkXRenderer(),
        settings=settings,
    )
    set_topology_service(service)

    logger.info("app_started", mesh_api_url=settings.MESH_API_URL, cluster=settings.MESH_CLUSTER)
    yield

    # Shutdown
    await service.shutdown()
    set_topology_service(None)
    logger.info("app_stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    application = FastAPI(
        title="meshview",
        description="Service-mesh topology graph and traffic metrics",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(api_router)

    @application.middleware("http")
    async def request_id_middleware(request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @application.exception_handler(FetchFailure)
    async def fetch_failure_handler(request: Request, exc: FetchFailure) -> JSONResponse:
        logger.warning("fetch_failure", error=str(exc), status=exc.status_code, path=request.url.path)
        return JSONResponse(
            status_code=502,
            content={"detail": str(exc), "retryable": exc.retryable},
        )

    @application.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @application.exception_handler(RendererError)
    async def renderer_error_handler(request: Request, exc: RendererError) -> JSONResponse:
        logger.error("renderer_error", error=str(exc), path=request.url.path)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "type": type(exc).__name__},
        )

    return application


app = create_app()
