"""Minecharts FastAPI application entry point."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from minecharts import __version__
from minecharts.auth.chain import ApiKeyUsageRecorder
from minecharts.config import get_settings
from minecharts.db import close_db, get_async_session, init_db
from minecharts.db.store import CredentialStore, SQLCredentialStore
from minecharts.drivers.base import Driver
from minecharts.drivers.k8s import K8sDriver
from minecharts.errors import MinechartsError, ValidationError
from minecharts.services.http import HTTPClientManager

logger = structlog.get_logger()


@asynccontextmanager
async def sql_store_factory() -> AsyncIterator[CredentialStore]:
    """Short-lived store on its own session (background writes)."""
    async with get_async_session() as session:
        yield SQLCredentialStore(session)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("minecharts.startup", version=__version__)
    await init_db()
    await app.state.http.startup()

    yield

    logger.info("minecharts.shutdown")
    await app.state.api_key_usage.drain()
    await app.state.http.shutdown()
    await app.state.driver.close()
    await close_db()


def create_app(
    *,
    driver: Driver | None = None,
    store_factory: Callable[[], AbstractAsyncContextManager[CredentialStore]] | None = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        driver: Orchestration driver; defaults to a K8sDriver from settings
        store_factory: Opens a standalone store for background writes
    """
    settings = get_settings()

    app = FastAPI(
        title="Minecharts",
        description="Control plane for Minecraft servers on Kubernetes",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.driver = driver or K8sDriver(settings.kubernetes)
    app.state.api_key_usage = ApiKeyUsageRecorder(store_factory or sql_store_factory)
    app.state.http = HTTPClientManager(timeout=settings.oauth.http_timeout)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(MinechartsError)
    async def minecharts_error_handler(request: Request, exc: MinechartsError):
        request_id = getattr(request.state, "request_id", None)
        if exc.status_code >= 500:
            logger.error("request.failed", code=exc.code, message=exc.message, request_id=request_id)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, "request_id", None)
        error = ValidationError(
            "Invalid request",
            details={
                "errors": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
                    for e in exc.errors()
                ]
            },
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict(request_id))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"message": "pong"}

    from minecharts.api.v1 import router as v1_router

    app.include_router(v1_router, prefix="/v1")

    return app


# Create default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "minecharts.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )
