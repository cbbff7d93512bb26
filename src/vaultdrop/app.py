"""Vaultdrop FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It wires observability middleware, the download routes, and
injects the record store.

Usage:
    # Local development (in-memory store)
    from vaultdrop import create_app, VaultdropSettings
    app = create_app(VaultdropSettings())

    # JSON-file persistence
    app = create_app(VaultdropSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, store=store, clock=lambda: fixed_now)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fastapi import FastAPI
from fastapi.responses import Response

from .downloads.routes import create_download_router
from .downloads.service import DownloadService
from .observability.logging import configure_logging, get_logger
from .observability.metrics import metrics_text
from .observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .settings import VaultdropSettings
from .store import RecordStore, build_store

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for injected collaborators.

    Stored on ``app.state.deps`` so route handlers and tests can reach them.
    """

    store: RecordStore
    download_service: DownloadService


def create_app(
    settings: VaultdropSettings | None = None,
    *,
    store: RecordStore | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Create a configured vaultdrop FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        store: Record store override. When None, the backend named by
            ``settings.store_backend`` is built.
        clock: Source of the current UTC time (tests pin it).

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = VaultdropSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Vaultdrop settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    if store is None:
        store = build_store(settings)

    service = DownloadService(
        store,
        clock=clock,
        files_key=settings.files_key,
        activities_key=settings.activities_key,
    )
    deps = AppDependencies(store=store, download_service=service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        logger.info(
            "vaultdrop_starting",
            environment=settings.environment,
            store_backend=type(store).__name__,
        )
        yield
        logger.info("vaultdrop_stopping")

    app = FastAPI(title="vaultdrop", lifespan=lifespan)
    app.state.settings = settings
    app.state.deps = deps

    # Added last runs first: request ID must be set before logging.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    @app.get("/health")
    async def health():
        problems = await service.resolver.scan_malformed()
        return {
            "status": "ok" if not problems else "degraded",
            "environment": settings.environment,
            "malformed_records": len(problems),
        }

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_download_router(service))
    return app
