"""FastAPI application factory for RepoMentor.

Creates and configures the FastAPI app with CORS and all route modules
registered. The session sweeper runs for the lifetime of the app.
"""

import logging
from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger(__name__)


def create_app(
    registry,
    ingestion,
    search,
    analyzer,
    gateway,
    ingest_batch_size: int = 3,
    start_sweeper: bool = True,
    http_clients: Sequence = (),
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        registry: SessionRegistry instance
        ingestion: CodeIngestionService instance
        search: CodeSearchService instance
        analyzer: RepositoryAnalyzer instance
        gateway: InferenceGateway instance (for metrics)
        ingest_batch_size: Batch size for background ingestion after analysis
        start_sweeper: Run the idle-session sweeper while the app is up
        http_clients: Objects with ``async aclose()`` closed on shutdown

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_sweeper:
            registry.start_sweeper()
        yield
        await registry.stop()
        for client in http_clients:
            await client.aclose()

    app = FastAPI(
        title="RepoMentor API",
        description="Socratic tutor for unfamiliar GitHub repositories",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # Store shared dependencies on app state
    app.state.registry = registry
    app.state.ingestion = ingestion
    app.state.search = search
    app.state.analyzer = analyzer
    app.state.gateway = gateway
    app.state.ingest_batch_size = ingest_batch_size

    # Register routers
    from .routes.sessions import router as sessions_router
    from .routes.ingest import router as ingest_router
    from .routes.realtime import router as realtime_router

    app.include_router(sessions_router, prefix="/api")
    app.include_router(ingest_router, prefix="/api")
    app.include_router(realtime_router, prefix="/api")

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "service": "repomentor", "active_sessions": len(registry)}

    @app.get("/api/metrics")
    async def metrics():
        return gateway.get_metrics()

    logger.info("FastAPI app created with all routes registered")
    return app
