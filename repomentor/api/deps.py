"""FastAPI dependencies for RepoMentor.

Provides shared services from app state via FastAPI's Depends() injection,
and the mapping from domain errors to HTTP errors.
"""

import logging

from fastapi import HTTPException, Request

from ..core.errors import AlreadyExistsError, NotFoundError, UpstreamFailure

logger = logging.getLogger(__name__)


async def get_registry(request: Request):
    """Get SessionRegistry from app state."""
    return request.app.state.registry


async def get_ingestion(request: Request):
    """Get CodeIngestionService from app state."""
    svc = request.app.state.ingestion
    if svc is None:
        raise HTTPException(status_code=503, detail="Code ingestion service not available")
    return svc


async def get_search(request: Request):
    """Get CodeSearchService from app state."""
    return request.app.state.search


async def get_analyzer(request: Request):
    """Get RepositoryAnalyzer from app state."""
    return request.app.state.analyzer


def http_error(e: Exception) -> HTTPException:
    """Map a domain error onto an HTTPException."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail="Session not found")
    if isinstance(e, AlreadyExistsError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, UpstreamFailure):
        logger.warning(f"Upstream failure ({e.service}): {e}")
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"Unhandled error: {e}", exc_info=e)
    return HTTPException(status_code=500, detail=str(e))
