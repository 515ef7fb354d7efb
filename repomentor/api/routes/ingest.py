"""Ingestion and code search API routes (FastAPI)."""

import logging
from typing import Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...core.errors import RepoMentorError
from ..deps import get_ingestion, get_search, http_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ingestion"])


class IngestRequest(BaseModel):
    repo_url: str = Field(..., min_length=1)
    start_index: int = Field(0, ge=0)
    batch_size: int = Field(3, ge=1, le=50)


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    repo_name: str = Field(..., min_length=1)
    top_k: Union[int, str, None] = 5


@router.post("/ingest")
async def ingest_batch(data: IngestRequest, ingestion=Depends(get_ingestion)):
    """Ingest one batch; call again with ``next_index`` while ``has_more``."""
    try:
        result = await ingestion.ingest(data.repo_url, data.start_index, data.batch_size)
    except ValueError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/search")
async def search_code(data: SearchRequest, search=Depends(get_search)):
    try:
        hits = await search.search(data.query, data.repo_name, data.top_k)
    except (RepoMentorError, ValueError) as e:
        raise http_error(e)
    return {"results": [h.to_dict() for h in hits], "count": len(hits)}
