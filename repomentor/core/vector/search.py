"""Semantic code search over the vector index."""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from ..gateway import InferenceGateway
from .index import VectorIndex

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
MAX_TOP_K = 10

NO_RESULTS_MESSAGE = (
    "No code found matching that query. The repository may not be fully "
    "indexed yet, or try rephrasing your search."
)


@dataclass
class SearchHit:
    file_path: str
    language: str
    score: float
    content_preview: str
    chunk_index: Optional[int] = None
    total_chunks: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "file_path": self.file_path,
            "language": self.language,
            "score": self.score,
            "content_preview": self.content_preview,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
        }


def coerce_top_k(value: Any) -> int:
    """Accept ints or numeric strings; clamp to 1..10, default 5."""
    if value is None or value == "":
        return DEFAULT_TOP_K
    try:
        top_k = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_TOP_K
    return max(1, min(MAX_TOP_K, top_k))


def format_hits(hits: List[SearchHit]) -> str:
    """Render hits as the text block handed back to the model."""
    if not hits:
        return NO_RESULTS_MESSAGE

    blocks = []
    for i, hit in enumerate(hits, 1):
        lines = [
            f"[Result {i}] File: {hit.file_path} ({hit.language})",
            f"Relevance: {hit.score * 100:.1f}%",
            "Code:",
            f"```{hit.language}",
            hit.content_preview,
            "```",
        ]
        if hit.chunk_index is not None:
            lines.append(f"(Showing chunk {hit.chunk_index + 1} of {hit.total_chunks})")
        blocks.append("\n".join(lines))
    return "\n---\n".join(blocks)


class CodeSearchService:
    """Embed the query and look it up in one repository's vectors."""

    def __init__(self, gateway: InferenceGateway, index: VectorIndex):
        self._gateway = gateway
        self._index = index

    async def search(self, query: str, repo_name: str, top_k: Any = DEFAULT_TOP_K) -> List[SearchHit]:
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        k = coerce_top_k(top_k)

        vector = await self._gateway.embed(query)
        matches = await self._index.query(vector, k, filters={"repo_name": repo_name})

        hits = [
            SearchHit(
                file_path=m.metadata.get("file_path", ""),
                language=m.metadata.get("language", "unknown"),
                score=m.score,
                content_preview=m.metadata.get("content_preview", ""),
                chunk_index=m.metadata.get("chunk_index"),
                total_chunks=m.metadata.get("total_chunks"),
            )
            for m in matches
        ]
        logger.debug(f"Search '{query[:60]}' in {repo_name}: {len(hits)} hits (top_k={k})")
        return hits
