"""Vector index for code chunks.

Two backends share the ``VectorIndex`` interface:

- ``InMemoryVectorIndex``: numpy cosine similarity over a dict keyed by
  record id. Default for development and tests.
- ``LlamaVectorStoreIndex``: adapts any LlamaIndex vector store (pgvector
  in production) using TextNode ids as record ids.

Record ids are deterministic, so upserting a file twice overwrites the
earlier vectors instead of adding new ones.
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

MAX_ID_BYTES = 64


def make_record_id(repo_name: str, file_path: str, chunk_index: int) -> str:
    """``<repo hash>:<path hash>:<chunk index>``, always under 64 bytes."""
    repo_hash = hashlib.sha1(repo_name.encode("utf-8")).hexdigest()[:12]
    path_hash = hashlib.sha1(file_path.encode("utf-8")).hexdigest()[:16]
    return f"{repo_hash}:{path_hash}:{chunk_index}"


@dataclass
class VectorRecord:
    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: Dict[str, Any]


class VectorIndex(ABC):
    """Async upsert/query contract."""

    @abstractmethod
    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        """Insert or overwrite records by id; returns the number written."""

    @abstractmethod
    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """Nearest records, best first, restricted to exact metadata matches."""

    @abstractmethod
    async def count(self) -> int:
        ...


class InMemoryVectorIndex(VectorIndex):

    def __init__(self):
        self._records: Dict[str, VectorRecord] = {}

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        for record in records:
            if len(record.id.encode("utf-8")) >= MAX_ID_BYTES:
                raise ValueError(f"Vector id too long: {record.id}")
            self._records[record.id] = VectorRecord(
                id=record.id, values=list(record.values), metadata=dict(record.metadata)
            )
        return len(records)

    async def query(self, vector, top_k, filters=None) -> List[VectorMatch]:
        candidates = [
            r for r in self._records.values()
            if not filters or all(r.metadata.get(k) == v for k, v in filters.items())
        ]
        if not candidates or top_k <= 0:
            return []

        matrix = np.asarray([r.values for r in candidates], dtype=np.float32)
        q = np.asarray(vector, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * (np.linalg.norm(q) or 1.0)
        norms[norms == 0] = 1.0
        scores = matrix @ q / norms

        order = np.argsort(-scores)[:top_k]
        return [
            VectorMatch(
                id=candidates[i].id,
                score=float(scores[i]),
                metadata=dict(candidates[i].metadata),
            )
            for i in order
        ]

    async def count(self) -> int:
        return len(self._records)


class LlamaVectorStoreIndex(VectorIndex):
    """Adapter over a LlamaIndex ``BasePydanticVectorStore``.

    Records become TextNodes whose text is the content preview. Upsert
    deletes existing node ids first, since not every store enforces
    unique node ids.
    """

    def __init__(self, vector_store):
        self._store = vector_store
        self._written = 0

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        from llama_index.core.schema import TextNode

        nodes = [
            TextNode(
                id_=r.id,
                text=str(r.metadata.get("content_preview", "")),
                embedding=list(r.values),
                metadata=dict(r.metadata),
            )
            for r in records
        ]
        ids = [n.node_id for n in nodes]
        await asyncio.to_thread(self._store.delete_nodes, node_ids=ids)
        await asyncio.to_thread(self._store.add, nodes)
        self._written += len(nodes)
        return len(nodes)

    async def query(self, vector, top_k, filters=None) -> List[VectorMatch]:
        from llama_index.core.vector_stores import (
            MetadataFilter,
            MetadataFilters,
            VectorStoreQuery,
        )

        metadata_filters = None
        if filters:
            metadata_filters = MetadataFilters(
                filters=[MetadataFilter(key=k, value=v) for k, v in filters.items()]
            )
        query = VectorStoreQuery(
            query_embedding=list(vector),
            similarity_top_k=top_k,
            filters=metadata_filters,
        )
        result = await asyncio.to_thread(self._store.query, query)

        nodes = result.nodes or []
        similarities = result.similarities or [0.0] * len(nodes)
        return [
            VectorMatch(id=node.node_id, score=float(score), metadata=dict(node.metadata))
            for node, score in zip(nodes, similarities)
        ]

    async def count(self) -> int:
        # Stores expose no portable count; report writes from this process
        return self._written


def build_vector_index(
    backend: str = "memory",
    database_url: Optional[str] = None,
    table_name: str = "repomentor_code",
    embed_dim: int = 1536,
) -> VectorIndex:
    """Instantiate the configured index backend."""
    if backend == "memory":
        return InMemoryVectorIndex()
    if backend == "pgvector":
        if not database_url:
            raise ValueError("pgvector backend requires a database URL")
        from llama_index.vector_stores.postgres import PGVectorStore
        from sqlalchemy.engine import make_url

        url = make_url(database_url)
        store = PGVectorStore.from_params(
            database=url.database,
            host=url.host,
            password=url.password,
            port=str(url.port or 5432),
            user=url.username,
            table_name=table_name,
            embed_dim=embed_dim,
        )
        logger.info(f"Using pgvector table {table_name} (dim={embed_dim})")
        return LlamaVectorStoreIndex(store)
    raise ValueError(f"Unsupported vector backend: {backend}")
