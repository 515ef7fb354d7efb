from .index import (
    InMemoryVectorIndex,
    LlamaVectorStoreIndex,
    VectorIndex,
    VectorMatch,
    VectorRecord,
    build_vector_index,
    make_record_id,
)
from .search import CodeSearchService, SearchHit, coerce_top_k, format_hits

__all__ = [
    "CodeSearchService",
    "InMemoryVectorIndex",
    "LlamaVectorStoreIndex",
    "SearchHit",
    "VectorIndex",
    "VectorMatch",
    "VectorRecord",
    "build_vector_index",
    "coerce_top_k",
    "format_hits",
    "make_record_id",
]
