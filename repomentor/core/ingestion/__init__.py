from .code_ingestion import (
    CodeIngestionService,
    IngestionCursor,
    IngestionResult,
    IngestionStats,
)

__all__ = ["CodeIngestionService", "IngestionCursor", "IngestionResult", "IngestionStats"]
