"""RepoMentor Code Chunker: line-aligned chunking for embedding."""

from .chunker import LineChunker

__all__ = ["LineChunker"]
