"""Code Ingestion Service.

Orchestrates: GitHub tree → filter → slice → fetch → chunk → embed → upsert.

One ``ingest()`` call handles a single batch of files so the number of
outbound calls per invocation stays bounded. The caller holds an
``IngestionCursor`` and calls again with ``next_index`` until ``has_more``
is false; ``ingest_all`` is that loop.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Sequence

from ..code_chunker import LineChunker
from ..constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CHUNKS_PER_FILE,
    DEFAULT_MAX_FILES,
    DEFAULT_PREVIEW_CHARS,
    SOURCE_EXTENSIONS,
)
from ..errors import UpstreamFailure
from ..gateway import InferenceGateway
from ..github import GitHubClient, RepoRef, TreeEntry, detect_language, parse_repo_url
from ..vector import VectorIndex, VectorRecord, make_record_id

logger = logging.getLogger(__name__)


@dataclass
class IngestionStats:
    files_processed: int = 0
    chunks_stored: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    total_size: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class IngestionResult:
    """Outcome of one batch."""

    success: bool
    stats: IngestionStats = field(default_factory=IngestionStats)
    has_more: bool = False
    next_index: int = 0
    error: Optional[str] = None
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "stats": self.stats.to_dict(),
            "has_more": self.has_more,
            "next_index": self.next_index,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class IngestionCursor:
    """Caller-held resume point. ``start_index`` never moves backwards."""

    repo_url: str
    start_index: int = 0
    batch_size: int = DEFAULT_BATCH_SIZE
    exhausted: bool = False

    def advance(self, result: IngestionResult) -> None:
        if result.next_index < self.start_index:
            raise ValueError(
                f"Cursor for {self.repo_url} cannot move back "
                f"from {self.start_index} to {result.next_index}"
            )
        self.start_index = result.next_index
        self.exhausted = not result.has_more


class CodeIngestionService:
    """Embed a GitHub repository's source files into a vector index.

    Args:
        github: Repository API client
        gateway: Inference gateway used for embeddings
        index: Destination vector index
        extensions: Allowed file extensions (without dot)
        max_files: Cap on the filtered file list
        chunk_size: Target characters per chunk
        max_chunks_per_file: Chunks embedded per file; the rest are ignored
        preview_chars: Characters of each chunk stored as metadata
        concurrency: Files processed in parallel within one batch
    """

    def __init__(
        self,
        github: GitHubClient,
        gateway: InferenceGateway,
        index: VectorIndex,
        extensions: Sequence[str] = SOURCE_EXTENSIONS,
        max_files: int = DEFAULT_MAX_FILES,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_chunks_per_file: int = DEFAULT_MAX_CHUNKS_PER_FILE,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
        concurrency: int = 2,
    ):
        self._github = github
        self._gateway = gateway
        self._index = index
        self._extensions = frozenset(e.lower().lstrip(".") for e in extensions)
        self._max_files = max_files
        self._chunker = LineChunker(max_chars=chunk_size)
        self._max_chunks_per_file = max_chunks_per_file
        self._preview_chars = preview_chars
        self._concurrency = max(1, concurrency)

    # ── Public entry points ──────────────────────────────────────────────

    async def ingest(
        self,
        repo_url: str,
        start_index: int = 0,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> IngestionResult:
        """Ingest files ``[start_index, start_index + batch_size)``.

        Args:
            repo_url: GitHub repository URL
            start_index: Offset into the sorted, filtered file list
            batch_size: Number of files in this batch

        Returns:
            IngestionResult; ``success`` is False only if the file list
            could not be obtained, in which case ``next_index`` equals
            ``start_index``
        """
        if start_index < 0:
            raise ValueError("start_index must be >= 0")
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")

        start = time.time()
        try:
            repo = parse_repo_url(repo_url)
            branch = await self._github.get_default_branch(repo)
            files = self._select_files(await self._github.get_tree(repo, branch))
        except (UpstreamFailure, ValueError) as e:
            logger.error(f"Ingestion of {repo_url} failed listing files: {e}")
            return IngestionResult(
                success=False, has_more=False, next_index=start_index, error=str(e)
            )

        batch = files[start_index:start_index + batch_size]
        if not batch:
            return IngestionResult(success=True, has_more=False, next_index=start_index)

        stats = IngestionStats()
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _guarded(entry: TreeEntry):
            async with semaphore:
                await self._process_file(repo, branch, entry, stats)

        await asyncio.gather(*(_guarded(entry) for entry in batch))

        result = IngestionResult(
            success=True,
            stats=stats,
            has_more=start_index + batch_size < len(files),
            next_index=start_index + batch_size,
            elapsed_seconds=time.time() - start,
        )
        self._log_result(repo, start_index, result)
        return result

    async def ingest_all(self, repo_url: str, batch_size: int = DEFAULT_BATCH_SIZE) -> IngestionStats:
        """Drive a cursor from 0 until exhausted; returns accumulated stats."""
        cursor = IngestionCursor(repo_url=repo_url, batch_size=batch_size)
        totals = IngestionStats()

        while not cursor.exhausted:
            result = await self.ingest(repo_url, cursor.start_index, cursor.batch_size)
            if not result.success:
                logger.warning(f"Stopping ingestion of {repo_url} at {cursor.start_index}: {result.error}")
                break
            for name, value in result.stats.to_dict().items():
                setattr(totals, name, getattr(totals, name) + value)
            cursor.advance(result)

        logger.info(
            f"Ingestion of {repo_url} finished: {totals.files_processed} files, "
            f"{totals.chunks_stored} chunks"
        )
        return totals

    # ── Internals ────────────────────────────────────────────────────────

    def _select_files(self, tree: List[TreeEntry]) -> List[TreeEntry]:
        """Blobs with an allowed extension, sorted by path, capped."""
        selected = [
            e for e in tree
            if e.type == "blob" and e.path.rsplit(".", 1)[-1].lower() in self._extensions
            and "." in e.path.rsplit("/", 1)[-1]
        ]
        selected.sort(key=lambda e: e.path)
        return selected[: self._max_files]

    async def _process_file(self, repo: RepoRef, branch: str, entry: TreeEntry,
                            stats: IngestionStats) -> None:
        try:
            content = await self._github.get_file_content(repo, entry.path, ref=branch)
        except Exception as e:
            logger.warning(f"Failed to fetch {entry.path}: {e}")
            stats.files_failed += 1
            return

        stats.files_processed += 1
        stats.total_size += len(content)

        chunks = self._chunker.split(content)
        if not chunks:
            return

        language = detect_language(entry.path)
        try:
            records = []
            for i, chunk in enumerate(chunks[: self._max_chunks_per_file]):
                vector = await self._gateway.embed(chunk)
                records.append(VectorRecord(
                    id=make_record_id(repo.full_name, entry.path, i),
                    values=vector,
                    metadata={
                        "type": "code",
                        "repo_name": repo.full_name,
                        "file_path": entry.path,
                        "language": language,
                        "chunk_index": i,
                        "total_chunks": len(chunks),
                        "content_preview": chunk[: self._preview_chars],
                    },
                ))
            stats.chunks_stored += await self._index.upsert(records)
        except Exception as e:
            logger.warning(f"Skipping {entry.path}: {e}", exc_info=not isinstance(e, UpstreamFailure))
            stats.files_skipped += 1

    def _log_result(self, repo: RepoRef, start_index: int, result: IngestionResult) -> None:
        s = result.stats
        logger.info(
            f"Ingested {repo.full_name} [{start_index}:{result.next_index}]: "
            f"{s.files_processed} processed, {s.chunks_stored} chunks, "
            f"{s.files_skipped} skipped, {s.files_failed} failed "
            f"({result.elapsed_seconds:.1f}s, more={result.has_more})"
        )
