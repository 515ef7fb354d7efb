"""Unit tests for CodeIngestionService -- batching, cursor, failure accounting.

Tests cover:
- File selection (extension filter, path order, cap)
- Batch slicing with has_more / next_index
- Record ids and metadata written to the index
- Fetch failures vs embed failures (files_failed vs files_skipped)
- Listing failure leaves the cursor in place
- ingest_all drives the cursor to exhaustion
"""

import asyncio

import pytest

from conftest import SAMPLE_REPO, FakeGateway, FakeGitHub
from repomentor.core.ingestion import (
    CodeIngestionService,
    IngestionCursor,
    IngestionResult,
    IngestionStats,
)
from repomentor.core.vector import InMemoryVectorIndex, make_record_id

REPO_URL = "https://github.com/acme/demo"

SELECTED = ["README.md", "src/index.ts", "src/router.ts", "src/util/format.ts", "tests/app.test.ts"]


# ── Fixtures ──────────────────────────────────────────────────────────────


def _service(github=None, gateway=None, index=None, **kwargs):
    return CodeIngestionService(
        github or FakeGitHub(SAMPLE_REPO),
        gateway or FakeGateway(),
        index if index is not None else InMemoryVectorIndex(),
        **kwargs,
    )


class _BrokenStoreIndex(InMemoryVectorIndex):
    """Store whose writes for one path fail with a driver-level error."""

    def __init__(self, broken_path):
        super().__init__()
        self.broken_path = broken_path

    async def upsert(self, records):
        if any(r.metadata["file_path"] == self.broken_path for r in records):
            raise RuntimeError("connection to pgvector lost")
        return await super().upsert(records)


# ── Tests: Batching ───────────────────────────────────────────────────────


class TestBatching:

    def test_first_batch(self):
        github = FakeGitHub(SAMPLE_REPO)
        result = asyncio.run(_service(github=github).ingest(REPO_URL, 0, 3))

        assert result.success is True
        assert result.has_more is True
        assert result.next_index == 3
        assert result.stats.files_processed == 3
        assert result.stats.chunks_stored == 3
        assert sorted(github.fetched) == SELECTED[:3]

    def test_last_batch(self):
        result = asyncio.run(_service().ingest(REPO_URL, 3, 3))
        assert result.success is True
        assert result.has_more is False
        assert result.next_index == 6
        assert result.stats.files_processed == 2

    def test_past_the_end_is_empty_success(self):
        result = asyncio.run(_service().ingest(REPO_URL, 10, 3))
        assert result.success is True
        assert result.has_more is False
        assert result.next_index == 10
        assert result.stats.files_processed == 0

    def test_filters_extensions_and_caps_files(self):
        github = FakeGitHub(SAMPLE_REPO)
        service = _service(github=github, max_files=2)
        result = asyncio.run(service.ingest(REPO_URL, 0, 10))
        assert sorted(github.fetched) == ["README.md", "src/index.ts"]
        assert result.has_more is False

    def test_invalid_arguments_rejected(self):
        with pytest.raises(ValueError):
            asyncio.run(_service().ingest(REPO_URL, -1, 3))
        with pytest.raises(ValueError):
            asyncio.run(_service().ingest(REPO_URL, 0, 0))


# ── Tests: Records ────────────────────────────────────────────────────────


class TestRecords:

    def test_record_metadata(self):
        index = InMemoryVectorIndex()
        asyncio.run(_service(index=index).ingest(REPO_URL, 0, 10))

        record = index._records[make_record_id("acme/demo", "src/router.ts", 0)]
        meta = record.metadata
        assert meta["type"] == "code"
        assert meta["repo_name"] == "acme/demo"
        assert meta["file_path"] == "src/router.ts"
        assert meta["language"] == "typescript"
        assert meta["chunk_index"] == 0
        assert meta["total_chunks"] == 1
        assert meta["content_preview"] == SAMPLE_REPO["src/router.ts"][:200]

    def test_reingest_overwrites(self):
        index = InMemoryVectorIndex()
        service = _service(index=index)
        asyncio.run(service.ingest(REPO_URL, 0, 10))
        asyncio.run(service.ingest(REPO_URL, 0, 10))
        assert asyncio.run(index.count()) == len(SELECTED)

    def test_chunk_cap_and_total_chunks(self):
        content = "\n".join(f"const value{i} = {i};" for i in range(200))
        github = FakeGitHub({"src/big.ts": content})
        index = InMemoryVectorIndex()
        service = _service(github=github, index=index, chunk_size=100, max_chunks_per_file=4)

        result = asyncio.run(service.ingest(REPO_URL, 0, 1))

        assert result.stats.chunks_stored == 4
        metas = [r.metadata for r in index._records.values()]
        assert sorted(m["chunk_index"] for m in metas) == [0, 1, 2, 3]
        assert all(m["total_chunks"] > 4 for m in metas)


# ── Tests: Failures ───────────────────────────────────────────────────────


class TestFailures:

    def test_fetch_failure_counts_as_failed(self):
        github = FakeGitHub(SAMPLE_REPO)
        github.failing_paths.add("src/index.ts")
        result = asyncio.run(_service(github=github).ingest(REPO_URL, 0, 3))
        assert result.success is True
        assert result.stats.files_failed == 1
        assert result.stats.files_processed == 2

    def test_embed_failure_skips_whole_file(self):
        gateway = FakeGateway()
        gateway.fail_embed_on = "authenticate"
        index = InMemoryVectorIndex()
        result = asyncio.run(_service(gateway=gateway, index=index).ingest(REPO_URL, 0, 10))

        assert result.stats.files_skipped == 1
        assert result.stats.chunks_stored == len(SELECTED) - 1
        assert make_record_id("acme/demo", "src/router.ts", 0) not in index._records

    def test_store_error_skips_file_and_batch_continues(self):
        index = _BrokenStoreIndex("README.md")
        result = asyncio.run(_service(index=index).ingest(REPO_URL, 0, 10))

        assert result.success is True
        assert result.stats.files_skipped == 1
        assert result.stats.files_processed == len(SELECTED)
        assert result.stats.chunks_stored == len(SELECTED) - 1

    def test_store_error_does_not_stop_ingest_all(self):
        index = _BrokenStoreIndex("src/router.ts")
        totals = asyncio.run(_service(index=index).ingest_all(REPO_URL, batch_size=2))

        assert totals.files_processed == len(SELECTED)
        assert totals.files_skipped == 1
        assert make_record_id("acme/demo", "tests/app.test.ts", 0) in index._records

    def test_listing_failure_keeps_position(self):
        github = FakeGitHub(SAMPLE_REPO)
        github.fail_listing = True
        result = asyncio.run(_service(github=github).ingest(REPO_URL, 3, 3))
        assert result.success is False
        assert result.next_index == 3
        assert result.has_more is False
        assert "404" in result.to_dict()["error"]

    def test_invalid_repo_url_is_listing_failure(self):
        result = asyncio.run(_service().ingest("not a url", 0, 3))
        assert result.success is False
        assert result.next_index == 0


# ── Tests: Cursor ─────────────────────────────────────────────────────────


class TestCursor:

    def test_advance(self):
        cursor = IngestionCursor(REPO_URL)
        cursor.advance(IngestionResult(success=True, has_more=True, next_index=3))
        assert cursor.start_index == 3
        assert cursor.exhausted is False
        cursor.advance(IngestionResult(success=True, has_more=False, next_index=6))
        assert cursor.exhausted is True

    def test_never_moves_backwards(self):
        cursor = IngestionCursor(REPO_URL, start_index=6)
        with pytest.raises(ValueError):
            cursor.advance(IngestionResult(success=True, next_index=3))

    def test_ingest_all(self):
        index = InMemoryVectorIndex()
        totals = asyncio.run(_service(index=index).ingest_all(REPO_URL, batch_size=2))
        assert isinstance(totals, IngestionStats)
        assert totals.files_processed == len(SELECTED)
        assert totals.chunks_stored == len(SELECTED)
        assert asyncio.run(index.count()) == len(SELECTED)

    def test_ingest_all_stops_on_listing_failure(self):
        github = FakeGitHub(SAMPLE_REPO)
        github.fail_listing = True
        totals = asyncio.run(_service(github=github).ingest_all(REPO_URL))
        assert totals.files_processed == 0

    def test_result_dict_omits_error_on_success(self):
        result = asyncio.run(_service().ingest(REPO_URL, 0, 1))
        data = result.to_dict()
        assert "error" not in data
        assert set(data) == {"success", "stats", "has_more", "next_index"}
