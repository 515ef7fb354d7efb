"""Tests for the vector index backends and code search."""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from conftest import FakeGateway, hash_embedding
from repomentor.core.vector import (
    CodeSearchService,
    InMemoryVectorIndex,
    LlamaVectorStoreIndex,
    SearchHit,
    VectorRecord,
    build_vector_index,
    coerce_top_k,
    format_hits,
    make_record_id,
)
from repomentor.core.vector.search import NO_RESULTS_MESSAGE


def _record(repo, path, i, text):
    return VectorRecord(
        id=make_record_id(repo, path, i),
        values=hash_embedding(text),
        metadata={
            "type": "code",
            "repo_name": repo,
            "file_path": path,
            "language": "typescript",
            "chunk_index": i,
            "total_chunks": 1,
            "content_preview": text,
        },
    )


# ── Tests: Record Ids ─────────────────────────────────────────────────────


class TestRecordIds:

    def test_deterministic(self):
        assert make_record_id("a/b", "src/x.py", 0) == make_record_id("a/b", "src/x.py", 0)

    def test_distinct_per_chunk_and_path(self):
        ids = {
            make_record_id("a/b", "src/x.py", 0),
            make_record_id("a/b", "src/x.py", 1),
            make_record_id("a/b", "src/y.py", 0),
            make_record_id("a/c", "src/x.py", 0),
        }
        assert len(ids) == 4

    def test_short_even_for_long_paths(self):
        record_id = make_record_id("owner/" + "r" * 200, "deep/" * 100 + "file.py", 9)
        assert len(record_id.encode("utf-8")) < 64


# ── Tests: In-Memory Index ────────────────────────────────────────────────


class TestInMemoryVectorIndex:

    def test_upsert_overwrites_by_id(self):
        index = InMemoryVectorIndex()

        async def run():
            await index.upsert([_record("a/b", "x.ts", 0, "first version")])
            await index.upsert([_record("a/b", "x.ts", 0, "second version")])
            return await index.count(), await index.query(hash_embedding("second version"), 5)

        count, matches = asyncio.run(run())
        assert count == 1
        assert matches[0].metadata["content_preview"] == "second version"

    def test_query_ranks_by_similarity_and_filters(self):
        index = InMemoryVectorIndex()

        async def run():
            await index.upsert([
                _record("a/b", "auth.ts", 0, "authentication middleware checks token"),
                _record("a/b", "math.ts", 0, "add subtract multiply numbers"),
                _record("c/d", "auth.ts", 0, "authentication middleware checks token"),
            ])
            return await index.query(
                hash_embedding("authentication middleware"), 5, filters={"repo_name": "a/b"}
            )

        matches = asyncio.run(run())
        assert [m.metadata["file_path"] for m in matches] == ["auth.ts", "math.ts"]
        assert all(m.metadata["repo_name"] == "a/b" for m in matches)
        assert matches[0].score > matches[1].score

    def test_top_k_limits_results(self):
        index = InMemoryVectorIndex()

        async def run():
            await index.upsert([_record("a/b", f"f{i}.ts", 0, f"text {i}") for i in range(6)])
            return await index.query(hash_embedding("text"), 2)

        assert len(asyncio.run(run())) == 2

    def test_empty_index_returns_nothing(self):
        assert asyncio.run(InMemoryVectorIndex().query([1.0, 0.0], 5)) == []

    def test_long_id_rejected(self):
        record = VectorRecord(id="x" * 64, values=[1.0])
        with pytest.raises(ValueError):
            asyncio.run(InMemoryVectorIndex().upsert([record]))


# ── Tests: LlamaIndex Store Adapter ───────────────────────────────────────


class TestLlamaVectorStoreIndex:

    def test_upsert_deletes_then_adds_nodes(self):
        store = MagicMock()
        index = LlamaVectorStoreIndex(store)
        record = _record("a/b", "x.ts", 0, "export const x = 1")

        written = asyncio.run(index.upsert([record]))

        assert written == 1
        store.delete_nodes.assert_called_once_with(node_ids=[record.id])
        nodes = store.add.call_args[0][0]
        assert nodes[0].node_id == record.id
        assert nodes[0].embedding == record.values
        assert nodes[0].metadata["file_path"] == "x.ts"
        assert asyncio.run(index.count()) == 1

    def test_query_builds_filters_and_maps_matches(self):
        node = SimpleNamespace(node_id="id-1", metadata={"file_path": "x.ts", "repo_name": "a/b"})
        store = MagicMock()
        store.query.return_value = SimpleNamespace(nodes=[node], similarities=[0.8])
        index = LlamaVectorStoreIndex(store)

        matches = asyncio.run(index.query([0.1, 0.2], 3, filters={"repo_name": "a/b"}))

        query = store.query.call_args[0][0]
        assert query.similarity_top_k == 3
        assert query.filters.filters[0].key == "repo_name"
        assert query.filters.filters[0].value == "a/b"
        assert matches[0].id == "id-1"
        assert matches[0].score == pytest.approx(0.8)

    def test_build_vector_index(self):
        assert isinstance(build_vector_index("memory"), InMemoryVectorIndex)
        with pytest.raises(ValueError):
            build_vector_index("pgvector", database_url=None)
        with pytest.raises(ValueError):
            build_vector_index("faiss")


# ── Tests: Search ─────────────────────────────────────────────────────────


class TestCoerceTopK:

    @pytest.mark.parametrize("value,expected", [
        (None, 5), ("", 5), ("abc", 5), (3, 3), ("7", 7), (0, 1), (-4, 1), (50, 10), ("2.0", 2),
    ])
    def test_coercion(self, value, expected):
        assert coerce_top_k(value) == expected


class TestFormatHits:

    def test_no_hits(self):
        assert format_hits([]) == NO_RESULTS_MESSAGE

    def test_blocks_are_numbered_and_separated(self):
        hits = [
            SearchHit("src/a.ts", "typescript", 0.91, "const a = 1", 0, 3),
            SearchHit("src/b.py", "python", 0.5, "b = 2"),
        ]
        text = format_hits(hits)
        first, second = text.split("\n---\n")
        assert first.startswith("[Result 1] File: src/a.ts (typescript)")
        assert "Relevance: 91.0%" in first
        assert "(Showing chunk 1 of 3)" in first
        assert second.startswith("[Result 2] File: src/b.py (python)")
        assert "Showing chunk" not in second


class TestCodeSearchService:

    def _service(self):
        index = InMemoryVectorIndex()
        asyncio.run(index.upsert([
            _record("acme/demo", "src/auth.ts", 0, "authentication middleware verifies the session"),
            _record("acme/demo", "src/math.ts", 0, "numeric helpers"),
            _record("other/repo", "src/auth.ts", 0, "authentication middleware verifies the session"),
        ]))
        return CodeSearchService(FakeGateway(), index)

    def test_search_scoped_to_repo(self):
        hits = asyncio.run(self._service().search("authentication middleware", "acme/demo", 5))
        assert hits[0].file_path == "src/auth.ts"
        assert len(hits) == 2
        assert hits[0].chunk_index == 0
        assert hits[0].total_chunks == 1

    def test_string_top_k_accepted(self):
        hits = asyncio.run(self._service().search("authentication", "acme/demo", "1"))
        assert len(hits) == 1

    def test_unknown_repo_returns_empty(self):
        assert asyncio.run(self._service().search("anything", "nobody/none")) == []

    def test_empty_query_rejected(self):
        with pytest.raises(ValueError):
            asyncio.run(self._service().search("   ", "acme/demo"))
