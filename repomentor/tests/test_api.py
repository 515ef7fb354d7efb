"""API tests -- REST routes and the realtime WebSocket, with fake upstreams.

Tests cover:
- /api/analyze creates a session and schedules ingestion
- /api/chat, /api/session, /api/flashcards, /api/plan
- /api/ingest and /api/search
- Error mapping (400 / 404 / 422 / 502)
- /api/realtime/{id}: connected, pong, error frames, streamed turn
"""

import asyncio
import json

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from conftest import SAMPLE_REPO, FakeGateway, FakeGitHub, text_reply, tool_call_reply
from repomentor.api.app import create_app
from repomentor.core.agent import StudyMaterialGenerator, TurnOrchestrator
from repomentor.core.github import RepositoryAnalyzer
from repomentor.core.ingestion import CodeIngestionService
from repomentor.core.session.actor import TutorServices
from repomentor.core.session.registry import SessionRegistry
from repomentor.core.vector import CodeSearchService, InMemoryVectorIndex
from repomentor.core.voice import VoicePipeline

REPO_URL = "https://github.com/acme/demo"


# ── Fixtures ──────────────────────────────────────────────────────────────


def _cards(n):
    return json.dumps({"flashcards": [
        {"front": f"Q{i}", "back": f"A{i}", "concept": "routing", "difficulty": 2} for i in range(n)
    ]})


class _SlowChatGateway(FakeGateway):
    """Chat replies arrive after a delay, leaving a turn in flight."""

    async def chat(self, messages, tools=None, purpose="general"):
        await asyncio.sleep(0.3)
        return await super().chat(messages, tools=tools, purpose=purpose)


def _build_app(session_store, gateway, github=None, http_clients=()):
    github = github or FakeGitHub(SAMPLE_REPO)
    index = InMemoryVectorIndex()
    analyzer = RepositoryAnalyzer(github)
    search = CodeSearchService(gateway, index)
    orchestrator = TurnOrchestrator(gateway)
    services = TutorServices(
        orchestrator=orchestrator,
        voice=VoicePipeline(gateway, orchestrator),
        analyzer=analyzer,
        search=search,
        generator=StudyMaterialGenerator(gateway),
    )
    registry = SessionRegistry(session_store, services)
    return create_app(
        registry=registry,
        ingestion=CodeIngestionService(github, gateway, index),
        search=search,
        analyzer=analyzer,
        gateway=gateway,
        ingest_batch_size=2,
        start_sweeper=False,
        http_clients=http_clients,
    )


def _analyze(client):
    response = client.post("/api/analyze", json={"repo_url": REPO_URL, "goal": "learn routing"})
    assert response.status_code == 200
    return response.json()["session_id"]


# ── Tests: Sessions ───────────────────────────────────────────────────────


class TestSessionRoutes:

    def test_analyze_creates_session_and_ingests(self, session_store):
        app = _build_app(session_store, FakeGateway())
        with TestClient(app) as client:
            response = client.post("/api/analyze", json={"repo_url": REPO_URL, "goal": "learn routing"})
            assert response.status_code == 200
            body = response.json()
            assert body["analysis"]["repo_name"] == "acme/demo"
            assert body["message"] == "Repository analyzed successfully. Ready for Socratic dialogue."

            state = client.get(f"/api/session/{body['session_id']}").json()
            assert state["goal"] == "learn routing"
            assert state["analysis"]["repo_name"] == "acme/demo"

            search = client.post("/api/search", json={
                "query": "authentication middleware", "repo_name": "acme/demo", "top_k": "3",
            }).json()
            assert search["count"] == 3
            assert search["results"][0]["file_path"] in {"README.md", "src/router.ts"}

    def test_analyze_invalid_url(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            response = client.post("/api/analyze", json={"repo_url": "nope", "goal": "g"})
            assert response.status_code == 400

    def test_analyze_depth_validated(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            response = client.post("/api/analyze", json={"repo_url": REPO_URL, "goal": "g", "depth": 7})
            assert response.status_code == 422

    def test_analyze_github_failure(self, session_store):
        github = FakeGitHub(SAMPLE_REPO)
        github.fail_listing = True
        with TestClient(_build_app(session_store, FakeGateway(), github=github)) as client:
            response = client.post("/api/analyze", json={"repo_url": REPO_URL, "goal": "g"})
            assert response.status_code == 502

    def test_chat_returns_reply_with_steps(self, session_store):
        gateway = FakeGateway(chat_replies=[
            tool_call_reply("search_code", {"query": "router"}, call_id="c9"),
            text_reply("What does authenticate() call last?"),
        ])
        with TestClient(_build_app(session_store, gateway)) as client:
            session_id = _analyze(client)
            response = client.post("/api/chat", json={"session_id": session_id, "message": "show me routing"})

            assert response.status_code == 200
            reply = response.json()["response"]
            assert reply["role"] == "assistant"
            assert reply["content"] == "What does authenticate() call last?"
            assert [s["kind"] for s in reply["reasoning_steps"]] == ["tool_invoked", "tool_result"]

            messages = client.get(f"/api/session/{session_id}").json()["messages"]
            assert [m["role"] for m in messages] == ["user", "assistant"]

    def test_unknown_session_is_404(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            assert client.get("/api/session/missing").status_code == 404
            response = client.post("/api/chat", json={"session_id": "missing", "message": "hi"})
            assert response.status_code == 404
            assert response.json()["detail"] == "Session not found"
            assert client.post("/api/flashcards", json={"session_id": "missing"}).status_code == 404

    def test_flashcards_and_plan(self, session_store):
        gateway = FakeGateway(completions=[_cards(5), "not json", "still not json"])
        with TestClient(_build_app(session_store, gateway)) as client:
            session_id = _analyze(client)

            cards = client.post("/api/flashcards", json={"session_id": session_id}).json()
            assert cards["fallback"] is False
            assert len(cards["flashcards"]) == 5

            plan = client.post("/api/plan", json={"session_id": session_id}).json()
            assert plan["fallback"] is True
            assert plan["study_plan"]["duration_minutes"] == 15

            state = client.get(f"/api/session/{session_id}").json()
            assert len(state["flashcards"]) == 5
            assert state["study_plan"]["duration_minutes"] == 15


# ── Tests: Ingestion ──────────────────────────────────────────────────────


class TestIngestRoutes:

    def test_ingest_batches(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            first = client.post("/api/ingest", json={"repo_url": REPO_URL, "batch_size": 2}).json()
            assert first["success"] is True
            assert first["has_more"] is True
            assert first["next_index"] == 2
            assert first["stats"]["files_processed"] == 2

            last = client.post("/api/ingest", json={
                "repo_url": REPO_URL, "start_index": 4, "batch_size": 2,
            }).json()
            assert last["has_more"] is False

    def test_ingest_validation(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            response = client.post("/api/ingest", json={"repo_url": REPO_URL, "batch_size": 0})
            assert response.status_code == 422
            response = client.post("/api/ingest", json={"repo_url": REPO_URL, "start_index": -1})
            assert response.status_code == 422

    def test_search_before_ingestion_is_empty(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            body = client.post("/api/search", json={"query": "router", "repo_name": "acme/demo"}).json()
            assert body == {"results": [], "count": 0}

    def test_health_and_metrics(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            health = client.get("/api/health").json()
            assert health["status"] == "ok"
            assert health["active_sessions"] == 0
            assert client.get("/api/metrics").json()["model"] == "fake"


# ── Tests: Lifespan ───────────────────────────────────────────────────────


class TestLifespan:

    def test_http_clients_closed_on_shutdown(self, session_store):
        github_http, stt_http = MagicMock(), MagicMock()
        github_http.aclose = AsyncMock()
        stt_http.aclose = AsyncMock()
        app = _build_app(session_store, FakeGateway(), http_clients=[github_http, stt_http])

        with TestClient(app) as client:
            assert client.get("/api/health").status_code == 200
            github_http.aclose.assert_not_awaited()

        github_http.aclose.assert_awaited_once()
        stt_http.aclose.assert_awaited_once()


# ── Tests: Realtime ───────────────────────────────────────────────────────


class TestRealtimeRoute:

    def test_connect_ping_and_bad_frames(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            with client.websocket_connect("/api/realtime/abc") as ws:
                assert ws.receive_json() == {
                    "type": "connected", "sessionId": "abc", "message": "WebSocket connected successfully",
                }
                ws.send_json({"type": "ping"})
                assert ws.receive_json() == {"type": "pong"}

                ws.send_json({"type": "dance"})
                assert ws.receive_json() == {"type": "error", "message": "Unknown message type: dance"}

                ws.send_text("{broken")
                assert ws.receive_json() == {"type": "error", "message": "Failed to process message"}

                ws.send_json({"type": "ping"})
                assert ws.receive_json() == {"type": "pong"}

    def test_text_turn_for_unknown_session(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            with client.websocket_connect("/api/realtime/ghost") as ws:
                ws.receive_json()
                ws.send_json({"type": "text", "message": "hello"})
                assert ws.receive_json() == {"type": "error", "message": "Session not found"}

    def test_streamed_text_turn(self, session_store):
        gateway = FakeGateway(chat_replies=[
            tool_call_reply("search_code", {"query": "authentication"}, call_id="c1"),
            text_reply("Which function checks the token?"),
        ])
        with TestClient(_build_app(session_store, gateway)) as client:
            session_id = _analyze(client)
            with client.websocket_connect(f"/api/realtime/{session_id}") as ws:
                assert ws.receive_json()["type"] == "connected"
                ws.send_json({"type": "text", "message": "how is auth done?"})

                frames = []
                while True:
                    frame = ws.receive_json()
                    frames.append(frame)
                    if frame["type"] in ("text_response", "error"):
                        break

            assert [f["type"] for f in frames] == [
                "status", "reasoning_step", "reasoning_step", "text_response",
            ]
            invoked, result = frames[1]["step"], frames[2]["step"]
            assert invoked["kind"] == "tool_invoked"
            assert invoked["tool_name"] == "search_code"
            assert result["kind"] == "tool_result"
            assert "[Result 1]" in result["payload"]["preview"]
            assert "?" in frames[-1]["message"]

            messages = client.get(f"/api/session/{session_id}").json()["messages"]
            assert [m["content"] for m in messages] == ["how is auth done?", "Which function checks the token?"]

    def test_ping_answered_while_turn_runs(self, session_store):
        gateway = _SlowChatGateway(chat_replies=[text_reply("What runs first?")])
        with TestClient(_build_app(session_store, gateway)) as client:
            session_id = _analyze(client)
            with client.websocket_connect(f"/api/realtime/{session_id}") as ws:
                ws.receive_json()
                ws.send_json({"type": "text", "message": "where do I start?"})
                ws.send_json({"type": "ping"})

                types = []
                while not types or types[-1] not in ("text_response", "error"):
                    types.append(ws.receive_json()["type"])

            assert "pong" in types
            assert types.index("pong") < types.index("text_response")
            assert types[-1] == "text_response"

    def test_binary_frame_is_rejected_without_closing(self, session_store):
        with TestClient(_build_app(session_store, FakeGateway())) as client:
            with client.websocket_connect("/api/realtime/abc") as ws:
                ws.receive_json()
                ws.send_bytes(b"\x00\x01")
                assert ws.receive_json() == {"type": "error", "message": "Failed to process message"}

                ws.send_json({"type": "ping"})
                assert ws.receive_json() == {"type": "pong"}
