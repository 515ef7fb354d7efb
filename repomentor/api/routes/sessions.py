"""Tutoring session API routes (FastAPI).

Provides repository analysis (which creates the session and schedules
ingestion), the non-streaming chat turn, session state, and study
material generation.
"""

import logging
import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import BaseModel, Field

from ...core.errors import RepoMentorError
from ...core.github import parse_repo_url
from ..deps import get_analyzer, get_ingestion, get_registry, http_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


# ── Request models ───────────────────────────────────────────────────────

class AnalyzeRequest(BaseModel):
    repo_url: str = Field(..., min_length=1)
    goal: str = Field(..., min_length=1)
    depth: int = Field(2, ge=1, le=3)


class ChatRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class SessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


# ── Routes ───────────────────────────────────────────────────────────────

@router.post("/analyze")
async def analyze_repository(
    data: AnalyzeRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    registry=Depends(get_registry),
    analyzer=Depends(get_analyzer),
    ingestion=Depends(get_ingestion),
):
    """Create a session, analyze the repository, and start ingestion."""
    try:
        parse_repo_url(data.repo_url)
        analysis = await analyzer.analyze(data.repo_url, depth=data.depth)
        session_id = str(uuid.uuid4())
        actor = registry.get(session_id)
        await actor.init(data.repo_url, data.goal)
        await actor.apply_update({"analysis": analysis})
    except (RepoMentorError, ValueError) as e:
        raise http_error(e)

    background_tasks.add_task(
        ingestion.ingest_all, data.repo_url, request.app.state.ingest_batch_size
    )
    logger.info(f"Session {session_id} analyzed {analysis.repo_name}; ingestion scheduled")

    return {
        "session_id": session_id,
        "analysis": analysis.to_dict(),
        "message": "Repository analyzed successfully. Ready for Socratic dialogue.",
    }


@router.post("/chat")
async def chat(data: ChatRequest, registry=Depends(get_registry)):
    """Non-streaming turn; reasoning steps come back inside the reply."""
    try:
        reply = await registry.get(data.session_id).run_turn(data.message)
    except (RepoMentorError, ValueError) as e:
        raise http_error(e)
    return {"session_id": data.session_id, "response": reply.to_dict()}


@router.get("/session/{session_id}")
async def get_session(session_id: str, registry=Depends(get_registry)):
    try:
        session = await registry.get(session_id).get_state()
    except RepoMentorError as e:
        raise http_error(e)
    return session.to_dict()


@router.post("/flashcards")
async def generate_flashcards(data: SessionRequest, registry=Depends(get_registry)):
    """Five flashcards from the tracked struggles (empty list on fallback)."""
    try:
        result = await registry.get(data.session_id).generate_flashcards()
    except RepoMentorError as e:
        raise http_error(e)
    return {
        "flashcards": [c.to_dict() for c in result.value],
        "fallback": result.fallback,
    }


@router.post("/plan")
async def generate_study_plan(data: SessionRequest, registry=Depends(get_registry)):
    try:
        result = await registry.get(data.session_id).generate_study_plan()
    except RepoMentorError as e:
        raise http_error(e)
    return {"study_plan": result.value.to_dict(), "fallback": result.fallback}
