"""Session actor -- single owner of one session's state and connections.

Every operation for a session id goes through the actor's mailbox
(``asyncio.Queue``) and is run by one worker task, one at a time. That is
the whole concurrency story: no locks, and a turn that is in flight
finishes (and persists) before the next operation for the same id starts.

Pings never enter the mailbox; the realtime route answers them directly
so they are not queued behind a running turn.

Lifecycle:
1. The registry creates the actor on first use of an id
2. The worker task starts lazily on the first mailbox call
3. Session state is loaded from the store on first access and cached
4. Every mutation is written back through ``asyncio.to_thread``
5. ``expire()`` deletes an idle session; the registry then evicts the actor
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..agent import (
    CollectingSink,
    Generated,
    ReasoningSink,
    StudyMaterialGenerator,
    ToolContext,
    TurnOrchestrator,
    build_tools,
)
from ..errors import AlreadyExistsError, NotFoundError, TranscriptionError
from ..github import RepositoryAnalyzer
from ..realtime import (
    ChannelSink,
    ErrorEvent,
    RealtimeConnection,
    StatusEvent,
    TextResponseEvent,
    TranscriptionEvent,
)
from ..vector import CodeSearchService
from ..voice import VoicePipeline
from .models import Flashcard, Message, Role, Session, StudyPlan, now_ms
from .store import SessionStore
from .struggles import PhraseStruggleClassifier, StruggleClassifier, detect_new_struggle

logger = logging.getLogger(__name__)

_RECENT_FOR_STRUGGLES = 5

STATUS_THINKING = "Thinking..."
STATUS_VOICE = "Processing voice input..."
SESSION_NOT_FOUND = "Session not found"
PROCESSING_FAILED = "Failed to process message"


@dataclass
class TutorServices:
    """Shared, stateless collaborators every actor uses."""

    orchestrator: TurnOrchestrator
    voice: VoicePipeline
    analyzer: RepositoryAnalyzer
    search: CodeSearchService
    generator: StudyMaterialGenerator
    classifier: StruggleClassifier = field(default_factory=PhraseStruggleClassifier)


class SessionActor:
    """Serializes all access to one session id."""

    def __init__(self, session_id: str, store: SessionStore, services: TutorServices):
        self.session_id = session_id
        self._store = store
        self._services = services

        self._session: Optional[Session] = None
        self._loaded = False
        self._connections: Dict[str, RealtimeConnection] = {}

        self._mailbox: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._busy = False

    # ── Mailbox ──────────────────────────────────────────────────────────

    def _ensure_worker(self) -> None:
        if self._mailbox is None:
            self._mailbox = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(
                self._run(), name=f"session-actor-{self.session_id}"
            )

    async def _call(self, handler: Callable[..., Awaitable[Any]], *args) -> Any:
        """Enqueue ``handler(*args)`` and wait for its result."""
        self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        await self._mailbox.put((handler, args, future))
        return await future

    async def _run(self) -> None:
        while True:
            handler, args, future = await self._mailbox.get()
            self._busy = True
            try:
                result = await handler(*args)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._busy = False
                self._mailbox.task_done()

    @property
    def idle(self) -> bool:
        """No operation running or queued."""
        return not self._busy and (self._mailbox is None or self._mailbox.empty())

    async def stop(self) -> None:
        if self._worker and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

    # ── Connections ──────────────────────────────────────────────────────

    def attach(self, connection: RealtimeConnection) -> None:
        self._connections[connection.id] = connection
        logger.info(f"Session {self.session_id}: connection {connection.id} attached")

    def detach(self, connection: RealtimeConnection) -> None:
        connection.close()
        if self._connections.pop(connection.id, None) is not None:
            logger.info(f"Session {self.session_id}: connection {connection.id} dropped")

    @property
    def has_connections(self) -> bool:
        return bool(self._connections)

    # ── Public operations ────────────────────────────────────────────────

    async def init(self, repo_url: str, goal: str) -> Session:
        """Create the session.

        Raises:
            AlreadyExistsError: If the session already exists
        """
        return await self._call(self._do_init, repo_url, goal)

    async def get_state(self) -> Session:
        """Copy of the session. Raises NotFoundError if absent."""
        return await self._call(self._do_get_state)

    async def apply_update(self, fields: Dict[str, Any]) -> Session:
        """Merge known fields and refresh last activity.

        Raises:
            NotFoundError: If the session does not exist (nothing is created)
            ValueError: If a field is unknown or not updatable
        """
        return await self._call(self._do_apply_update, fields)

    async def run_turn(self, text: str, sink: Optional[ReasoningSink] = None) -> Message:
        """Non-streaming turn; steps go to ``sink`` (buffered by default)."""
        return await self._call(self._do_run_turn, text, sink or CollectingSink())

    async def generate_flashcards(self) -> Generated[List[Flashcard]]:
        return await self._call(self._do_generate_flashcards)

    async def generate_study_plan(self) -> Generated[StudyPlan]:
        return await self._call(self._do_generate_study_plan)

    async def handle_text(self, connection: RealtimeConnection, text: str) -> None:
        """Realtime text turn; all output goes to ``connection``."""
        await self._call(self._do_handle_text, connection, text)

    async def handle_voice(self, connection: RealtimeConnection, audio_b64: str) -> None:
        """Realtime voice turn; all output goes to ``connection``."""
        await self._call(self._do_handle_voice, connection, audio_b64)

    async def expire(self, cutoff_ms: int) -> bool:
        """Delete the session if idle since before ``cutoff_ms``.

        Returns:
            True if no session remains for this id
        """
        return await self._call(self._do_expire, cutoff_ms)

    # ── Handlers (run only by the worker) ────────────────────────────────

    async def _load(self) -> Optional[Session]:
        if not self._loaded:
            self._session = await asyncio.to_thread(self._store.get, self.session_id)
            self._loaded = True
        return self._session

    async def _require(self) -> Session:
        session = await self._load()
        if session is None:
            raise NotFoundError(self.session_id)
        return session

    async def _persist(self, session: Session) -> None:
        await asyncio.to_thread(self._store.put, session)
        self._session = session

    async def _do_init(self, repo_url: str, goal: str) -> Session:
        if await self._load() is not None:
            raise AlreadyExistsError(self.session_id)
        session = Session(id=self.session_id, repo_url=repo_url, goal=goal)
        await self._persist(session)
        logger.info(f"Session {self.session_id} created for {repo_url}")
        return copy.deepcopy(session)

    async def _do_get_state(self) -> Session:
        return copy.deepcopy(await self._require())

    async def _do_apply_update(self, fields: Dict[str, Any]) -> Session:
        session = (await self._require()).merged(fields)
        await self._persist(session)
        return copy.deepcopy(session)

    async def _do_run_turn(self, text: str, sink: ReasoningSink) -> Message:
        asked_at = now_ms()
        session = await self._require()
        context = self._tool_context(session)
        reply = await self._services.orchestrator.run_turn(
            context.session, text, sink, build_tools(context)
        )
        await self._commit_turn(session, Message(Role.USER, text, asked_at), reply, context.updates)
        return reply

    async def _do_generate_flashcards(self) -> Generated[List[Flashcard]]:
        session = await self._require()
        result = await self._services.generator.flashcards(list(session.struggles), session.repo_name)
        if not result.fallback:
            await self._persist(session.merged({"flashcards": result.value}))
        return result

    async def _do_generate_study_plan(self) -> Generated[StudyPlan]:
        session = await self._require()
        result = await self._services.generator.study_plan(
            list(session.struggles), f"{session.repo_name} - Goal: {session.goal}"
        )
        await self._persist(session.merged({"study_plan": result.value}))
        return result

    async def _do_handle_text(self, connection: RealtimeConnection, text: str) -> None:
        session = await self._load()
        if session is None:
            await connection.deliver(ErrorEvent(message=SESSION_NOT_FOUND))
            return
        asked_at = now_ms()
        try:
            await connection.deliver(StatusEvent(message=STATUS_THINKING))
            context = self._tool_context(session)
            reply = await self._services.orchestrator.run_turn(
                context.session, text, ChannelSink(connection), build_tools(context)
            )
            await self._commit_turn(
                session, Message(Role.USER, text, asked_at), reply, context.updates
            )
        except Exception as e:
            logger.error(f"Session {self.session_id}: text turn failed: {e}", exc_info=True)
            await connection.deliver(ErrorEvent(message=PROCESSING_FAILED))
            return
        await connection.deliver(TextResponseEvent(message=reply.content, timestamp=reply.timestamp))

    async def _do_handle_voice(self, connection: RealtimeConnection, audio_b64: str) -> None:
        session = await self._load()
        if session is None:
            await connection.deliver(ErrorEvent(message=SESSION_NOT_FOUND))
            return

        async def on_transcription(transcript: str) -> None:
            await connection.deliver(TranscriptionEvent(text=transcript))

        asked_at = now_ms()
        try:
            await connection.deliver(StatusEvent(message=STATUS_VOICE))
            context = self._tool_context(session)
            turn = await self._services.voice.handle_voice(
                audio_b64,
                context.session,
                ChannelSink(connection),
                on_transcription=on_transcription,
                tools=build_tools(context),
            )
            await self._commit_turn(
                session, Message(Role.USER, turn.transcript, asked_at), turn.reply, context.updates
            )
        except TranscriptionError as e:
            logger.warning(f"Session {self.session_id}: transcription failed: {e}")
            await connection.deliver(ErrorEvent(message=f"Failed to process voice input: {e}"))
            return
        except Exception as e:
            logger.error(f"Session {self.session_id}: voice turn failed: {e}", exc_info=True)
            await connection.deliver(ErrorEvent(message=PROCESSING_FAILED))
            return
        await connection.deliver(
            TextResponseEvent(message=turn.reply.content, timestamp=turn.reply.timestamp)
        )

    async def _do_expire(self, cutoff_ms: int) -> bool:
        session = await self._load()
        if session is None:
            return True
        if session.last_activity_at >= cutoff_ms:
            return False
        await asyncio.to_thread(self._store.delete, self.session_id)
        self._session = None
        logger.info(f"Session {self.session_id} expired (idle since {session.last_activity_at})")
        return True

    # ── Helpers ──────────────────────────────────────────────────────────

    def _tool_context(self, session: Session) -> ToolContext:
        s = self._services
        return ToolContext(
            session=copy.deepcopy(session),
            analyzer=s.analyzer,
            search=s.search,
            generator=s.generator,
        )

    async def _commit_turn(
        self,
        session: Session,
        user_message: Message,
        reply: Message,
        updates: Dict[str, Any],
    ) -> None:
        """Append the exchange, track struggles, merge tool output, persist."""
        updated = session.merged(updates) if updates else copy.deepcopy(session)
        updated.messages.append(user_message)
        updated.messages.append(reply)

        concept = detect_new_struggle(
            self._services.classifier,
            user_message.content,
            updated.messages[-_RECENT_FOR_STRUGGLES:],
            updated.struggles,
        )
        if concept:
            updated.add_struggle(concept)
            logger.info(f"Session {self.session_id}: tracking struggle '{concept}'")

        updated.touch()
        await self._persist(updated)

