"""Session registry and idle sweeper.

Maps every session id to exactly one SessionActor, creating actors on
demand. A background sweeper periodically expires sessions whose last
activity is older than the retention window; each deletion is routed
through the owning actor so it cannot race a turn. Actors left with no
session and no connections are evicted.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from ..constants import SESSION_RETENTION_HOURS, SWEEP_INTERVAL_SECONDS
from .actor import SessionActor, TutorServices
from .models import now_ms
from .store import SessionStore

logger = logging.getLogger(__name__)


class TaskSet:
    """Keeps references to background turn tasks until they finish."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)


class SessionRegistry:
    """Single-owner lookup of session actors.

    Args:
        store: Durable session store shared by all actors
        services: Collaborators handed to every actor
        retention_hours: Idle time after which a session is deleted
        sweep_interval_seconds: Pause between sweeps
    """

    def __init__(
        self,
        store: SessionStore,
        services: TutorServices,
        retention_hours: float = SESSION_RETENTION_HOURS,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    ):
        self._store = store
        self._services = services
        self._retention_ms = int(retention_hours * 3600 * 1000)
        self._sweep_interval = sweep_interval_seconds
        self._actors: Dict[str, SessionActor] = {}
        self._sweeper: Optional[asyncio.Task] = None
        self.tasks = TaskSet()

    def get(self, session_id: str) -> SessionActor:
        """The actor for ``session_id``, created if absent."""
        actor = self._actors.get(session_id)
        if actor is None:
            actor = SessionActor(session_id, self._store, self._services)
            self._actors[session_id] = actor
        return actor

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._actors

    def __len__(self) -> int:
        return len(self._actors)

    # ── Sweeping ─────────────────────────────────────────────────────────

    async def sweep(self, now: Optional[int] = None) -> List[str]:
        """Expire idle sessions and evict empty actors.

        Returns:
            Ids whose actors were evicted
        """
        cutoff = (now if now is not None else now_ms()) - self._retention_ms
        idle_ids = await asyncio.to_thread(self._store.idle_session_ids, cutoff)

        candidates = list(dict.fromkeys([*idle_ids, *self._actors.keys()]))
        evicted: List[str] = []
        for session_id in candidates:
            actor = self.get(session_id)
            gone = await actor.expire(cutoff)
            if gone and not actor.has_connections and actor.idle:
                self._actors.pop(session_id, None)
                await actor.stop()
                evicted.append(session_id)

        if evicted:
            logger.info(f"Sweep evicted {len(evicted)} session actor(s)")
        return evicted

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="session-sweeper")
            logger.info(
                f"Session sweeper started (every {self._sweep_interval}s, "
                f"retention {self._retention_ms // 3_600_000}h)"
            )

    async def stop(self) -> None:
        """Stop the sweeper, cancel background turns and all actor workers."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        await self.tasks.cancel_all()
        for actor in list(self._actors.values()):
            await actor.stop()
        logger.info("Session registry stopped")
