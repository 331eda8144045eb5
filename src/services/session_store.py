"""
In-memory session store for adaptive assessments.

Owns the authoritative ConversationContext for every active session.

Lifecycle:
    - Constructed once at process start (FastAPI lifespan) and injected
      into services; there is no module-level instance.
    - ``run_sweeper`` reaps idle sessions periodically until cancelled.
    - ``drain`` is called at shutdown.

Concurrency:
    - The session map is guarded by one threading.Lock, held only for
      in-memory dict work (never across an await), so cross-session
      operations such as ``sweep`` cannot stall single-session calls.
    - ``turn_lock(session_id)`` returns a per-session asyncio.Lock that the
      orchestrator holds for a whole turn, serializing double submits. Ids
      with no stored session get no lock.
    - Callers receive deep copies; the stored object only changes through
      ``update`` with a SessionPatch.

Not-found (unknown or expired id) is a normal outcome and is reported by
returning None, never by raising.
"""

import asyncio
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

from src.domain.models.conversation import (
    DEFAULT_MAX_FOLLOW_UPS,
    ConversationContext,
    Persona,
    SessionPatch,
)
from src.domain.models.question import QuestionBlock

log = structlog.get_logger(__name__)

DEFAULT_SESSION_TIMEOUT = timedelta(minutes=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Per-session state with idle expiry and atomic patch application."""

    def __init__(
        self,
        timeout: timedelta = DEFAULT_SESSION_TIMEOUT,
        max_follow_ups: int = DEFAULT_MAX_FOLLOW_UPS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the store.

        Args:
            timeout: Idle time after which a session expires
            max_follow_ups: Dynamic follow-up allowance for new sessions
            clock: Source of "now" (injectable for expiry tests)
        """
        self.timeout = timeout
        self.max_follow_ups = max_follow_ups
        self.clock = clock

        self._sessions: Dict[str, ConversationContext] = {}
        self._turn_locks: Dict[str, asyncio.Lock] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(
        self,
        persona: Optional[Persona] = None,
        persona_confidence: float = 0.0,
        initial_data: Optional[Dict[str, Any]] = None,
        initial_block: QuestionBlock = QuestionBlock.DISCOVERY,
    ) -> ConversationContext:
        """
        Allocate a new session.

        Args:
            persona: Respondent persona if already known
            persona_confidence: Certainty of the persona assignment (0-1)
            initial_data: Seed answer data (e.g. company info from a landing form)
            initial_block: Starting block

        Returns:
            Copy of the stored ConversationContext
        """
        now = self.clock()

        with self._lock:
            # uuid4 collisions are practically impossible; the check keeps the
            # uniqueness guarantee unconditional
            session_id = uuid.uuid4().hex
            while session_id in self._sessions:
                session_id = uuid.uuid4().hex

            context = ConversationContext(
                session_id=session_id,
                created_at=now,
                last_updated=now,
                persona=persona,
                persona_confidence=persona_confidence,
                max_follow_ups=self.max_follow_ups,
                data=dict(initial_data or {}),
                current_block=initial_block,
            )
            self._sessions[session_id] = context
            total = len(self._sessions)

        log.info(
            "session_created",
            session_id=session_id,
            persona=persona.value if persona else None,
            total_sessions=total,
        )
        return context.model_copy(deep=True)

    def _is_expired(self, context: ConversationContext, now: datetime) -> bool:
        return now - context.last_updated >= self.timeout

    def _evict(self, session_id: str) -> None:
        """Remove a session and its turn lock. Caller holds the lock."""
        self._sessions.pop(session_id, None)
        self._turn_locks.pop(session_id, None)

    def get(self, session_id: str) -> Optional[ConversationContext]:
        """
        Fetch a live session.

        Returns:
            Copy of the context, or None if unknown or expired. Expired
            sessions are evicted as a side effect.
        """
        now = self.clock()
        expired = False
        with self._lock:
            context = self._sessions.get(session_id)
            if context is not None and self._is_expired(context, now):
                self._evict(session_id)
                expired = True

        if expired:
            log.warning("session_expired", session_id=session_id)
            return None
        if context is None:
            log.warning("session_not_found", session_id=session_id)
            return None

        return context.model_copy(deep=True)

    def update(
        self, session_id: str, patch: SessionPatch
    ) -> Optional[ConversationContext]:
        """
        Merge a patch into a live session and refresh its last-updated time.

        Returns:
            Copy of the updated context, or None if unknown or expired
        """
        now = self.clock()
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None or self._is_expired(context, now):
                if context is not None:
                    self._evict(session_id)
                updated = None
            else:
                requested = context.dynamic_follow_ups_used + patch.dynamic_follow_ups_used
                updated = context.apply_patch(patch, now)
                self._sessions[session_id] = updated

        if updated is None:
            log.warning("session_update_missed", session_id=session_id)
            return None

        if requested > updated.dynamic_follow_ups_used:
            log.warning(
                "follow_up_increment_clamped",
                session_id=session_id,
                requested=requested,
                max_follow_ups=updated.max_follow_ups,
            )

        log.debug(
            "session_updated",
            session_id=session_id,
            questions_answered=updated.questions_answered,
            dynamic_follow_ups_used=updated.dynamic_follow_ups_used,
        )
        return updated.model_copy(deep=True)

    def delete(self, session_id: str) -> bool:
        """Remove a session. Idempotent; returns whether anything was removed."""
        with self._lock:
            existed = session_id in self._sessions
            self._evict(session_id)

        if existed:
            log.info("session_deleted", session_id=session_id)
        return existed

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def sweep(self) -> int:
        """Remove every expired session; returns how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [
                sid for sid, ctx in self._sessions.items() if self._is_expired(ctx, now)
            ]
            for sid in expired:
                self._evict(sid)
            remaining = len(self._sessions)

        if expired:
            log.info(
                "expired_sessions_swept",
                removed=len(expired),
                remaining=remaining,
            )
        return len(expired)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep every ``interval_seconds`` until cancelled."""
        log.info("session_sweeper_started", interval_seconds=interval_seconds)
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                self.sweep()
        except asyncio.CancelledError:
            log.info("session_sweeper_stopped")
            raise

    def drain(self) -> int:
        """Drop all sessions at shutdown; returns how many were active."""
        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
            self._turn_locks.clear()
        log.info("session_store_drained", active_sessions=count)
        return count

    # ------------------------------------------------------------------
    # Concurrency and monitoring
    # ------------------------------------------------------------------

    def turn_lock(self, session_id: str) -> Optional[asyncio.Lock]:
        """Lock serializing turns for one session id; None if the id is unknown.

        Locks exist only for stored sessions and are dropped with them.
        """
        with self._lock:
            if session_id not in self._sessions:
                return None
            lock = self._turn_locks.get(session_id)
            if lock is None:
                lock = asyncio.Lock()
                self._turn_locks[session_id] = lock
            return lock

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())
