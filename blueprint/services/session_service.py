import asyncio
import uuid
import threading
import logging
from typing import Dict, Mapping, Optional, Set, Any

from blueprint.core.exceptions import (
    DuplicateAdvancementError,
    InvalidDecisionError,
    PersistenceError,
    SessionNotFoundError,
)
from blueprint.models.decision_tree import ROOT_NODE_ID, PLATFORM_NODE_ID
from blueprint.models.session import WizardSession, utcnow
from blueprint.services import decision_engine
from blueprint.services.session_store import JsonSessionStore
from blueprint.services.tree_repository import TreeRepository

logger = logging.getLogger(__name__)


class WizardSessionService:
    def __init__(self, repository: TreeRepository, store: Optional[JsonSessionStore] = None):
        self.repository = repository
        self.store = store
        # In-memory registry; the store is only a best-effort mirror.
        self.sessions: Dict[str, WizardSession] = {}
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()
        self._pending_saves: Set[asyncio.Task] = set()
        # Saves for one session are applied in submission order.
        self._save_locks: Dict[str, asyncio.Lock] = {}

    # -- validation ---------------------------------------------------------

    def validate_decisions(self, decisions: Mapping[str, str], purpose: Optional[str] = None, platform: Optional[str] = None):
        """Rejects node ids outside the active path and values that are not choices of their node."""
        if purpose is not None and ROOT_NODE_ID in decisions and decisions[ROOT_NODE_ID] != purpose:
            raise InvalidDecisionError(f"Purpose '{purpose}' does not match root decision '{decisions[ROOT_NODE_ID]}'")
        if platform is not None and PLATFORM_NODE_ID in decisions and decisions[PLATFORM_NODE_ID] != platform:
            raise InvalidDecisionError(f"Platform '{platform}' does not match platform decision '{decisions[PLATFORM_NODE_ID]}'")

        purpose, platform = decision_engine.resolve_selection(purpose, platform, decisions)
        for node_id, value in decisions.items():
            self._check_decision(purpose, platform, node_id, value)

    def _check_decision(self, purpose: Optional[str], platform: Optional[str], node_id: str, value: str):
        node = self.repository.node(purpose, platform, node_id)
        if node is None:
            raise InvalidDecisionError(f"Unknown node '{node_id}' for {purpose}/{platform}")
        if node.choice_for(value) is None:
            raise InvalidDecisionError(f"'{value}' is not a valid choice for node '{node_id}'")

    # -- session lifecycle --------------------------------------------------

    def _refresh(self, session: WizardSession, decisions: Dict[str, str]) -> WizardSession:
        """Derives purpose, platform, progress and completion from the decisions."""
        purpose = decisions.get(ROOT_NODE_ID)
        platform = decisions.get(PLATFORM_NODE_ID)
        progress = decision_engine.calculate_progress(self.repository, purpose, platform, decisions)
        result = decision_engine.next_node(self.repository, purpose, platform, decisions)

        completed_at = session.completed_at
        if result.completed and completed_at is None:
            completed_at = utcnow()
        elif not result.completed:
            completed_at = None

        return session.model_copy(update={
            "purpose": purpose,
            "platform": platform,
            "decisions": decisions,
            "current_step": progress.current_step,
            "total_steps": progress.total_steps,
            "updated_at": utcnow(),
            "completed_at": completed_at,
        })

    def create_session(self) -> str:
        session_id = str(uuid.uuid4())
        session = WizardSession(session_id=session_id)
        self.sessions[session_id] = self._refresh(session, {})
        logger.info(f"Created wizard session {session_id}")
        return session_id

    def get_session(self, session_id: str) -> WizardSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def record_decision(self, session_id: str, node_id: str, value: str, persist: bool = True) -> WizardSession:
        session = self.get_session(session_id)
        decisions = dict(session.decisions)
        decisions[node_id] = value

        purpose, platform = decision_engine.resolve_selection(None, None, decisions)
        self._check_decision(purpose, platform, node_id, value)

        if node_id in (ROOT_NODE_ID, PLATFORM_NODE_ID) and session.decisions.get(node_id) not in (None, value):
            # A different purpose/platform selects a different path; answers from
            # the old path no longer mean anything.
            known = self.repository.known_node_ids(purpose, platform)
            dropped = [k for k in decisions if k not in known]
            for key in dropped:
                del decisions[key]
            if dropped:
                logger.info(f"Session {session_id}: dropped {dropped} after changing '{node_id}'")

        updated = self._refresh(session, decisions)
        self.sessions[session_id] = updated
        logger.debug(f"Session {session_id}: {node_id}={value} ({updated.current_step}/{updated.total_steps})")
        if persist:
            self.schedule_save(updated)
        return updated

    def resume_session(self, session: WizardSession) -> WizardSession:
        """Registers a session reloaded from storage, re-validating its decisions."""
        self.validate_decisions(session.decisions)
        resumed = self._refresh(session, dict(session.decisions))
        self.sessions[session.session_id] = resumed
        return resumed

    def upsert_snapshot(self, session_id: str, decisions: Mapping[str, str], purpose: Optional[str] = None, platform: Optional[str] = None) -> WizardSession:
        """Builds a session from a client-held decision store; progress is recomputed here."""
        self.validate_decisions(decisions, purpose, platform)
        existing = self.sessions.get(session_id) or WizardSession(session_id=session_id)
        snapshot = self._refresh(existing, dict(decisions))
        self.sessions[session_id] = snapshot
        return snapshot

    async def load_session(self, session_id: str) -> WizardSession:
        if self.store is None:
            raise SessionNotFoundError(session_id)
        try:
            session = await self.store.load(session_id)
        except PersistenceError as e:
            logger.warning(f"Could not load session {session_id}: {e}")
            session = None
        if session is None:
            raise SessionNotFoundError(session_id)
        return self.resume_session(session)

    async def archive_session(self, session_id: str, blueprint: Optional[Dict[str, Any]] = None) -> Optional[WizardSession]:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return None
        archived = session.model_copy(update={"blueprint": blueprint, "updated_at": utcnow()})
        if self.store is not None:
            # A save already writing this session finishes before the move;
            # later ones find it unregistered and skip.
            async with self._save_locks.setdefault(session_id, asyncio.Lock()):
                try:
                    await self.store.archive(archived)
                except PersistenceError as e:
                    logger.warning(f"Failed to archive session {session_id}: {e}")
        self._save_locks.pop(session_id, None)
        return archived

    # -- duplicate submission guard -----------------------------------------

    def begin_advance(self, session_id: str, node_id: str):
        key = f"{session_id}:{node_id}"
        with self._lock:
            if key in self._in_flight:
                raise DuplicateAdvancementError(session_id, node_id)
            self._in_flight.add(key)

    def end_advance(self, session_id: str, node_id: str):
        with self._lock:
            self._in_flight.discard(f"{session_id}:{node_id}")

    def submit_decision(self, session_id: str, node_id: str, value: str) -> WizardSession:
        """
        Records a decision and persists it. The (session, node) pair stays locked
        until the save has finished, so a double submission cannot fire a second
        save for the same answer.
        """
        self.begin_advance(session_id, node_id)
        try:
            session = self.record_decision(session_id, node_id, value, persist=False)
        except Exception:
            self.end_advance(session_id, node_id)
            raise

        task = self.schedule_save(session)
        if task is None:
            self.end_advance(session_id, node_id)
        else:
            task.add_done_callback(lambda _task: self.end_advance(session_id, node_id))
        return session

    # -- persistence --------------------------------------------------------

    async def save(self, session: WizardSession) -> bool:
        if self.store is None:
            return False
        lock = self._save_locks.setdefault(session.session_id, asyncio.Lock())
        try:
            async with lock:
                if session.session_id not in self.sessions:
                    logger.debug(f"Session {session.session_id} was archived, skipping save")
                    return False
                await self.store.save(session)
            return True
        except PersistenceError as e:
            logger.warning(f"Failed to persist session {session.session_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error persisting session {session.session_id}: {e!r}")
            return False

    def schedule_save(self, session: WizardSession) -> Optional[asyncio.Task]:
        """Fire-and-forget save. The caller never waits on it and never sees its errors."""
        if self.store is None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, not persisting session {session.session_id}")
            return None
        task = loop.create_task(self.save(session))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)
        return task

    async def wait_for_saves(self):
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)
