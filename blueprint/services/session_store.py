import asyncio
import json
import os
import re
import uuid
import logging
from typing import Optional

from pydantic import ValidationError

from blueprint.core.exceptions import PersistenceError
from blueprint.models.session import WizardSession

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class JsonSessionStore:
    """
    Keeps one JSON file per wizard session. Saving is an upsert keyed by the
    session id; archived sessions move to an `archive/` subdirectory.
    """

    def __init__(self, base_dir: str):
        self.base_dir = base_dir
        self.archive_dir = os.path.join(base_dir, "archive")

    def _path(self, session_id: str, archived: bool = False) -> str:
        if not SESSION_ID_PATTERN.match(session_id or ""):
            raise PersistenceError(f"Invalid session id: {session_id!r}")
        return os.path.join(self.archive_dir if archived else self.base_dir, f"{session_id}.json")

    def _write(self, session: WizardSession, archived: bool = False):
        path = self._path(session.session_id, archived)
        tmp_path = f"{path}.{uuid.uuid4().hex}.tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(session.model_dump_json(by_alias=True, indent=2))
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"Failed to write session {session.session_id}: {e}") from e

    def _read(self, session_id: str) -> Optional[WizardSession]:
        path = self._path(session_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return WizardSession.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(f"Failed to read session {session_id}: {e}") from e

    async def save(self, session: WizardSession):
        await asyncio.to_thread(self._write, session)
        logger.debug(f"Saved session {session.session_id} ({len(session.decisions)} decisions)")

    async def load(self, session_id: str) -> Optional[WizardSession]:
        return await asyncio.to_thread(self._read, session_id)

    async def archive(self, session: WizardSession):
        def _move():
            self._write(session, archived=True)
            active = self._path(session.session_id)
            try:
                if os.path.exists(active):
                    os.remove(active)
            except OSError as e:
                raise PersistenceError(f"Failed to remove active session {session.session_id}: {e}") from e
        await asyncio.to_thread(_move)
        logger.info(f"Archived session {session.session_id}")
