"""Session repository for database operations."""

import json
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiosqlite
import structlog
from pydantic.alias_generators import to_camel

from ideaverse.domain.models.session import WorkflowSession, utc_now

log = structlog.get_logger(__name__)

CURRENT_SESSION_KEY = "current_session_id"

# Fields that never change after creation
_IMMUTABLE_FIELDS = {"id", "problem", "createdAt"}


def _camel_key(key: str) -> str:
    return to_camel(key) if "_" in key else key


class SessionRepository:
    """Repository for workflow session persistence.

    Each session is stored as one JSON record (camelCase keys) plus a few
    mirrored columns for listing. A single "current session" pointer lives in
    the app_state table.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_session(self, problem: str) -> WorkflowSession:
        """Create a fresh session for `problem` and make it current."""
        session = WorkflowSession(id=uuid.uuid4().hex, problem=problem)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO sessions (id, problem, status, current_step, data, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                self._to_row(session),
            )
            await self._write_current(db, session.id)
            await db.commit()

        log.info("session_created", session_id=session.id)
        return session

    async def get_session(self, session_id: str) -> Optional[WorkflowSession]:
        """Get a session by ID."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT data FROM sessions WHERE id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None
            return self._row_to_session(row)

    async def update_session(
        self, session_id: str, fields: Dict[str, Any]
    ) -> Optional[WorkflowSession]:
        """
        Shallow-merge `fields` into a stored session.

        Keys may be camelCase or snake_case. id, problem and createdAt are
        immutable and ignored. updatedAt is always refreshed.

        Args:
            session_id: Session to update
            fields: Top-level fields to replace

        Returns:
            The updated session, or None if it does not exist
        """
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT data FROM sessions WHERE id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            if not row:
                log.warning("session_update_missing", session_id=session_id)
                return None

            data = json.loads(row["data"])
            for key, value in fields.items():
                key = _camel_key(key)
                if key in _IMMUTABLE_FIELDS:
                    continue
                data[key] = value
            data["updatedAt"] = utc_now()

            session = WorkflowSession.model_validate(data)
            _, problem, status, step, payload, _, updated_at = self._to_row(session)
            await db.execute(
                "UPDATE sessions SET status = ?, current_step = ?, data = ?, "
                "updated_at = ? WHERE id = ?",
                (status, step, payload, updated_at, session_id),
            )
            await db.commit()

        log.debug("session_updated", session_id=session_id, fields=sorted(fields))
        return session

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session by ID. Returns True if deleted.

        Clears the current-session pointer when it referenced this session.
        """
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM sessions WHERE id = ?", (session_id,)
            )
            await db.execute(
                "DELETE FROM app_state WHERE key = ? AND value = ?",
                (CURRENT_SESSION_KEY, session_id),
            )
            await db.commit()
            deleted = cursor.rowcount > 0

        log.info("session_deleted", session_id=session_id, deleted=deleted)
        return deleted

    async def list_sessions(self) -> List[WorkflowSession]:
        """List all sessions, newest first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT data FROM sessions ORDER BY created_at DESC, rowid DESC"
            )
            rows = await cursor.fetchall()
            return [self._row_to_session(row) for row in rows]

    # ------------------------------------------------------------------
    # Current session pointer
    # ------------------------------------------------------------------

    async def get_current_session_id(self) -> Optional[str]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT value FROM app_state WHERE key = ?", (CURRENT_SESSION_KEY,)
            )
            row = await cursor.fetchone()
            return row[0] if row else None

    async def set_current_session_id(self, session_id: Optional[str]) -> None:
        """Point at `session_id`; None clears the pointer."""
        async with aiosqlite.connect(self.db_path) as db:
            await self._write_current(db, session_id)
            await db.commit()

    async def get_current_session(self) -> Optional[WorkflowSession]:
        session_id = await self.get_current_session_id()
        if session_id is None:
            return None
        return await self.get_session(session_id)

    # ------------------------------------------------------------------
    # Export / maintenance
    # ------------------------------------------------------------------

    async def export_session(self, session_id: str) -> Optional[str]:
        """Full session record as pretty-printed JSON, or None if missing."""
        session = await self.get_session(session_id)
        if session is None:
            return None
        return json.dumps(session.to_record(), ensure_ascii=False, indent=2)

    async def export_mind_map(self, session_id: str) -> Optional[str]:
        """Stored mind-map markdown, or None if missing or not generated."""
        session = await self.get_session(session_id)
        if session is None:
            return None
        return session.mind_map

    async def clear_all_data(self) -> None:
        """Delete every session and the current pointer."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM sessions")
            await db.execute("DELETE FROM app_state")
            await db.commit()
        log.warning("all_sessions_cleared")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _write_current(
        db: aiosqlite.Connection, session_id: Optional[str]
    ) -> None:
        if session_id is None:
            await db.execute(
                "DELETE FROM app_state WHERE key = ?", (CURRENT_SESSION_KEY,)
            )
        else:
            await db.execute(
                "INSERT OR REPLACE INTO app_state (key, value) VALUES (?, ?)",
                (CURRENT_SESSION_KEY, session_id),
            )

    @staticmethod
    def _to_row(session: WorkflowSession) -> tuple:
        record = session.to_record()
        return (
            session.id,
            session.problem,
            record["status"],
            session.current_step,
            json.dumps(record, ensure_ascii=False),
            record["createdAt"],
            record["updatedAt"],
        )

    @staticmethod
    def _row_to_session(row: aiosqlite.Row) -> WorkflowSession:
        return WorkflowSession.model_validate(json.loads(row["data"]))
