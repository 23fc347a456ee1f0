"""Local SessionStore over SQLite, with the same filtered-list semantics as the REST API."""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import timedelta
from typing import Any, Optional

from bot_console.core.errors import StorageError
from bot_console.log import get_logger
from bot_console.storage.base import SessionStore
from bot_console.storage.database import Database
from bot_console.storage.models import Bot, Session, utcnow

logger = get_logger(__name__)

# metric name -> (aggregate expression, extra WHERE clause)
_METRICS: dict[str, tuple[str, str]] = {
    "conversations": ("COUNT(*)", ""),
    "voice-minutes": ("SUM(duration_minutes)", "AND channel_type = 'voice'"),
    "chat-minutes": ("SUM(duration_minutes)", "AND channel_type = 'chat'"),
    "minutes": ("SUM(duration_minutes)", ""),
}


class SqliteSessionStore(SessionStore):
    """Archive of bots and sessions in a local SQLite file."""

    def __init__(self, db: Database):
        self._db = db

    async def upsert_bot(self, record: dict[str, Any]) -> Bot:
        bot = Bot.from_dict(record)
        if not bot.id:
            raise ValueError("bot record requires an id")
        await self._db.conn.execute(
            """INSERT INTO bots (id, client_id, record_json) VALUES (?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   client_id = excluded.client_id,
                   record_json = excluded.record_json,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (bot.id, bot.client_id, json.dumps(record, default=str)),
        )
        await self._db.conn.commit()
        return bot

    async def get_bot(self, bot_id: str) -> Optional[Bot]:
        cursor = await self._db.conn.execute(
            "SELECT record_json FROM bots WHERE id = ?", (bot_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Bot.from_dict(json.loads(row["record_json"]))

    async def save_session(self, session: Session) -> None:
        # Sessions without a natural key still need a unique row
        key = session.session_id or f"anon_{uuid.uuid4().hex}"
        record = session.to_dict()
        try:
            await self._write_session(key, session, record)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to archive session {key}: {e}") from e
        logger.info("session_archived", session_id=key)

    async def _write_session(self, key: str, session: Session, record: dict[str, Any]) -> None:
        await self._db.conn.execute(
            """INSERT INTO sessions
               (session_key, bot_id, client_id, application_sid, channel_type,
                started_at, duration_minutes, record_json)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(session_key) DO UPDATE SET
                   record_json = excluded.record_json,
                   duration_minutes = excluded.duration_minutes,
                   started_at = excluded.started_at""",
            (
                key,
                session.bot_id,
                session.client_id,
                session.application_sid,
                session.channel_type,
                record["started_at"],
                session.duration_minutes or 0,
                json.dumps(record, default=str),
            ),
        )
        await self._db.conn.commit()

    async def list_sessions(
        self,
        *,
        client_id: Optional[str] = None,
        application_sid: Optional[str] = None,
        limit: int = 100,
    ) -> list[Session]:
        if client_id is not None:
            column, value = "client_id", client_id
        elif application_sid is not None:
            column, value = "application_sid", application_sid
        else:
            raise ValueError("either client_id or application_sid is required")

        cursor = await self._db.conn.execute(
            f"""SELECT record_json, created_at FROM sessions
                WHERE {column} = ?
                ORDER BY started_at DESC
                LIMIT ?""",
            (value, limit),
        )
        rows = await cursor.fetchall()
        sessions = []
        for row in rows:
            data = json.loads(row["record_json"])
            data.setdefault("created_at", row["created_at"])
            sessions.append(Session.from_dict(data))
        return sessions

    async def metric_over_time(self, metric: str, days: int) -> list[dict[str, Any]]:
        if metric not in _METRICS:
            raise ValueError(f"Unknown metric: {metric}")
        aggregate, where = _METRICS[metric]
        since = (utcnow() - timedelta(days=days)).date().isoformat()
        cursor = await self._db.conn.execute(
            f"""SELECT substr(started_at, 1, 10) AS day, {aggregate} AS value
                FROM sessions
                WHERE started_at IS NOT NULL AND substr(started_at, 1, 10) > ? {where}
                GROUP BY day
                ORDER BY day ASC""",
            (since,),
        )
        rows = await cursor.fetchall()
        return [{"_id": row["day"], "value": row["value"] or 0} for row in rows]
