"""Read-time reconciliation of sessions attributed to a client by id and by application SID."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Iterable, Optional

from bot_console.config import ReportsConfig
from bot_console.log import get_logger
from bot_console.storage.base import SessionStore
from bot_console.storage.models import Client, Session

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(session: Session) -> tuple[bool, datetime]:
    return (session.started_at is not None, session.started_at or _EPOCH)


def merge_sessions(*batches: Iterable[Session]) -> list[Session]:
    """Concatenate, drop later duplicates by session_id, newest started_at first.

    Sessions with no session_id cannot be matched and are all kept. Sessions
    without a start time sort after every dated one. Ties keep input order.
    """
    seen: set[str] = set()
    merged: list[Session] = []
    for batch in batches:
        for session in batch:
            key = session.session_id
            if key is not None:
                if key in seen:
                    continue
                seen.add(key)
            merged.append(session)
    # list.sort is stable, also with reverse=True
    merged.sort(key=_sort_key, reverse=True)
    return merged


class ConversationReconciler:
    """Gathers a client's sessions from both attribution paths without letting one failure blank the report."""

    def __init__(self, store: SessionStore, config: Optional[ReportsConfig] = None):
        self._store = store
        self._config = config or ReportsConfig()

    async def fetch_for_client(self, client: Client) -> list[Session]:
        labels = ["client_id"] + [f"application_sid:{sid}" for sid in client.application_sid]
        queries = [
            self._store.list_sessions(client_id=client.id, limit=self._config.direct_limit)
        ] + [
            self._store.list_sessions(application_sid=sid, limit=self._config.per_sid_limit)
            for sid in client.application_sid
        ]

        results = await asyncio.gather(*queries, return_exceptions=True)

        batches: list[list[Session]] = []
        for label, result in zip(labels, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "reconcile_query_failed",
                    client_id=client.id,
                    query=label,
                    error=str(result),
                )
                continue
            batches.append(result)

        sessions = merge_sessions(*batches)
        logger.info(
            "client_sessions_reconciled",
            client_id=client.id,
            queries=len(labels),
            failed=len(labels) - len(batches),
            sessions=len(sessions),
        )
        return sessions
