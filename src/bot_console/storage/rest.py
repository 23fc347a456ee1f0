"""SessionStore backed by the console REST API."""

from __future__ import annotations

from typing import Any, Optional

from bot_console.api.client import ConsoleApiClient
from bot_console.core.errors import NotFoundError
from bot_console.log import get_logger
from bot_console.storage.base import SessionStore
from bot_console.storage.models import Bot, Session

logger = get_logger(__name__)


class RestSessionStore(SessionStore):
    def __init__(self, client: ConsoleApiClient, save_timeout: float = 10.0):
        self._client = client
        self._save_timeout = save_timeout

    async def get_bot(self, bot_id: str) -> Optional[Bot]:
        try:
            data = await self._client.get(f"/bots/{bot_id}")
        except NotFoundError:
            return None
        if not isinstance(data, dict) or not data:
            return None
        return Bot.from_dict(data)

    async def save_session(self, session: Session) -> None:
        await self._client.post(
            "/conversations/save", session.to_dict(), timeout=self._save_timeout
        )
        logger.info("session_saved", session_id=session.session_id)

    async def list_sessions(
        self,
        *,
        client_id: Optional[str] = None,
        application_sid: Optional[str] = None,
        limit: int = 100,
    ) -> list[Session]:
        params: dict[str, Any] = {"limit": limit}
        if client_id is not None:
            params["clientId"] = client_id
        if application_sid is not None:
            params["application_sid"] = application_sid
        data = await self._client.get("/conversations", params=params)
        # Some endpoints return a bare list instead of {"conversations": [...]}
        records = data.get("conversations") if isinstance(data, dict) else data
        return [Session.from_dict(r) for r in records or [] if isinstance(r, dict)]

    async def metric_over_time(self, metric: str, days: int) -> list[dict[str, Any]]:
        data = await self._client.get(
            f"/analytics/{metric}-over-time", params={"days": days}
        )
        if not isinstance(data, list):
            logger.warning("metric_response_unexpected", metric=metric, days=days)
            return []
        return data
