"""Abstract storage boundary consumed by the chat, report and analytics components."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from bot_console.storage.models import Bot, Session


class SessionStore(ABC):
    """Simple filtered-list interface over bots, sessions and per-day metrics.

    To add a new backend, subclass this and implement all abstract methods.
    """

    @abstractmethod
    async def get_bot(self, bot_id: str) -> Optional[Bot]:
        """Return the bot, or None if it does not exist."""
        ...

    @abstractmethod
    async def save_session(self, session: Session) -> None:
        """Persist a finalized session. Raises on failure."""
        ...

    @abstractmethod
    async def list_sessions(
        self,
        *,
        client_id: Optional[str] = None,
        application_sid: Optional[str] = None,
        limit: int = 100,
    ) -> list[Session]:
        """List sessions matching exactly one attribution filter."""
        ...

    @abstractmethod
    async def metric_over_time(self, metric: str, days: int) -> list[dict[str, Any]]:
        """Return raw per-day points, e.g. ``[{"_id": "2024-01-01", "count": 3}]``."""
        ...
