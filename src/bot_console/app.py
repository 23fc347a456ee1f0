"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from typing import Optional

from aiohttp import ClientSession

from bot_console.analytics.timeseries import TimeSeriesMerger
from bot_console.api.auth import AuthBootstrap
from bot_console.api.client import ConsoleApiClient
from bot_console.chat.controller import ChatSessionController
from bot_console.chat.health import WebhookHealthChecker
from bot_console.config import AppConfig
from bot_console.core.errors import NotFoundError
from bot_console.log import get_logger
from bot_console.reports.reconciler import ConversationReconciler
from bot_console.storage.base import SessionStore
from bot_console.storage.database import Database
from bot_console.storage.models import Client
from bot_console.storage.rest import RestSessionStore
from bot_console.storage.sqlite_store import SqliteSessionStore

logger = get_logger(__name__)


class ConsoleApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.http: Optional[ClientSession] = None
        self.api: Optional[ConsoleApiClient] = None
        self.db: Optional[Database] = None
        self.store: Optional[SessionStore] = None
        self.health_checker: Optional[WebhookHealthChecker] = None
        self.reconciler: Optional[ConversationReconciler] = None
        self.merger: Optional[TimeSeriesMerger] = None

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Shared HTTP session
        self.http = ClientSession()

        # 2. Storage backend
        match self.config.storage.backend:
            case "rest":
                self.api = ConsoleApiClient(self.config.api, session=self.http)
                await AuthBootstrap(self.api, self.config.auth).restore()
                self.store = RestSessionStore(self.api, save_timeout=self.config.webhook.send_timeout)
            case "sqlite":
                self.db = Database(self.config.storage.db_path)
                await self.db.initialize()
                self.store = SqliteSessionStore(self.db)
            case _:
                raise ValueError(f"Unknown storage backend: {self.config.storage.backend}")

        # 3. Core components
        self.health_checker = WebhookHealthChecker(
            session=self.http, timeout=self.config.webhook.health_timeout
        )
        self.reconciler = ConversationReconciler(self.store, self.config.reports)
        self.merger = TimeSeriesMerger(self.store, self.config.analytics)

        logger.info("bot_console_started", storage=self.config.storage.backend)

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        if self.db:
            await self.db.close()
        if self.http:
            await self.http.close()
            self.http = None
        logger.info("bot_console_stopped")

    async def __aenter__(self) -> ConsoleApp:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def new_chat(self, bot_id: str) -> ChatSessionController:
        if self.store is None or self.health_checker is None:
            raise RuntimeError("ConsoleApp not started. Call start() first.")
        return ChatSessionController(
            bot_id,
            self.store,
            self.health_checker,
            http=self.http,
            send_timeout=self.config.webhook.send_timeout,
        )

    async def resolve_client(self, client_id: str, application_sids: list[str]) -> Client:
        """Build the client to reconcile; SIDs default to the backend's client record."""
        if application_sids or self.api is None:
            return Client(id=client_id, application_sid=application_sids)
        try:
            data = await self.api.get(f"/clients/{client_id}")
        except NotFoundError:
            logger.warning("client_not_found", client_id=client_id)
            return Client(id=client_id)
        record = data.get("client", data) if isinstance(data, dict) else {}
        return Client.from_dict({"id": client_id, **record})
