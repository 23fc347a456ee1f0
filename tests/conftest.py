"""
Pytest configuration and shared fixtures.
Provides a local webhook server, an HTTP session and store doubles.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import structlog
from aiohttp import ClientSession, test_utils, web

from bot_console.storage.base import SessionStore
from bot_console.storage.models import Bot


@pytest.fixture(autouse=True)
def _isolate_structlog(monkeypatch):
    """Keep CLI logging setup from leaking pytest's per-test stderr into later tests.

    setup_logging binds the current (captured) sys.stderr and caches module-level
    loggers on first use; disable caching and reset the config after each test.
    """
    import bot_console.__main__ as cli

    real_setup = cli.setup_logging

    def setup_without_cache(*args, **kwargs):
        real_setup(*args, **kwargs)
        structlog.configure(cache_logger_on_first_use=False)

    monkeypatch.setattr(cli, "setup_logging", setup_without_cache)
    yield
    structlog.reset_defaults()


# ===========================
# Webhook Server Fixtures
# ===========================

class WebhookRecorder:
    """Collects every JSON payload posted to the fake webhook."""

    def __init__(self):
        self.payloads: List[Dict[str, Any]] = []

    @property
    def messages(self) -> List[Dict[str, Any]]:
        """Payloads excluding health probes."""
        return [p for p in self.payloads if p.get("sessionId") != "test_session"]


def build_webhook_app(recorder: WebhookRecorder) -> web.Application:
    async def ok(request: web.Request) -> web.Response:
        recorder.payloads.append(await request.json())
        return web.json_response({"reply": "Hello from the bot"})

    async def no_reply(request: web.Request) -> web.Response:
        recorder.payloads.append(await request.json())
        return web.Response(text="accepted")

    async def fail(request: web.Request) -> web.Response:
        return web.json_response({"error": "boom"}, status=500)

    async def slow(request: web.Request) -> web.Response:
        await asyncio.sleep(1.0)
        return web.json_response({"reply": "too late"})

    async def probe_ok_send_fail(request: web.Request) -> web.Response:
        payload = await request.json()
        recorder.payloads.append(payload)
        if payload.get("sessionId") == "test_session":
            return web.json_response({})
        return web.json_response({"error": "down"}, status=502)

    app = web.Application()
    app.router.add_post("/ok", ok)
    app.router.add_post("/no-reply", no_reply)
    app.router.add_post("/fail", fail)
    app.router.add_post("/slow", slow)
    app.router.add_post("/flaky", probe_ok_send_fail)
    return app


@pytest.fixture
def recorder() -> WebhookRecorder:
    return WebhookRecorder()


@pytest_asyncio.fixture
async def webhook_server(recorder):
    """Real HTTP server on localhost serving the fake webhook routes."""
    server = test_utils.TestServer(build_webhook_app(recorder))
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def http():
    async with ClientSession() as session:
        yield session


# ===========================
# Domain Fixtures
# ===========================

@pytest.fixture
def make_bot():
    def _make(**overrides: Any) -> Bot:
        data = {
            "_id": "bot-1",
            "name": "Support Bot",
            "type": "chat",
            "active": True,
            "webhook_url": "http://example.invalid/hook",
            "user_prompt_fields": [],
            "clientId": "client-1",
        }
        data.update(overrides)
        return Bot.from_dict(data)

    return _make


@pytest.fixture
def mock_store() -> AsyncMock:
    """SessionStore double; configure get_bot/list_sessions per test."""
    return AsyncMock(spec=SessionStore)


class FakeClock:
    """Deterministic clock advanced explicitly by tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc))
