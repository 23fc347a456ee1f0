"""
Tests for the REST client, auth bootstrap and REST-backed store
against a real local backend.
"""
import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from bot_console.api.auth import AuthBootstrap, CredentialStore
from bot_console.api.client import ConsoleApiClient
from bot_console.config import ApiConfig, AuthConfig
from bot_console.core.errors import ApiError, AuthError, NotFoundError
from bot_console.storage.models import Session
from bot_console.storage.rest import RestSessionStore


class Backend:
    """Scriptable fake of the console backend."""

    def __init__(self):
        self.auth_statuses: list[int] = []
        self.auth_calls = 0
        self.saved: list[dict] = []
        self.queries: list[dict] = []
        self.headers: list[str] = []

    def app(self) -> web.Application:
        async def me(request: web.Request) -> web.Response:
            self.auth_calls += 1
            self.headers.append(request.headers.get("Authorization", ""))
            status = self.auth_statuses.pop(0) if self.auth_statuses else 200
            if status != 200:
                return web.json_response({"error": "nope"}, status=status)
            return web.json_response({"user": {"email": "ops@example.com"}})

        async def bot(request: web.Request) -> web.Response:
            if request.match_info["bot_id"] != "bot-1":
                return web.json_response({"error": "not found"}, status=404)
            return web.json_response({
                "_id": "bot-1",
                "name": "Support",
                "type": "chat",
                "active": True,
                "webhook_url": " http://hook.local/x ",
            })

        async def save(request: web.Request) -> web.Response:
            self.saved.append(await request.json())
            return web.json_response({"ok": True})

        async def conversations(request: web.Request) -> web.Response:
            self.queries.append(dict(request.query))
            if "clientId" in request.query:
                return web.json_response({"conversations": [
                    {"conversation_id": "c1", "started_at": "2024-01-01T10:00:00Z"},
                ]})
            return web.json_response([
                {"call_sid": "CA1", "application_sid": request.query["application_sid"]},
                "junk",
            ])

        async def metric(request: web.Request) -> web.Response:
            if request.match_info["metric"] == "broken":
                return web.json_response({"unexpected": True})
            return web.json_response([{"_id": "2024-01-01", "value": int(request.query["days"])}])

        async def crash(request: web.Request) -> web.Response:
            return web.Response(status=500, text="boom")

        app = web.Application()
        app.router.add_get("/api/auth/me", me)
        app.router.add_get("/api/bots/{bot_id}", bot)
        app.router.add_post("/api/conversations/save", save)
        app.router.add_get("/api/conversations", conversations)
        app.router.add_get("/api/analytics/{metric}-over-time", metric)
        app.router.add_get("/api/crash", crash)
        return app


@pytest.fixture
def backend():
    return Backend()


@pytest_asyncio.fixture
async def api(backend):
    server = test_utils.TestServer(backend.app())
    await server.start_server()
    client = ConsoleApiClient(
        ApiConfig(base_url=str(server.make_url("/api")), token="secret", timeout=2)
    )
    await client.start()
    yield client
    await client.close()
    await server.close()


FAST_AUTH = AuthConfig(max_attempts=3, retry_delay=0.01, request_timeout=2)


# ===========================
# ConsoleApiClient
# ===========================

@pytest.mark.asyncio
async def test_bearer_token_sent(api, backend):
    await api.get("/auth/me")

    assert backend.headers == ["Bearer secret"]


@pytest.mark.asyncio
async def test_status_mapping(api, backend):
    backend.auth_statuses = [401]
    with pytest.raises(AuthError) as auth_exc:
        await api.get("/auth/me")
    assert auth_exc.value.status == 401

    with pytest.raises(NotFoundError):
        await api.get("/bots/unknown")

    with pytest.raises(ApiError) as server_exc:
        await api.get("/crash")
    assert server_exc.value.status == 500
    assert server_exc.value.is_transient


@pytest.mark.asyncio
async def test_connection_failure_is_transient_api_error(unused_tcp_port):
    client = ConsoleApiClient(ApiConfig(base_url=f"http://127.0.0.1:{unused_tcp_port}", timeout=1))
    await client.start()
    try:
        with pytest.raises(ApiError) as exc:
            await client.get("/anything")
    finally:
        await client.close()

    assert exc.value.status is None
    assert exc.value.is_transient


@pytest.mark.asyncio
async def test_request_before_start_fails():
    client = ConsoleApiClient(ApiConfig())

    with pytest.raises(RuntimeError):
        await client.get("/auth/me")


# ===========================
# AuthBootstrap
# ===========================

@pytest.mark.asyncio
async def test_restore_sets_user(api, backend):
    user = await AuthBootstrap(api, FAST_AUTH).restore()

    assert user == {"email": "ops@example.com"}
    assert api.credentials.user == user
    assert api.credentials.authenticated


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_credentials_cleared_without_retry(api, backend, status):
    backend.auth_statuses = [status]

    assert await AuthBootstrap(api, FAST_AUTH).restore() is None
    assert api.credentials.token is None
    assert backend.auth_calls == 1


@pytest.mark.asyncio
async def test_transient_failures_retried_until_success(api, backend):
    backend.auth_statuses = [503, 502]

    user = await AuthBootstrap(api, FAST_AUTH).restore()

    assert user == {"email": "ops@example.com"}
    assert backend.auth_calls == 3


@pytest.mark.asyncio
async def test_gives_up_silently_and_keeps_credentials(api, backend):
    backend.auth_statuses = [500, 500, 500, 500]
    api.credentials.user = {"email": "cached@example.com"}

    user = await AuthBootstrap(api, FAST_AUTH).restore()

    assert user == {"email": "cached@example.com"}
    assert api.credentials.token == "secret"
    assert backend.auth_calls == 3


@pytest.mark.asyncio
async def test_no_token_skips_check(api, backend):
    api.credentials.clear()

    assert await AuthBootstrap(api, FAST_AUTH).restore() is None
    assert backend.auth_calls == 0


def test_credential_store_clear():
    creds = CredentialStore(token="t", user={"email": "x"})

    creds.clear()

    assert not creds.authenticated
    assert creds.user == {}


# ===========================
# RestSessionStore
# ===========================

@pytest.mark.asyncio
async def test_get_bot(api):
    store = RestSessionStore(api)

    bot = await store.get_bot("bot-1")

    assert bot.id == "bot-1"
    assert bot.webhook_url == "http://hook.local/x"
    assert await store.get_bot("missing") is None


@pytest.mark.asyncio
async def test_save_session_posts_record(api, backend):
    store = RestSessionStore(api)

    await store.save_session(Session(conversation_id="c9", bot_id="bot-1", duration_minutes=2))

    assert backend.saved[0]["conversation_id"] == "c9"
    assert backend.saved[0]["duration_minutes"] == 2


@pytest.mark.asyncio
async def test_list_sessions_by_either_attribution(api, backend):
    store = RestSessionStore(api)

    direct = await store.list_sessions(client_id="client-x", limit=100)
    by_sid = await store.list_sessions(application_sid="s1", limit=50)

    assert [s.session_id for s in direct] == ["c1"]
    assert [s.session_id for s in by_sid] == ["CA1"]
    assert by_sid[0].application_sid == "s1"
    assert backend.queries == [
        {"limit": "100", "clientId": "client-x"},
        {"limit": "50", "application_sid": "s1"},
    ]


@pytest.mark.asyncio
async def test_metric_over_time(api):
    store = RestSessionStore(api)

    assert await store.metric_over_time("conversations", 30) == [{"_id": "2024-01-01", "value": 30}]
    assert await store.metric_over_time("broken", 7) == []
