"""
Tests for the webhook health probe against a real local HTTP server.
"""
import pytest

from bot_console.chat.health import WebhookHealthChecker


@pytest.mark.asyncio
async def test_healthy_on_200(webhook_server, http, recorder):
    checker = WebhookHealthChecker(session=http, timeout=5)

    assert await checker.check_health(str(webhook_server.make_url("/ok"))) is True
    assert recorder.payloads[0]["message"] == "test"
    assert recorder.payloads[0]["sessionId"] == "test_session"
    assert "timestamp" in recorder.payloads[0]


@pytest.mark.asyncio
async def test_body_shape_is_not_checked(webhook_server, http):
    checker = WebhookHealthChecker(session=http)

    assert await checker.check_health(str(webhook_server.make_url("/no-reply"))) is True


@pytest.mark.asyncio
async def test_unhealthy_on_500(webhook_server, http):
    checker = WebhookHealthChecker(session=http)

    assert await checker.check_health(str(webhook_server.make_url("/fail"))) is False


@pytest.mark.asyncio
async def test_unhealthy_on_404(webhook_server, http):
    checker = WebhookHealthChecker(session=http)

    assert await checker.check_health(str(webhook_server.make_url("/missing"))) is False


@pytest.mark.asyncio
async def test_unhealthy_on_timeout(webhook_server, http):
    checker = WebhookHealthChecker(session=http, timeout=0.2)

    assert await checker.check_health(str(webhook_server.make_url("/slow"))) is False


@pytest.mark.asyncio
async def test_unhealthy_when_connection_refused(http, unused_tcp_port):
    checker = WebhookHealthChecker(session=http, timeout=1)

    assert await checker.check_health(f"http://127.0.0.1:{unused_tcp_port}/hook") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["", "   ", None, "not a url", "ftp://example.com/hook"])
async def test_unhealthy_for_malformed_url(http, url):
    checker = WebhookHealthChecker(session=http, timeout=1)

    assert await checker.check_health(url) is False


@pytest.mark.asyncio
async def test_probe_without_shared_session(webhook_server):
    checker = WebhookHealthChecker()

    assert await checker.check_health(str(webhook_server.make_url("/ok"))) is True
