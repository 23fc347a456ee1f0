"""Webhook health probe for chat bots."""

from __future__ import annotations

import asyncio
from typing import Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from bot_console.log import get_logger
from bot_console.storage.models import utcnow

logger = get_logger(__name__)

DEFAULT_HEALTH_TIMEOUT = 5.0


class WebhookHealthChecker:
    """Sends one synthetic message to a webhook and reports whether it answered 2xx.

    A single probe is authoritative; there is no retry. The response body is
    never inspected because the remote automation's reply shape is not fixed.
    """

    def __init__(
        self,
        session: Optional[ClientSession] = None,
        timeout: float = DEFAULT_HEALTH_TIMEOUT,
    ):
        self._session = session
        self._timeout = timeout

    @staticmethod
    def test_payload() -> dict[str, str]:
        return {
            "message": "test",
            "sessionId": "test_session",
            "timestamp": utcnow().isoformat(),
        }

    async def check_health(self, url: Optional[str]) -> bool:
        if not url or not url.strip():
            return False

        if self._session is not None:
            return await self._probe(self._session, url.strip())
        async with ClientSession() as session:
            return await self._probe(session, url.strip())

    async def _probe(self, session: ClientSession, url: str) -> bool:
        try:
            async with session.post(
                url,
                json=self.test_payload(),
                timeout=ClientTimeout(total=self._timeout),
            ) as response:
                ok = 200 <= response.status < 300
                if not ok:
                    logger.warning("webhook_unhealthy", url=url, status=response.status)
                return ok
        except asyncio.TimeoutError:
            logger.warning("webhook_timeout", url=url, timeout=self._timeout)
            return False
        except (ClientError, ValueError) as e:
            # aiohttp.InvalidURL is a ValueError as well as a ClientError
            logger.warning("webhook_unreachable", url=url, error=str(e))
            return False
