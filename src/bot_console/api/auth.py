"""Credential storage and auth bootstrap with bounded retry on transient failures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from bot_console.config import AuthConfig
from bot_console.core.errors import ApiError, AuthError
from bot_console.log import get_logger

if TYPE_CHECKING:
    from bot_console.api.client import ConsoleApiClient

logger = get_logger(__name__)


@dataclass
class CredentialStore:
    token: Optional[str] = None
    user: dict[str, Any] = field(default_factory=dict)

    def clear(self) -> None:
        self.token = None
        self.user = {}

    @property
    def authenticated(self) -> bool:
        return bool(self.token)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ApiError) and not isinstance(exc, AuthError) and exc.is_transient


class AuthBootstrap:
    """Restores the signed-in user on startup.

    A 401/403 from ``/auth/me`` clears credentials at once. Transient network
    failures are retried a bounded number of times, after which the check gives
    up silently and leaves the stored credentials untouched.
    """

    def __init__(self, client: ConsoleApiClient, config: AuthConfig):
        self._client = client
        self._config = config

    async def restore(self) -> Optional[dict[str, Any]]:
        credentials = self._client.credentials
        if not credentials.token:
            return None

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._config.max_attempts),
                wait=wait_fixed(self._config.retry_delay),
                retry=retry_if_exception(_is_transient),
                reraise=False,
            ):
                with attempt:
                    data = await self._client.get(
                        "/auth/me", timeout=self._config.request_timeout
                    )
        except AuthError as e:
            logger.warning("auth_rejected", status=e.status)
            credentials.clear()
            return None
        except RetryError as e:
            logger.warning(
                "auth_check_gave_up",
                attempts=self._config.max_attempts,
                error=str(e.last_attempt.exception()),
            )
            return credentials.user or None
        except ApiError as e:
            logger.warning("auth_check_failed", status=e.status, error=str(e))
            return credentials.user or None

        user = data.get("user") if isinstance(data, dict) else None
        if not user:
            logger.warning("auth_response_invalid")
            credentials.clear()
            return None

        credentials.user = user
        logger.info("auth_restored", email=user.get("email"))
        return user
