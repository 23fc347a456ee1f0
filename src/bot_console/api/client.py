"""Async HTTP client for the console backend REST API."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from bot_console.api.auth import CredentialStore
from bot_console.config import ApiConfig
from bot_console.core.errors import ApiError, AuthError, NotFoundError
from bot_console.log import get_logger

logger = get_logger(__name__)


class ConsoleApiClient:
    """Thin JSON wrapper around the backend; translates transport failures into ApiError."""

    def __init__(
        self,
        config: ApiConfig,
        credentials: Optional[CredentialStore] = None,
        session: Optional[ClientSession] = None,
    ):
        self._base_url = config.base_url.rstrip("/")
        self._timeout = config.timeout
        self.credentials = credentials or CredentialStore(token=config.token)
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            self._session = ClientSession(
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
            logger.info("api_client_started", base_url=self._base_url)

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            logger.info("api_client_closed")
        self._session = None

    @property
    def session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError("API client not started. Call start() first.")
        return self._session

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def get(
        self,
        path: str,
        params: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        return await self._request("GET", path, params=params, timeout=timeout)

    async def post(
        self,
        path: str,
        payload: Any,
        timeout: Optional[float] = None,
    ) -> Any:
        return await self._request("POST", path, json=payload, timeout=timeout)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> Any:
        url = self.url(path)
        headers = {"Content-Type": "application/json"}
        if self.credentials.token:
            headers["Authorization"] = f"Bearer {self.credentials.token}"

        try:
            async with self.session.request(
                method,
                url,
                headers=headers,
                timeout=ClientTimeout(total=timeout or self._timeout),
                **kwargs,
            ) as response:
                text = await response.text()
                status = response.status
        except asyncio.TimeoutError as e:
            raise ApiError(f"{method} {path} timed out", url=url) from e
        except ClientError as e:
            raise ApiError(f"{method} {path} failed: {e}", url=url) from e

        if status in (401, 403):
            raise AuthError(f"{method} {path} rejected credentials", status=status, url=url)
        if status == 404:
            raise NotFoundError(f"{method} {path} not found", status=status, url=url)
        if not 200 <= status < 300:
            raise ApiError(f"{method} {path} returned HTTP {status}", status=status, url=url)

        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text
