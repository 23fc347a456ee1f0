"""Chat session lifecycle: bot resolution, detail collection, messaging, persistence."""

from __future__ import annotations

import asyncio
import json
import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from bot_console.chat.details import validate_user_details
from bot_console.chat.errors import (
    BotUnavailableError,
    ChatSessionError,
    InvalidTransitionError,
    MessageDeliveryError,
    PersistenceError,
    WebhookMisconfiguredError,
    WebhookUnavailableError,
)
from bot_console.chat.health import WebhookHealthChecker
from bot_console.core.errors import ApiError
from bot_console.core.types import Sender, SessionState, SessionStatus
from bot_console.log import get_logger
from bot_console.storage.base import SessionStore
from bot_console.storage.models import Bot, Message, Session, utcnow

logger = get_logger(__name__)

DEFAULT_SEND_TIMEOUT = 10.0

DETAILS_PROMPT = "Welcome to {name}! Please provide your details to get started."
WELCOME = "Welcome to {name}! How can I help you today?"
DETAILS_ACK = "Thank you! How can I help you today?"
REPLY_FALLBACK = "Thank you for your message. I will get back to you soon."
DELIVERY_FALLBACK = "I am currently processing your request. Please wait a moment."

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.RESOLVING_BOT: frozenset(
        {SessionState.AWAITING_DETAILS, SessionState.ACTIVE, SessionState.ERRORED}
    ),
    SessionState.AWAITING_DETAILS: frozenset(
        {SessionState.ACTIVE, SessionState.DISCONNECTING}
    ),
    SessionState.ACTIVE: frozenset({SessionState.DISCONNECTING, SessionState.ERRORED}),
    SessionState.DISCONNECTING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset({SessionState.RESOLVING_BOT}),
    SessionState.ERRORED: frozenset(),
}


def generate_session_id() -> str:
    return f"chat_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def duration_minutes(started_at: datetime, ended_at: datetime) -> int:
    return max(0, math.floor((ended_at - started_at).total_seconds() / 60))


@dataclass(frozen=True, slots=True)
class SendOutcome:
    user_message: Optional[Message] = None
    reply: Optional[Message] = None
    error: Optional[ChatSessionError] = None

    @property
    def delivered(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class DisconnectOutcome:
    session: Session
    saved: bool = False
    error: Optional[ChatSessionError] = None


class ChatSessionController:
    """Drives one end user's chat session against a single bot.

    Each instance owns its session and message log exclusively. Only
    ``RESOLVING_BOT`` and ``ACTIVE`` can fail into the terminal ``ERRORED``
    state; every other failure is reported through the returned outcome.
    """

    def __init__(
        self,
        bot_id: str,
        store: SessionStore,
        health_checker: WebhookHealthChecker,
        *,
        http: Optional[ClientSession] = None,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
        session_id_factory: Callable[[], str] = generate_session_id,
    ):
        self.bot_id = bot_id
        self._store = store
        self._health = health_checker
        self._http = http
        self._send_timeout = send_timeout
        self._clock = clock
        self._new_session_id = session_id_factory

        self._state = SessionState.RESOLVING_BOT
        self._resolving = False
        self.bot: Optional[Bot] = None
        self.session: Optional[Session] = None
        self.error: Optional[ChatSessionError] = None

    # -- state ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def messages(self) -> list[Message]:
        return list(self.session.message_log) if self.session else []

    def _transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state, target)
        logger.debug("chat_state_changed", bot_id=self.bot_id, frm=self._state, to=target)
        self._state = target

    def _fail(self, error: ChatSessionError) -> SessionState:
        self.error = error
        self._transition(SessionState.ERRORED)
        logger.warning("chat_session_errored", bot_id=self.bot_id, kind=error.kind, error=str(error))
        return self._state

    def _require_open(self, target: SessionState) -> tuple[Bot, Session]:
        if self.bot is None or self.session is None:
            raise InvalidTransitionError(self._state, target)
        return self.bot, self.session

    def _append(self, sender: Sender, text: str) -> Message:
        _, session = self._require_open(self._state)
        message = Message(sender=sender, message=text, timestamp=self._clock())
        session.message_log.append(message)
        return message

    # -- RESOLVING_BOT -------------------------------------------------

    async def start(self, bot_id: Optional[str] = None) -> SessionState:
        """Resolve the bot and open a new session (also valid again after CLOSED).

        Passing ``bot_id`` switches the controller to another bot first.
        """
        if self._state == SessionState.CLOSED:
            self._transition(SessionState.RESOLVING_BOT)
        elif self._state != SessionState.RESOLVING_BOT or self._resolving or self.session:
            raise InvalidTransitionError(self._state, SessionState.RESOLVING_BOT)

        if bot_id:
            self.bot_id = bot_id
            self.bot = None
        self._resolving = True
        self.error = None
        try:
            return await self._resolve()
        finally:
            self._resolving = False

    async def _resolve(self) -> SessionState:
        try:
            bot = await self._store.get_bot(self.bot_id)
        except ApiError as e:
            return self._fail(BotUnavailableError(f"Error loading bot information: {e}"))

        if bot is None or not bot.active:
            return self._fail(BotUnavailableError("Bot not found or inactive"))
        if not bot.has_webhook:
            return self._fail(WebhookMisconfiguredError(
                "This bot is not configured for chat. Please contact the administrator."
            ))
        if not await self._health.check_health(bot.webhook_url):
            return self._fail(WebhookMisconfiguredError(
                "This bot's webhook URL is not responding correctly. "
                "Please contact the administrator."
            ))

        self.bot = bot
        self.session = Session(
            conversation_id=self._new_session_id(),
            bot_id=bot.id or self.bot_id,
            client_id=bot.client_id,
            channel_type="chat",
            started_at=self._clock(),
            status=SessionStatus.ACTIVE,
        )

        if bot.user_prompt_fields:
            self._append(Sender.AGENT, bot.welcome_message or DETAILS_PROMPT.format(name=bot.name))
            self._transition(SessionState.AWAITING_DETAILS)
        else:
            self._append(Sender.AGENT, bot.welcome_message or WELCOME.format(name=bot.name))
            self._transition(SessionState.ACTIVE)

        logger.info(
            "chat_session_started",
            bot_id=self.bot_id,
            session_id=self.session.session_id,
            state=self._state,
        )
        return self._state

    # -- AWAITING_DETAILS ----------------------------------------------

    def submit_details(self, details: dict[str, Any]) -> SessionState:
        if self._state != SessionState.AWAITING_DETAILS:
            raise InvalidTransitionError(self._state, SessionState.ACTIVE)
        bot, session = self._require_open(SessionState.ACTIVE)

        session.user_details = validate_user_details(bot.user_prompt_fields, details)
        self._append(Sender.AGENT, DETAILS_ACK)
        self._transition(SessionState.ACTIVE)
        return self._state

    # -- ACTIVE --------------------------------------------------------

    async def send_message(self, text: str) -> SendOutcome:
        if self._state != SessionState.ACTIVE:
            raise InvalidTransitionError(self._state, SessionState.ACTIVE)
        if not text or not text.strip():
            raise ValueError("message text is required")
        bot, session = self._require_open(SessionState.ACTIVE)

        if not bot.has_webhook:
            error = WebhookMisconfiguredError(
                "Chat is not available for this bot. Please contact the administrator."
            )
            self._fail(error)
            return SendOutcome(error=error)

        if not await self._health.check_health(bot.webhook_url):
            error = WebhookUnavailableError(
                "Webhook URL is not responding. Please contact the administrator."
            )
            logger.warning("chat_send_skipped", session_id=session.session_id)
            return SendOutcome(error=error)

        # Local echo first; the remote reply is appended when it arrives
        user_message = self._append(Sender.USER, text)
        payload = {
            "message": text,
            "sessionId": session.session_id,
            "timestamp": user_message.timestamp.isoformat(),
        }

        try:
            body = await self._post_webhook(bot.webhook_url, payload)
        except MessageDeliveryError as e:
            reply = self._append(Sender.AGENT, DELIVERY_FALLBACK)
            logger.warning(
                "chat_delivery_failed", session_id=session.session_id, error=str(e)
            )
            return SendOutcome(user_message=user_message, reply=reply, error=e)

        reply_text = body.get("reply") if isinstance(body, dict) else None
        if not isinstance(reply_text, str) or not reply_text.strip():
            reply_text = REPLY_FALLBACK
        reply = self._append(Sender.AGENT, reply_text)
        return SendOutcome(user_message=user_message, reply=reply)

    async def _post_webhook(self, url: str, payload: dict[str, Any]) -> Any:
        if self._http is not None:
            return await self._do_post(self._http, url, payload)
        async with ClientSession() as http:
            return await self._do_post(http, url, payload)

    async def _do_post(self, http: ClientSession, url: str, payload: dict[str, Any]) -> Any:
        try:
            async with http.post(
                url,
                json=payload,
                timeout=ClientTimeout(total=self._send_timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    raise MessageDeliveryError(f"Webhook returned HTTP {response.status}")
                text = await response.text()
        except asyncio.TimeoutError as e:
            raise MessageDeliveryError("Webhook did not reply in time") from e
        except (ClientError, ValueError) as e:
            raise MessageDeliveryError(f"Webhook request failed: {e}") from e

        try:
            return json.loads(text) if text else None
        except ValueError:
            return None

    # -- DISCONNECTING / CLOSED ----------------------------------------

    async def disconnect(self) -> DisconnectOutcome:
        """Finalize the session, persist it when possible, then clear local state."""
        if SessionState.DISCONNECTING not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state, SessionState.DISCONNECTING)
        bot, session = self._require_open(SessionState.DISCONNECTING)
        self._transition(SessionState.DISCONNECTING)

        now = self._clock()
        log = list(session.message_log)
        started_at = log[0].timestamp if log else now
        final = Session(
            conversation_id=session.conversation_id,
            bot_id=session.bot_id,
            client_id=session.client_id,
            channel_type=session.channel_type,
            user_details=dict(session.user_details),
            message_log=log,
            started_at=started_at,
            ended_at=now,
            duration_minutes=duration_minutes(started_at, now),
            status=SessionStatus.COMPLETED,
        )

        saved = False
        error: Optional[ChatSessionError] = None
        try:
            if not log:
                logger.info("chat_session_empty", session_id=final.session_id)
            elif not await self._health.check_health(bot.webhook_url):
                error = WebhookUnavailableError("Not saving conversation: webhook URL is invalid")
                logger.warning("chat_session_not_saved", session_id=final.session_id)
            else:
                await self._store.save_session(final)
                saved = True
        except Exception as e:
            error = PersistenceError(f"Failed to save conversation: {e}")
            logger.error(
                "chat_session_save_failed",
                session_id=final.session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            # CLOSED is reached even if the save was cancelled
            self.session = None
            self._transition(SessionState.CLOSED)

        logger.info(
            "chat_session_closed",
            session_id=final.session_id,
            saved=saved,
            duration_minutes=final.duration_minutes,
        )
        return DisconnectOutcome(session=final, saved=saved, error=error)
