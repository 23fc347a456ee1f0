"""Data models for the storage boundary (bots, clients, sessions)."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from bot_console.core.types import BotType, Sender, SessionStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO string, epoch milliseconds or datetime into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def normalize_application_sids(value: Any) -> list[str]:
    """Accept a list, a comma-separated string or a scalar and return stripped SIDs."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value if v is not None]
    else:
        items = [str(value)]
    return [sid.strip() for sid in items if sid and sid.strip()]


@dataclass(frozen=True, slots=True)
class PromptField:
    """A detail the bot asks the end user for before messaging starts."""

    name: str
    label: str = ""
    type: str = "text"  # "text" | "email" | "number" | "phone" | "tel"
    required: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PromptField:
        name = str(data.get("name") or data.get("label") or "").strip()
        return cls(
            name=name,
            label=str(data.get("label") or name),
            type=str(data.get("type") or "text").lower(),
            required=bool(data.get("required", False)),
        )


@dataclass
class Bot:
    id: str
    name: str
    type: BotType = BotType.CHAT
    webhook_url: str = ""
    active: bool = False
    user_prompt_fields: list[PromptField] = field(default_factory=list)
    welcome_message: str = ""
    client_id: Optional[str] = None

    @property
    def has_webhook(self) -> bool:
        return bool(self.webhook_url and self.webhook_url.strip())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bot:
        try:
            bot_type = BotType(str(data.get("type") or "chat").lower())
        except ValueError:
            bot_type = BotType.CHAT
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            name=str(data.get("name") or ""),
            type=bot_type,
            webhook_url=str(data.get("webhook_url") or "").strip(),
            active=bool(data.get("active", False)),
            user_prompt_fields=[
                PromptField.from_dict(f) for f in data.get("user_prompt_fields") or []
            ],
            welcome_message=str(data.get("welcome_message") or ""),
            client_id=data.get("client_id") or data.get("clientId"),
        )


@dataclass
class Message:
    sender: Sender
    message: str
    timestamp: datetime = field(default_factory=utcnow)
    sentiment: str = "neutral"
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender": self.sender.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "sentiment": self.sentiment,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        sender = Sender.USER if data.get("sender") == "user" else Sender.AGENT
        return cls(
            sender=sender,
            message=str(data.get("message") or ""),
            timestamp=parse_timestamp(data.get("timestamp")) or utcnow(),
            sentiment=str(data.get("sentiment") or "neutral"),
            tags=list(data.get("tags") or []),
        )


@dataclass
class Session:
    """One end-to-end conversation, chat or provider-originated."""

    conversation_id: Optional[str] = None
    call_sid: Optional[str] = None
    bot_id: Optional[str] = None
    client_id: Optional[str] = None
    application_sid: Optional[str] = None
    channel_type: str = "chat"
    user_details: dict[str, Any] = field(default_factory=dict)
    message_log: list[Message] = field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: Optional[datetime] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def session_id(self) -> Optional[str]:
        """Natural key: the provider call SID when present, else the conversation id."""
        return self.call_sid or self.conversation_id

    _KNOWN_FIELDS = frozenset({
        "conversation_id", "call_sid", "bot_id", "client_id", "clientId",
        "application_sid", "channel_type", "user_details", "message_log",
        "started_at", "ended_at", "duration_minutes", "status", "created_at", "createdAt",
    })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        duration = data.get("duration_minutes")
        try:
            duration = int(duration) if duration not in (None, "") else None
        except (TypeError, ValueError):
            duration = None
        try:
            status = SessionStatus(data.get("status") or "active")
        except ValueError:
            status = SessionStatus.ACTIVE
        return cls(
            conversation_id=data.get("conversation_id"),
            call_sid=data.get("call_sid"),
            bot_id=data.get("bot_id"),
            client_id=data.get("client_id") or data.get("clientId"),
            application_sid=data.get("application_sid"),
            channel_type=str(data.get("channel_type") or "chat"),
            user_details=dict(data.get("user_details") or {}),
            message_log=[Message.from_dict(m) for m in data.get("message_log") or []],
            started_at=parse_timestamp(data.get("started_at")),
            ended_at=parse_timestamp(data.get("ended_at")),
            duration_minutes=duration,
            status=status,
            created_at=parse_timestamp(data.get("created_at") or data.get("createdAt")),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "conversation_id": self.conversation_id,
            "bot_id": self.bot_id,
            "client_id": self.client_id,
            "channel_type": self.channel_type,
            "user_details": dict(self.user_details),
            "message_log": [m.to_dict() for m in self.message_log],
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "duration_minutes": self.duration_minutes,
            "status": self.status.value,
        }
        if self.call_sid:
            payload["call_sid"] = self.call_sid
        if self.application_sid:
            payload["application_sid"] = self.application_sid
        if self.created_at:
            payload["created_at"] = _iso(self.created_at)
        return payload


@dataclass
class Client:
    """A tenant. Sessions are attributed by client id or by any of its application SIDs."""

    id: str
    name: str = ""
    application_sid: list[str] = field(default_factory=list)
    contact_email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Client:
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            name=str(data.get("name") or ""),
            application_sid=normalize_application_sids(data.get("application_sid")),
            contact_email=data.get("contact_email"),
        )
