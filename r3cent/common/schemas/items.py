"""
Timeline Item Schemas

Items are the uniform record every channel sync produces (voice capture,
text scrawl, Gmail, Google Calendar, Spotify). The ask engine only reads them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Enums
# ============================================================================

class ItemType(str, Enum):
    """Concrete item type tags (family.kind)"""
    THOUGHT_VOICE = "thought.voice"
    SCRAWL_TEXT = "scrawl.text"
    EMAIL_RECEIVED = "email.received"
    EMAIL_SENT = "email.sent"
    CALENDAR_PAST = "calendar.past"
    CALENDAR_UPCOMING = "calendar.upcoming"
    TUNES_TRACK = "tunes.track"
    TUNES_CONTEXT = "tunes.context"

    @property
    def family(self) -> str:
        """Type family prefix, e.g. "email" for email.sent"""
        return self.value.split(".")[0]


class Channel(str, Enum):
    """Channel families shown on the timeline"""
    THOUGHTS = "thoughts"
    SCRAWLS = "scrawls"
    EMAIL = "email"
    CALENDAR = "calendar"
    TUNES = "tunes"


class SourceProvider(str, Enum):
    """Where an item came from"""
    LOCAL = "local"
    GOOGLE = "google"
    SPOTIFY = "spotify"


class AskRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


CHANNEL_TYPES: Dict[Channel, tuple] = {
    Channel.THOUGHTS: (ItemType.THOUGHT_VOICE,),
    Channel.SCRAWLS: (ItemType.SCRAWL_TEXT,),
    Channel.EMAIL: (ItemType.EMAIL_RECEIVED, ItemType.EMAIL_SENT),
    Channel.CALENDAR: (ItemType.CALENDAR_PAST, ItemType.CALENDAR_UPCOMING),
    Channel.TUNES: (ItemType.TUNES_TRACK, ItemType.TUNES_CONTEXT),
}

ALL_ITEM_TYPES: tuple = tuple(ItemType)

_TYPE_TO_CHANNEL = {
    item_type: channel
    for channel, types in CHANNEL_TYPES.items()
    for item_type in types
}


def channel_for(item_type: ItemType) -> Channel:
    """Channel family an item type belongs to"""
    return _TYPE_TO_CHANNEL[ItemType(item_type)]


def ensure_utc(ts: datetime) -> datetime:
    """Read naive datetimes as UTC; leave aware ones untouched"""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


# ============================================================================
# Store records
# ============================================================================

class Item(BaseModel):
    """
    A unit of user activity, owned by the item store.

    `timestamp` is when the activity happened (an event's start time for
    calendar items), not when the row was written.
    """
    id: str = Field(..., description="Opaque unique identifier")
    user_id: str
    type: ItemType
    timestamp: datetime
    title: Optional[str] = None
    content: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    deleted: bool = False
    source_provider: SourceProvider = SourceProvider.LOCAL
    source_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


@dataclass(frozen=True)
class RetrievedItem:
    """Per-query read projection of an Item"""
    id: str
    type: ItemType
    timestamp: datetime
    title: Optional[str] = None
    content: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_item(cls, item: Item) -> "RetrievedItem":
        return cls(
            id=item.id,
            type=ItemType(item.type),
            timestamp=ensure_utc(item.timestamp),
            title=item.title,
            content=item.content,
            metadata=dict(item.metadata or {}),
        )

    @property
    def family(self) -> str:
        return self.type.family

    @property
    def text(self) -> str:
        """Lowercased title + content, the haystack for keyword matching"""
        return f"{self.title or ''} {self.content or ''}".lower()


# ============================================================================
# Ask API
# ============================================================================

class AskSource(BaseModel):
    """Citation: one item that backed the answer, and why it was picked"""
    model_config = ConfigDict(populate_by_name=True)

    item_id: str = Field(..., alias="itemId")
    type: ItemType
    timestamp: datetime = Field(..., alias="ts")
    reason: Optional[str] = None


class AskRequest(BaseModel):
    """Validated at the transport boundary, before the core runs"""
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, max_length=2000)
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    @field_validator("session_id")
    @classmethod
    def _uuid_session_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            return str(uuid.UUID(value))
        except ValueError:
            raise ValueError("sessionId must be a UUID")


class AskResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    answer: str
    sources: List[AskSource] = Field(default_factory=list)
    followups: List[str] = Field(default_factory=list)


class AskSession(BaseModel):
    id: str
    user_id: str
    created_at: datetime
    title: Optional[str] = None


class AskMessage(BaseModel):
    id: str
    session_id: str
    role: Literal["user", "assistant", "system"]
    text: str
    sources: List[AskSource] = Field(default_factory=list)
    created_at: datetime
