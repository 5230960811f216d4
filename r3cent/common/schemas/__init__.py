"""
r3cent Item Schemas

Timeline items and the ask request/response shapes.
"""

from .items import (
    ItemType,
    Channel,
    SourceProvider,
    AskRole,
    CHANNEL_TYPES,
    ALL_ITEM_TYPES,
    channel_for,
    ensure_utc,
    Item,
    RetrievedItem,
    AskSource,
    AskRequest,
    AskResponse,
    AskSession,
    AskMessage,
)

__all__ = [
    "ItemType",
    "Channel",
    "SourceProvider",
    "AskRole",
    "CHANNEL_TYPES",
    "ALL_ITEM_TYPES",
    "channel_for",
    "ensure_utc",
    "Item",
    "RetrievedItem",
    "AskSource",
    "AskRequest",
    "AskResponse",
    "AskSession",
    "AskMessage",
]
