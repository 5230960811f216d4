"""
r3cent Common Module

Shared infrastructure for the ask pipeline and its transports.
"""

from .config import R3centConfig, load_config
from .item_store import ItemStore, InMemoryItemStore, SQLiteItemStore, StoreError
from .llm_client import LLMClient
from .session_ledger import SessionLedger, SessionNotFoundError

__all__ = [
    "R3centConfig",
    "load_config",
    "ItemStore",
    "InMemoryItemStore",
    "SQLiteItemStore",
    "StoreError",
    "LLMClient",
    "SessionLedger",
    "SessionNotFoundError",
]
