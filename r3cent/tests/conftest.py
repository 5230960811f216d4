"""Shared fixtures for the r3cent test suite."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest

# Thursday
FIXED_NOW = datetime(2026, 1, 15, 15, 4, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def make_item():
    """Factory for timeline items, aged relative to FIXED_NOW by default"""
    from r3cent.common.schemas import Item, ItemType

    def _make(
        item_type: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        days_ago: float = 0.0,
        user_id: str = "user-1",
        item_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        deleted: bool = False,
        base: datetime = FIXED_NOW,
    ):
        return Item(
            id=item_id or str(uuid.uuid4()),
            user_id=user_id,
            type=ItemType(item_type),
            timestamp=base - timedelta(days=days_ago),
            title=title,
            content=content,
            metadata=metadata or {},
            deleted=deleted,
        )

    return _make
