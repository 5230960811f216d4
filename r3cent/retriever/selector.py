"""
Candidate Selector

Maps intent flags to an item-type allowlist and issues one bounded,
newest-first fetch against the item store.
"""

import logging
from typing import List, Tuple

from ..common.item_store import ItemStore
from ..common.schemas import ALL_ITEM_TYPES, CHANNEL_TYPES, ItemType, RetrievedItem
from .query_processor import QueryContext

logger = logging.getLogger("r3cent.retriever.selector")

# Broad and recency questions need a deeper pool for the scorer to find
# the true top results; channel-specific ones are already narrowed by type.
BROAD_FETCH_LIMIT = 60
NARROW_FETCH_LIMIT = 40


class CandidateSelector:
    """
    Selects candidate items for a query.

    Store failures are not caught here: without items there is nothing
    meaningful to answer with.
    """

    def __init__(self, item_store: ItemStore):
        self._store = item_store

    @staticmethod
    def allowed_types(context: QueryContext) -> Tuple[ItemType, ...]:
        """Item types to fetch; every type when nothing specific (or everything) was asked"""
        if context.wants_all:
            return ALL_ITEM_TYPES

        types: List[ItemType] = []
        for channel in context.wanted_channels:
            types.extend(CHANNEL_TYPES[channel])

        return tuple(types) if types else ALL_ITEM_TYPES

    @staticmethod
    def fetch_limit(context: QueryContext) -> int:
        if context.wants_recent or context.wants_all:
            return BROAD_FETCH_LIMIT
        return NARROW_FETCH_LIMIT

    def select(self, context: QueryContext, user_id: str) -> List[RetrievedItem]:
        """
        Fetch candidates for a classified query.

        Args:
            context: Output of QueryProcessor.parse
            user_id: Owner of the items

        Returns:
            RetrievedItems, newest first, at most fetch_limit(context) long
        """
        types = self.allowed_types(context)
        limit = self.fetch_limit(context)

        items = self._store.fetch(user_id, types=types, limit=limit)

        # Soft-deleted rows must never reach ranking, whatever the store did
        candidates = [RetrievedItem.from_item(item) for item in items if not item.deleted]

        logger.debug(
            "Selected %d candidates (types=%s, limit=%d)",
            len(candidates), [t.value for t in types], limit,
        )
        return candidates[:limit]
