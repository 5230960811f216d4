"""
Context Assembler

Renders the top ranked items into the bounded context block handed to
the answer generator, plus the citation list returned to the caller.
Citations are always a prefix of the context items, in the same order.
"""

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..common.schemas import AskSource, Channel, RetrievedItem, channel_for, ensure_utc
from .query_processor import QueryContext
from .scorer import ScoredItem, matched_keywords

MAX_CONTEXT_ITEMS = 6
MAX_CITATIONS = 5
MAX_CONTENT_CHARS = 500

# One detail line per item: first metadata key present wins.
DETAIL_FIELDS: Dict[Channel, List[Tuple[str, str]]] = {
    Channel.EMAIL: [("from", "From: {}"), ("to", "To: {}")],
    Channel.CALENDAR: [("location", "Location: {}"), ("attendeesCount", "Attendees: {}")],
    Channel.TUNES: [("artist", "Artist: {}"), ("name", "Playlist: {}")],
}

INTENT_REASONS: Dict[Channel, str] = {
    Channel.EMAIL: "Matches email intent",
    Channel.CALENDAR: "Matches calendar intent",
    Channel.THOUGHTS: "Matches thoughts intent",
    Channel.SCRAWLS: "Matches notes intent",
    Channel.TUNES: "Matches music intent",
}

FALLBACK_REASON = "Recent activity"


@dataclass
class AssembledContext:
    """Context block for generation plus the parallel citation list"""
    context_block: str
    citations: List[AskSource] = field(default_factory=list)
    items: List[RetrievedItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items


def type_label(item: RetrievedItem) -> str:
    """Readable type tag: email.received -> email received"""
    return item.type.value.replace(".", " ").replace("_", " ")


def format_timestamp(ts: datetime, tz: Optional[tzinfo] = None) -> str:
    """Short local date/time, e.g. Wed, Jan 15, 3:04 PM"""
    local = ensure_utc(ts)
    if tz is not None:
        local = local.astimezone(tz)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local:%a, %b} {local.day}, {hour}:{local:%M} {meridiem}"


def _format_detail_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def extract_detail(item: RetrievedItem) -> Optional[str]:
    """One human-readable detail line from the item's metadata, if any"""
    metadata = item.metadata or {}
    for key, template in DETAIL_FIELDS.get(channel_for(item.type), []):
        value = metadata.get(key)
        if value not in (None, "", [], ()):
            return template.format(_format_detail_value(value))
    return None


def build_source_reason(item: RetrievedItem, context: QueryContext) -> str:
    """
    Why an item was cited, in priority order:
    1. a query keyword occurs in its title/content
    2. the query's vocabulary named the item's channel
    3. otherwise it is simply recent activity
    """
    matches = matched_keywords(item, context.keywords)
    if matches:
        return f'Matches keyword "{matches[0]}"'

    channel = channel_for(item.type)
    if context.wants_channel(channel):
        return INTENT_REASONS[channel]

    return FALLBACK_REASON


def render_item(index: int, item: RetrievedItem, tz: Optional[tzinfo] = None) -> str:
    """`[n] <type> (<date>)[ - <detail>]` followed by the content on its own line"""
    body = (item.content or "")[:MAX_CONTENT_CHARS] or item.title or "No content"
    detail = extract_detail(item)
    header = f"[{index}] {type_label(item)} ({format_timestamp(item.timestamp, tz)})"
    if detail:
        header = f"{header} - {detail}"
    return f"{header}\n{body}"


class ContextAssembler:
    """Builds the generation context and citations from a ranked list"""

    def __init__(
        self,
        max_context_items: int = MAX_CONTEXT_ITEMS,
        max_citations: int = MAX_CITATIONS,
    ):
        # Citations must stay a prefix of the context items
        self.max_context_items = max_context_items
        self.max_citations = min(max_citations, max_context_items)

    def assemble(
        self,
        ranked: Sequence[Union[ScoredItem, RetrievedItem]],
        context: QueryContext,
        tz: Optional[tzinfo] = None,
    ) -> AssembledContext:
        """
        Args:
            ranked: Ranked items (ScoredItem or bare RetrievedItem), best first
            context: Classified query
            tz: Time zone used to render dates

        Returns:
            AssembledContext; empty block and no citations for an empty list
        """
        items = [r.item if isinstance(r, ScoredItem) else r for r in ranked]
        context_items = items[:self.max_context_items]

        block = "\n\n".join(
            render_item(i, item, tz) for i, item in enumerate(context_items, 1)
        )

        citations = [
            AskSource(
                item_id=item.id,
                type=item.type,
                timestamp=item.timestamp,
                reason=build_source_reason(item, context),
            )
            for item in context_items[:self.max_citations]
        ]

        return AssembledContext(
            context_block=block,
            citations=citations,
            items=context_items,
        )
