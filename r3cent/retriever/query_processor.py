"""
Query Processor

Classifies a free-text ask query: normalizes it, extracts up to six
keywords, and derives independent intent flags from channel vocabulary.
"""

import re
from dataclasses import dataclass
from typing import Dict, Tuple

from ..common.schemas import Channel


@dataclass(frozen=True)
class QueryContext:
    """Classified query. Created once per query and never persisted."""
    original: str
    normalized: str
    keywords: Tuple[str, ...] = ()
    wants_recent: bool = False
    wants_thoughts: bool = False
    wants_scrawls: bool = False
    wants_email: bool = False
    wants_calendar: bool = False
    wants_tunes: bool = False
    wants_all: bool = False

    def wants_channel(self, channel: Channel) -> bool:
        """Whether the query's vocabulary names this channel"""
        return {
            Channel.THOUGHTS: self.wants_thoughts,
            Channel.SCRAWLS: self.wants_scrawls,
            Channel.EMAIL: self.wants_email,
            Channel.CALENDAR: self.wants_calendar,
            Channel.TUNES: self.wants_tunes,
        }[channel]

    @property
    def wanted_channels(self) -> Tuple[Channel, ...]:
        return tuple(c for c in Channel if self.wants_channel(c))


# Channel vocabulary. Matched as substrings, case-insensitively, against the
# raw query, so "emailed" still counts as email intent.
CHANNEL_PATTERNS: Dict[Channel, "re.Pattern[str]"] = {
    Channel.THOUGHTS: re.compile(r"thought|voice|said|spoke|capture", re.IGNORECASE),
    Channel.SCRAWLS: re.compile(r"scrawl|note|wrote|typed|write", re.IGNORECASE),
    Channel.EMAIL: re.compile(r"email|mail|message|inbox", re.IGNORECASE),
    Channel.CALENDAR: re.compile(r"calendar|event|meeting|schedule|appointment", re.IGNORECASE),
    Channel.TUNES: re.compile(r"music|song|listen|tune|track|playing|spotify", re.IGNORECASE),
}

RECENT_PATTERN = re.compile(r"recent|latest|last|new|summarize|summary", re.IGNORECASE)
ALL_PATTERN = re.compile(r"everything|all|activity|overview|what.*been", re.IGNORECASE)


def channel_intent_matches(query: str, channel: Channel) -> bool:
    """Test the raw query against one channel's vocabulary"""
    return CHANNEL_PATTERNS[channel].search(query) is not None


class QueryProcessor:
    """
    Turns a raw query into a QueryContext.

    Responsibilities:
    1. Normalize: lowercase, keep only [a-z0-9 whitespace], collapse spaces
    2. Extract keywords (length > 2, not a stop word, first 6 in order)
    3. Detect intent flags on the raw query (flags are not exclusive)
    """

    MAX_KEYWORDS = 6

    STOP_WORDS = frozenset({
        "what", "is", "are", "the", "my", "i", "have", "has", "been",
        "a", "an", "to", "for", "of", "in", "on", "with", "about",
        "tell", "me", "show", "find", "get",
        "summarize", "summary", "recent", "latest", "last", "new",
        "this", "that",
    })

    def parse(self, query: str) -> QueryContext:
        """
        Classify a user query.

        Args:
            query: Raw query string (already length-validated by the caller)

        Returns:
            QueryContext with normalized text, keywords and intent flags
        """
        normalized = self._normalize(query)
        keywords = self._extract_keywords(normalized)

        return QueryContext(
            original=query,
            normalized=normalized,
            keywords=keywords,
            wants_recent=RECENT_PATTERN.search(query) is not None,
            wants_thoughts=channel_intent_matches(query, Channel.THOUGHTS),
            wants_scrawls=channel_intent_matches(query, Channel.SCRAWLS),
            wants_email=channel_intent_matches(query, Channel.EMAIL),
            wants_calendar=channel_intent_matches(query, Channel.CALENDAR),
            wants_tunes=channel_intent_matches(query, Channel.TUNES),
            wants_all=ALL_PATTERN.search(query) is not None,
        )

    def _normalize(self, query: str) -> str:
        """Lowercase, replace anything outside [a-z0-9\\s] with a space, collapse"""
        cleaned = re.sub(r"[^a-z0-9\s]", " ", query.lower())
        return re.sub(r"\s+", " ", cleaned).strip()

    def _extract_keywords(self, normalized: str) -> Tuple[str, ...]:
        """Keep query order; duplicates are kept and each counts as a hit"""
        keywords = [
            word for word in normalized.split()
            if len(word) > 2 and word not in self.STOP_WORDS
        ]
        return tuple(keywords[:self.MAX_KEYWORDS])
