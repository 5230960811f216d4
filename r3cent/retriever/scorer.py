"""
Relevance scoring for ask candidates.

Score formula:
    score = keyword_hits * 2 + type_bonus + recency + recent_bonus

    keyword_hits  number of query keywords found as substrings of
                  lowercase(title + " " + content)
    type_bonus    1.2 when the item's channel was asked for, else 0
    recency       max(0, 1 - age_days / 30), linear decay to 0 at 30 days
    recent_bonus  0.4 when the query uses recency language, else 0

Keyword hits dominate: with no embeddings, an explicit lexical match is the
strongest signal available. Ties go to the newer item, then the lower id.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from ..common.schemas import RetrievedItem, channel_for, ensure_utc
from .query_processor import QueryContext

KEYWORD_WEIGHT = 2.0
TYPE_BONUS = 1.2
RECENT_BONUS = 0.4
RECENCY_WINDOW_DAYS = 30.0

KEYWORD_RESULT_LIMIT = 12
DEFAULT_RESULT_LIMIT = 10

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class ScoredItem:
    """Candidate with its relevance score and breakdown"""
    item: RetrievedItem
    score: float
    keyword_hits: int = 0
    type_bonus: float = 0.0
    recency_score: float = 0.0
    recent_bonus: float = 0.0
    matched_keywords: tuple = field(default_factory=tuple)

    @property
    def breakdown(self) -> Dict[str, float]:
        return {
            "keyword_hits": self.keyword_hits,
            "type_bonus": self.type_bonus,
            "recency": round(self.recency_score, 4),
            "recent_bonus": self.recent_bonus,
        }


def calculate_recency_score(timestamp: datetime, now: datetime) -> float:
    """
    Linear decay from 1.0 (now) to 0.0 (30 days old).

    Future timestamps (upcoming calendar events) count as age 0.
    """
    age_days = max(0.0, (ensure_utc(now) - ensure_utc(timestamp)).total_seconds() / SECONDS_PER_DAY)
    return max(0.0, 1.0 - age_days / RECENCY_WINDOW_DAYS)


def matched_keywords(item: RetrievedItem, keywords: Sequence[str]) -> List[str]:
    """Keywords that occur as plain substrings of the item text (no stemming)"""
    text = item.text
    return [keyword for keyword in keywords if keyword in text]


class RelevanceScorer:
    """
    Scores and ranks candidates for one query.

    Pure with respect to its inputs: the clock is passed in, so the same
    items, query and `now` always yield the same order.
    """

    def score_item(
        self,
        item: RetrievedItem,
        context: QueryContext,
        now: datetime,
    ) -> ScoredItem:
        matches = matched_keywords(item, context.keywords)
        type_bonus = TYPE_BONUS if context.wants_channel(channel_for(item.type)) else 0.0
        recency = calculate_recency_score(item.timestamp, now)
        recent_bonus = RECENT_BONUS if context.wants_recent else 0.0

        score = len(matches) * KEYWORD_WEIGHT + type_bonus + recency + recent_bonus

        return ScoredItem(
            item=item,
            score=score,
            keyword_hits=len(matches),
            type_bonus=type_bonus,
            recency_score=recency,
            recent_bonus=recent_bonus,
            matched_keywords=tuple(matches),
        )

    def rank(
        self,
        candidates: Sequence[RetrievedItem],
        context: QueryContext,
        now: Optional[datetime] = None,
    ) -> List[ScoredItem]:
        """
        Score, sort and truncate candidates.

        Args:
            candidates: Output of CandidateSelector.select
            context: Classified query
            now: Reference time (defaults to the current UTC time)

        Returns:
            At most 12 ScoredItems when the query has keywords, else 10,
            highest score first, newer first on equal score, then by id
        """
        if now is None:
            now = datetime.now(timezone.utc)

        scored = [self.score_item(item, context, now) for item in candidates]
        scored.sort(key=lambda s: (-s.score, -ensure_utc(s.item.timestamp).timestamp(), s.item.id))

        limit = KEYWORD_RESULT_LIMIT if context.keywords else DEFAULT_RESULT_LIMIT
        return scored[:limit]
