"""
Followup Suggester

Suggests up to three next questions from the channels present in the
ranked results.
"""

from typing import List, Sequence, Union

from ..common.schemas import Channel, RetrievedItem, channel_for
from .scorer import ScoredItem

MAX_FOLLOWUPS = 3

# Iteration order is the output order. Thoughts and scrawls share a prompt.
CHANNEL_FOLLOWUPS = [
    ((Channel.EMAIL,), "Which emails need a response?"),
    ((Channel.CALENDAR,), "What's my schedule for tomorrow?"),
    ((Channel.THOUGHTS, Channel.SCRAWLS), "Summarize my recent thoughts"),
    ((Channel.TUNES,), "What music have I been listening to lately?"),
]

GENERIC_FOLLOWUPS = [
    "What should I focus on today?",
    "Any tasks I should follow up on?",
    "What happened this week?",
]

# Nothing retrieved at all
EMPTY_RESULT_FOLLOWUPS = [
    "What have I captured recently?",
    "Show me my latest emails",
    "What's on my calendar this week?",
]

# Generator failed; the answer is a plain listing of the top items
FALLBACK_FOLLOWUPS = [
    "Tell me more about the first one",
    "Summarize all of these",
    "What should I follow up on?",
]


class FollowupSuggester:
    """Canned next questions, one per channel family in the results"""

    def suggest(
        self,
        query: str,
        ranked: Sequence[Union[ScoredItem, RetrievedItem]],
    ) -> List[str]:
        """
        Args:
            query: Raw user query
            ranked: Ranked result list

        Returns:
            1-3 questions, channel order preserved, generic prompts if no
            channel produced one
        """
        present = {
            channel_for((r.item if isinstance(r, ScoredItem) else r).type)
            for r in ranked
        }

        followups = [
            question
            for channels, question in CHANNEL_FOLLOWUPS
            if any(channel in present for channel in channels)
        ]

        if not followups:
            followups = list(GENERIC_FOLLOWUPS)

        return followups[:MAX_FOLLOWUPS]
