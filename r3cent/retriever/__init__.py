"""
Retriever - Ask About Recent Activity

Finds the items behind a question and answers from them with an LLM.

Key Components:
- QueryProcessor: Normalizes the query, extracts keywords and intent flags
- CandidateSelector: One bounded, type-filtered fetch from the item store
- RelevanceScorer: Keyword, channel and recency scoring; ranked order
- ContextAssembler: Bounded context block plus citations
- Synthesizer: LLM answer with deterministic fallback
- FollowupSuggester: Up to three next questions
- AskPipeline: The whole flow, with session transcripts

Pipeline:
1. Parse user query (keywords, intent flags)
2. Fetch candidate items by channel
3. Score and rank candidates
4. Assemble context and citations
5. Synthesize answer (or fall back to a listing)
6. Suggest followups
"""

from .query_processor import QueryProcessor, QueryContext
from .selector import CandidateSelector
from .scorer import RelevanceScorer, ScoredItem
from .context_builder import ContextAssembler, AssembledContext
from .followups import FollowupSuggester
from .synthesizer import (
    Synthesizer,
    SynthesizedAnswer,
    GenerationOutcome,
    GenerationStatus,
)
from .pipeline import AskPipeline, RetrievalResult

__all__ = [
    "QueryProcessor",
    "QueryContext",
    "CandidateSelector",
    "RelevanceScorer",
    "ScoredItem",
    "ContextAssembler",
    "AssembledContext",
    "FollowupSuggester",
    "Synthesizer",
    "SynthesizedAnswer",
    "GenerationOutcome",
    "GenerationStatus",
    "AskPipeline",
    "RetrievalResult",
]
