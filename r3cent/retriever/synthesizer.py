"""
Synthesizer

Turns the assembled context into an answer.

Every call ends in exactly one of three outcomes:
- ANSWER: the model answered before the timeout
- FALLBACK: the model was unconfigured, timed out, errored, or returned
  nothing usable; the answer is a templated listing of the top items
- UNAVAILABLE: there was nothing to answer from; the model is never called
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..common.llm_client import LLMClient
from ..common.schemas import AskSource, RetrievedItem
from .context_builder import AssembledContext
from .followups import (
    EMPTY_RESULT_FOLLOWUPS,
    FALLBACK_FOLLOWUPS,
    FollowupSuggester,
)
from .query_processor import QueryContext

logger = logging.getLogger("r3cent.retriever.synthesizer")


class GenerationStatus(str, Enum):
    ANSWER = "answer"
    FALLBACK = "fallback"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of one answer-generator call"""
    status: GenerationStatus
    text: str
    error: Optional[str] = None


@dataclass
class SynthesizedAnswer:
    """Answer plus the sources and followups shown with it"""
    answer: str
    status: GenerationStatus
    sources: List[AskSource] = field(default_factory=list)
    followups: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


SYSTEM_PROMPT = """You are r3cent, a proactive personal assistant for a user's recent digital activity (thoughts, notes, emails, calendar events, and music).

Guidelines:
- Be crisp and helpful. Prioritize clarity over verbosity.
- Only use information present in the context. Never invent details.
- Cite sources using [1], [2], etc. for any specific claims.
- If the question implies a task or follow-up, surface action items.
- If key info is missing, say what's missing and ask a brief clarifying question.
- Output format:
  Answer: 2-5 sentences.
  Key items: 2-4 bullets with citations.
  Action items: bullets or "None."
  Open questions: 1-2 bullets if needed."""

USER_PROMPT = """User: {display_name}
Query: {query}

Recent Activity Context:
{context}

Please answer the user's question based on the above context."""

EMPTY_ANSWER = (
    "I couldn't find relevant items yet. Try being more specific, or connect "
    "email, calendar, or Spotify to give me more context."
)

FALLBACK_TEMPLATE = """Here's what I found related to your query:

{listing}

Would you like more details about any of these?"""

FALLBACK_ITEMS = 5
FALLBACK_PREVIEW_CHARS = 100

# Free chat, no retrieval
CHAT_SYSTEM_PROMPT = (
    "You are r3cent, a helpful assistant. Keep responses concise and "
    "actionable. Ask a clarifying question if needed."
)
CHAT_MAX_TOKENS = 1024
CHAT_TEMPERATURE = 0.5
CHAT_EMPTY_ANSWER = "I'm having trouble generating a response right now."


def render_fallback_answer(items: Sequence[RetrievedItem]) -> str:
    """Deterministic answer built straight from the top items"""
    lines = []
    for i, item in enumerate(items[:FALLBACK_ITEMS], 1):
        preview = (item.content or "")[:FALLBACK_PREVIEW_CHARS] or item.title or "No content"
        lines.append(f"[{i}] {item.family}: {preview}")
    return FALLBACK_TEMPLATE.format(listing="\n".join(lines))


class Synthesizer:
    """
    Synthesizes answers from assembled context using an LLM.

    Falls back to a templated listing whenever the model cannot deliver.
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        followup_suggester: Optional[FollowupSuggester] = None,
        max_tokens: int = 360,
        temperature: float = 0.4,
        timeout: float = 12.0,
    ):
        """
        Args:
            llm_client: Answer generator; None behaves like an unconfigured client
            followup_suggester: Source of followups for model answers
            max_tokens: Completion token limit
            temperature: Sampling temperature
            timeout: Hard limit in seconds for one completion
        """
        self._llm = llm_client
        self._followups = followup_suggester or FollowupSuggester()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def build_user_prompt(self, query: str, assembled: AssembledContext, display_name: str) -> str:
        return USER_PROMPT.format(
            display_name=display_name,
            query=query,
            context=assembled.context_block,
        )

    async def generate(
        self,
        query: str,
        assembled: AssembledContext,
        display_name: str,
    ) -> GenerationOutcome:
        """
        Run the answer generator once.

        Never raises for generator problems; cancellation of the caller
        still propagates into the in-flight request.
        """
        if assembled.is_empty:
            return GenerationOutcome(status=GenerationStatus.UNAVAILABLE, text=EMPTY_ANSWER)

        fallback_text = render_fallback_answer(assembled.items)

        if not self.has_llm:
            logger.info("LLM not configured, answering with item listing")
            return GenerationOutcome(
                status=GenerationStatus.FALLBACK,
                text=fallback_text,
                error="LLM client is not available",
            )

        try:
            text = await self._llm.complete(
                self.build_user_prompt(query, assembled, display_name),
                system=SYSTEM_PROMPT,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout=self.timeout,
            )
            if not text or not text.strip():
                raise ValueError("empty completion")
        except asyncio.TimeoutError:
            logger.warning("Answer generation timed out after %.1fs", self.timeout)
            return GenerationOutcome(
                status=GenerationStatus.FALLBACK,
                text=fallback_text,
                error=f"timed out after {self.timeout:g}s",
            )
        except Exception as e:
            logger.warning("Answer generation failed: %s", e)
            return GenerationOutcome(
                status=GenerationStatus.FALLBACK,
                text=fallback_text,
                error=str(e) or type(e).__name__,
            )

        return GenerationOutcome(status=GenerationStatus.ANSWER, text=text.strip())

    async def synthesize(
        self,
        context: QueryContext,
        ranked: Sequence,
        assembled: AssembledContext,
        display_name: str = "there",
    ) -> SynthesizedAnswer:
        """
        Answer a classified query.

        Args:
            context: Classified query
            ranked: Full ranked list (drives followups)
            assembled: Context block and citations from ContextAssembler
            display_name: How to address the user in the prompt

        Returns:
            SynthesizedAnswer; sources are empty only when nothing was found
        """
        outcome = await self.generate(context.original, assembled, display_name)

        if outcome.status == GenerationStatus.UNAVAILABLE:
            return SynthesizedAnswer(
                answer=outcome.text,
                status=outcome.status,
                sources=[],
                followups=list(EMPTY_RESULT_FOLLOWUPS),
                warnings=["No matching items found"],
            )

        if outcome.status == GenerationStatus.FALLBACK:
            return SynthesizedAnswer(
                answer=outcome.text,
                status=outcome.status,
                sources=list(assembled.citations),
                followups=list(FALLBACK_FOLLOWUPS),
                warnings=[f"LLM answer unavailable ({outcome.error}) - showing top items"],
            )

        return SynthesizedAnswer(
            answer=outcome.text,
            status=outcome.status,
            sources=list(assembled.citations),
            followups=self._followups.suggest(context.original, ranked),
        )

    async def chat(self, message: str) -> str:
        """
        Free-form chat with the generator, no retrieval and no fallback.

        Raises:
            RuntimeError: no LLM configured
            asyncio.TimeoutError: the call exceeded the timeout
        """
        if not self.has_llm:
            raise RuntimeError("LLM client is not available")

        text = await self._llm.complete(
            f"User: {message}",
            system=CHAT_SYSTEM_PROMPT,
            max_tokens=CHAT_MAX_TOKENS,
            temperature=CHAT_TEMPERATURE,
            timeout=self.timeout,
        )
        return (text or "").strip() or CHAT_EMPTY_ANSWER
