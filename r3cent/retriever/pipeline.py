"""
Ask Pipeline

One request-scoped pass per query:

    query -> QueryProcessor -> CandidateSelector (item store)
          -> RelevanceScorer -> ContextAssembler -> Synthesizer
          -> FollowupSuggester -> AskResponse

Every collaborator (item store, LLM client, session ledger, clock) is
passed in; nothing is shared between queries except those handles.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..common.config import R3centConfig
from ..common.item_store import ItemStore
from ..common.llm_client import LLMClient
from ..common.schemas import AskResponse, AskRole, AskSession, RetrievedItem
from ..common.session_ledger import SessionLedger
from .context_builder import ContextAssembler
from .followups import FollowupSuggester
from .query_processor import QueryContext, QueryProcessor
from .scorer import RelevanceScorer, ScoredItem
from .selector import CandidateSelector
from .synthesizer import GenerationStatus, Synthesizer

logger = logging.getLogger("r3cent.retriever.pipeline")

SESSION_TITLE_CHARS = 80


@dataclass
class RetrievalResult:
    """Deterministic part of one ask: classification, candidates, ranking"""
    context: QueryContext
    candidates: List[RetrievedItem] = field(default_factory=list)
    ranked: List[ScoredItem] = field(default_factory=list)


def resolve_timezone(tz: Union[str, tzinfo, None], default: str = "UTC") -> tzinfo:
    """Caller time zone by IANA name; unknown names fall back to `default`"""
    if isinstance(tz, tzinfo):
        return tz
    for name in (tz, default):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown time zone %r", name)
    return timezone.utc


class AskPipeline:
    """
    Answers questions about a user's recent activity.

    Item store failures propagate out of `ask`; generator failures never do.
    """

    def __init__(
        self,
        item_store: ItemStore,
        llm_client: Optional[LLMClient] = None,
        ledger: Optional[SessionLedger] = None,
        synthesizer: Optional[Synthesizer] = None,
        processor: Optional[QueryProcessor] = None,
        scorer: Optional[RelevanceScorer] = None,
        assembler: Optional[ContextAssembler] = None,
        default_timezone: str = "UTC",
        default_display_name: str = "there",
    ):
        self.item_store = item_store
        self.ledger = ledger if ledger is not None else SessionLedger()
        self.processor = processor or QueryProcessor()
        self.selector = CandidateSelector(item_store)
        self.scorer = scorer or RelevanceScorer()
        self.assembler = assembler or ContextAssembler()
        self.synthesizer = synthesizer or Synthesizer(
            llm_client=llm_client,
            followup_suggester=FollowupSuggester(),
        )
        self.default_timezone = default_timezone
        self.default_display_name = default_display_name

    @classmethod
    def from_config(
        cls,
        config: R3centConfig,
        item_store: ItemStore,
        ledger: Optional[SessionLedger] = None,
        llm_client: Optional[LLMClient] = None,
    ) -> "AskPipeline":
        if llm_client is None:
            llm_client = LLMClient.from_config(config.llm)

        synthesizer = Synthesizer(
            llm_client=llm_client,
            max_tokens=config.ask.max_tokens,
            temperature=config.ask.temperature,
            timeout=config.ask.generator_timeout,
        )
        return cls(
            item_store=item_store,
            ledger=ledger,
            synthesizer=synthesizer,
            default_timezone=config.ask.timezone,
            default_display_name=config.ask.default_display_name,
        )

    def retrieve(
        self,
        user_id: str,
        query: str,
        now: Optional[datetime] = None,
    ) -> RetrievalResult:
        """
        Classify, select and rank. Pure given the store contents and `now`.

        Raises:
            StoreError: the item store could not be queried
        """
        context = self.processor.parse(query)
        candidates = self.selector.select(context, user_id)
        ranked = self.scorer.rank(candidates, context, now=now)

        logger.debug(
            "Query %r: keywords=%s, %d candidates, %d ranked",
            query, list(context.keywords), len(candidates), len(ranked),
        )
        for scored in ranked[:3]:
            logger.debug("  %s score=%.3f %s", scored.item.id, scored.score, scored.breakdown)
        return RetrievalResult(context=context, candidates=candidates, ranked=ranked)

    def _open_session(self, user_id: str, session_id: Optional[str], query: str) -> AskSession:
        if session_id:
            return self.ledger.get_session(session_id, user_id)
        return self.ledger.create_session(user_id, title=query[:SESSION_TITLE_CHARS])

    async def ask(
        self,
        user_id: str,
        query: str,
        session_id: Optional[str] = None,
        display_name: Optional[str] = None,
        tz: Union[str, tzinfo, None] = None,
        now: Optional[datetime] = None,
    ) -> AskResponse:
        """
        Answer one query and record the turn.

        Args:
            user_id: Owner of the items and the session
            query: Validated query text (1-2000 chars)
            session_id: Existing session to continue; a new one is created if None
            display_name: How the answer addresses the user
            tz: Time zone for rendered dates (IANA name or tzinfo)
            now: Reference time for recency scoring

        Returns:
            AskResponse (sessionId, answer, sources, followups)

        Raises:
            SessionNotFoundError: session_id is unknown or not this user's
            StoreError: the item store could not be queried
        """
        # Store and ledger calls block; keep them off the event loop
        loop = asyncio.get_running_loop()

        session = await loop.run_in_executor(
            None, self._open_session, user_id, session_id, query
        )

        # The user turn is recorded before anything can fail downstream
        await loop.run_in_executor(
            None, self.ledger.append_message, session.id, AskRole.USER, query
        )

        retrieval = await loop.run_in_executor(
            None, functools.partial(self.retrieve, user_id, query, now=now)
        )
        assembled = self.assembler.assemble(
            retrieval.ranked,
            retrieval.context,
            tz=resolve_timezone(tz, self.default_timezone),
        )

        answer = await self.synthesizer.synthesize(
            retrieval.context,
            retrieval.ranked,
            assembled,
            display_name=display_name or self.default_display_name,
        )
        if answer.status == GenerationStatus.FALLBACK:
            logger.info("Served fallback answer for session %s", session.id)
        for warning in answer.warnings:
            logger.info("Session %s: %s", session.id, warning)

        await loop.run_in_executor(
            None, self.ledger.append_message,
            session.id, AskRole.ASSISTANT, answer.answer, answer.sources,
        )

        return AskResponse(
            session_id=session.id,
            answer=answer.answer,
            sources=answer.sources,
            followups=answer.followups,
        )

    async def chat(self, message: str) -> str:
        """Free chat with the generator; nothing is retrieved or recorded"""
        return await self.synthesizer.chat(message)
