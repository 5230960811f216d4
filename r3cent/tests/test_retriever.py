"""
Tests for the Retriever

Tests query processing, candidate selection, scoring, context assembly
and followups.
"""

import pytest
from unittest.mock import Mock


class TestQueryProcessor:
    """Tests for QueryProcessor"""

    @pytest.fixture
    def processor(self):
        from r3cent.retriever.query_processor import QueryProcessor
        return QueryProcessor()

    def test_normalize_strips_punctuation_and_case(self, processor):
        result = processor.parse("What's on my   CALENDAR?!")

        assert result.normalized == "what s on my calendar"
        assert result.original == "What's on my   CALENDAR?!"

    def test_keywords_drop_short_and_stop_words(self, processor):
        result = processor.parse("what emails do I have")

        assert result.keywords == ("emails",)

    def test_keywords_domain_terms_are_stop_words(self, processor):
        result = processor.parse("summarize the latest invoice")

        assert result.keywords == ("invoice",)

    def test_keywords_capped_at_six_in_order(self, processor):
        result = processor.parse("alpha bravo charlie delta echoes foxtrot golfer hotel")

        assert result.keywords == ("alpha", "bravo", "charlie", "delta", "echoes", "foxtrot")

    def test_duplicate_keywords_are_kept(self, processor):
        result = processor.parse("invoice invoice")

        assert result.keywords == ("invoice", "invoice")

    def test_email_intent(self, processor):
        result = processor.parse("what emails do I have")

        assert result.wants_email
        assert not result.wants_calendar
        assert not result.wants_tunes
        assert not result.wants_all
        assert not result.wants_recent

    def test_intents_are_not_exclusive(self, processor):
        result = processor.parse("emails about the meeting")

        assert result.wants_email
        assert result.wants_calendar

    def test_broad_and_recent_intent(self, processor):
        result = processor.parse("summarize everything")

        assert result.wants_all
        assert result.wants_recent

    def test_what_been_is_broad(self, processor):
        result = processor.parse("What have I been up to?")

        assert result.wants_all

    def test_spotify_is_music_intent(self, processor):
        result = processor.parse("play something on Spotify")

        assert result.wants_tunes
        assert not result.wants_email

    def test_intent_is_case_insensitive(self, processor):
        result = processor.parse("VOICE memos from monday")

        assert result.wants_thoughts

    def test_vocabulary_matches_inside_words(self, processor):
        from r3cent.common.schemas import Channel

        # "invoice" contains "voice"
        result = processor.parse("invoice")

        assert result.wants_thoughts
        assert result.wanted_channels == (Channel.THOUGHTS,)
        assert result.keywords == ("invoice",)

    def test_no_intent_and_no_keywords(self, processor):
        result = processor.parse("is it")

        assert result.keywords == ()
        assert result.wanted_channels == ()
        assert not result.wants_all


class TestCandidateSelector:
    """Tests for CandidateSelector"""

    @pytest.fixture
    def processor(self):
        from r3cent.retriever.query_processor import QueryProcessor
        return QueryProcessor()

    def test_email_query_fetches_email_types(self, processor):
        from r3cent.common.schemas import ItemType
        from r3cent.retriever.selector import CandidateSelector

        context = processor.parse("what emails do I have")

        assert CandidateSelector.allowed_types(context) == (
            ItemType.EMAIL_RECEIVED,
            ItemType.EMAIL_SENT,
        )
        assert CandidateSelector.fetch_limit(context) == 40

    def test_broad_query_fetches_everything(self, processor):
        from r3cent.common.schemas import ALL_ITEM_TYPES
        from r3cent.retriever.selector import CandidateSelector

        context = processor.parse("summarize everything")

        assert CandidateSelector.allowed_types(context) == ALL_ITEM_TYPES
        assert len(ALL_ITEM_TYPES) == 8
        assert CandidateSelector.fetch_limit(context) == 60

    def test_broad_overrides_channel_intent(self, processor):
        from r3cent.common.schemas import ALL_ITEM_TYPES
        from r3cent.retriever.selector import CandidateSelector

        context = processor.parse("overview of my email")

        assert context.wants_email
        assert CandidateSelector.allowed_types(context) == ALL_ITEM_TYPES

    def test_no_intent_searches_everything_with_narrow_limit(self, processor):
        from r3cent.common.schemas import ALL_ITEM_TYPES
        from r3cent.retriever.selector import CandidateSelector

        context = processor.parse("zebra")

        assert CandidateSelector.allowed_types(context) == ALL_ITEM_TYPES
        assert CandidateSelector.fetch_limit(context) == 40

    def test_substring_intent_narrows_fetch(self, processor):
        from r3cent.common.schemas import ItemType
        from r3cent.retriever.selector import CandidateSelector

        context = processor.parse("invoice")

        assert CandidateSelector.allowed_types(context) == (ItemType.THOUGHT_VOICE,)

    def test_recent_query_uses_broad_limit(self, processor):
        from r3cent.retriever.selector import CandidateSelector

        context = processor.parse("latest songs")

        assert CandidateSelector.fetch_limit(context) == 60

    def test_select_issues_single_fetch_and_drops_deleted(self, processor, make_item):
        from r3cent.common.item_store import ItemStore
        from r3cent.retriever.selector import CandidateSelector

        kept = make_item("email.received", title="Invoice due")
        gone = make_item("email.sent", title="Old reply", deleted=True)

        store = Mock(spec=ItemStore)
        store.fetch.return_value = [kept, gone]

        context = processor.parse("check my inbox")
        candidates = CandidateSelector(store).select(context, "user-1")

        store.fetch.assert_called_once()
        args, kwargs = store.fetch.call_args
        assert args == ("user-1",)
        assert kwargs["limit"] == 40
        assert [c.id for c in candidates] == [kept.id]


class TestRelevanceScorer:
    """Tests for RelevanceScorer"""

    @pytest.fixture
    def processor(self):
        from r3cent.retriever.query_processor import QueryProcessor
        return QueryProcessor()

    @pytest.fixture
    def scorer(self):
        from r3cent.retriever.scorer import RelevanceScorer
        return RelevanceScorer()

    @staticmethod
    def _retrieved(item):
        from r3cent.common.schemas import RetrievedItem
        return RetrievedItem.from_item(item)

    def test_recency_decay(self, now):
        from datetime import timedelta
        from r3cent.retriever.scorer import calculate_recency_score

        assert calculate_recency_score(now, now) == 1.0
        assert calculate_recency_score(now - timedelta(days=15), now) == pytest.approx(0.5)
        assert calculate_recency_score(now - timedelta(days=40), now) == 0.0
        # Upcoming events count as brand new
        assert calculate_recency_score(now + timedelta(days=3), now) == 1.0

    def test_keyword_hit_dominates(self, processor, scorer, make_item, now):
        match = self._retrieved(make_item("scrawl.text", content="pay the invoice"))
        other = self._retrieved(make_item("scrawl.text", content="pay the rent"))

        context = processor.parse("invoice")
        ranked = scorer.rank([other, match], context, now=now)

        assert ranked[0].item.id == match.id
        assert ranked[0].score > ranked[1].score
        assert ranked[0].score - ranked[1].score == pytest.approx(2.0)
        assert ranked[0].matched_keywords == ("invoice",)

    def test_substring_match_without_stemming(self, processor, scorer, make_item, now):
        item = self._retrieved(make_item("scrawl.text", content="I emailed the landlord"))

        # "email" is a substring of "emailed"; "emailing" is not
        assert scorer.score_item(item, processor.parse("email landlord"), now).keyword_hits == 2
        assert scorer.score_item(item, processor.parse("emailing"), now).keyword_hits == 0

    def test_younger_item_wins_and_old_item_has_no_recency(self, processor, scorer, make_item, now):
        young = self._retrieved(make_item("thought.voice", content="garden ideas", days_ago=5))
        old = self._retrieved(make_item("thought.voice", content="garden ideas", days_ago=40))

        ranked = scorer.rank([old, young], processor.parse("garden"), now=now)

        assert [r.item.id for r in ranked] == [young.id, old.id]
        assert ranked[1].recency_score == 0.0
        assert ranked[0].score > ranked[1].score

    def test_type_bonus_only_for_asked_channel(self, processor, scorer, make_item, now):
        track = self._retrieved(make_item("tunes.track", title="Blue in Green"))
        email = self._retrieved(make_item("email.received", title="Newsletter"))

        context = processor.parse("play something on spotify")

        assert scorer.score_item(track, context, now).type_bonus == 1.2
        assert scorer.score_item(email, context, now).type_bonus == 0.0

    def test_recent_bonus_applies_to_every_item(self, processor, scorer, make_item, now):
        item = self._retrieved(make_item("scrawl.text", content="groceries", days_ago=45))

        scored = scorer.score_item(item, processor.parse("latest stuff"), now)

        assert scored.recent_bonus == 0.4
        assert scored.score == pytest.approx(0.4)

    def test_ties_go_to_newer_item(self, processor, scorer, make_item, now):
        older = self._retrieved(make_item("scrawl.text", content="x", days_ago=50))
        newer = self._retrieved(make_item("scrawl.text", content="x", days_ago=40))

        ranked = scorer.rank([older, newer], processor.parse("zebra"), now=now)

        assert ranked[0].score == ranked[1].score == 0.0
        assert ranked[0].item.id == newer.id

    def test_result_size_depends_on_keywords(self, processor, scorer, make_item, now):
        items = [
            self._retrieved(make_item("scrawl.text", content=f"note {i}", days_ago=i))
            for i in range(20)
        ]

        assert len(scorer.rank(items, processor.parse("zebra"), now=now)) == 12
        assert len(scorer.rank(items, processor.parse("is it"), now=now)) == 10

    def test_scores_are_non_negative(self, processor, scorer, make_item, now):
        items = [
            self._retrieved(make_item("calendar.past", title="Standup", days_ago=d))
            for d in (0, 10, 100, 1000)
        ]

        ranked = scorer.rank(items, processor.parse("anything"), now=now)

        assert all(r.score >= 0 for r in ranked)

    def test_ranking_is_deterministic(self, processor, scorer, make_item, now):
        items = [
            self._retrieved(make_item(t, content="weekly report", days_ago=d))
            for t, d in [
                ("email.received", 1), ("scrawl.text", 1), ("thought.voice", 3),
                ("calendar.upcoming", 0), ("email.sent", 2), ("tunes.track", 1),
            ]
        ]
        context = processor.parse("weekly report email")

        first = [r.item.id for r in scorer.rank(items, context, now=now)]
        second = [r.item.id for r in scorer.rank(list(reversed(items)), context, now=now)]

        assert first == second


class TestContextAssembler:
    """Tests for ContextAssembler"""

    @pytest.fixture
    def processor(self):
        from r3cent.retriever.query_processor import QueryProcessor
        return QueryProcessor()

    @pytest.fixture
    def assembler(self):
        from r3cent.retriever.context_builder import ContextAssembler
        return ContextAssembler()

    @staticmethod
    def _retrieved(item):
        from r3cent.common.schemas import RetrievedItem
        return RetrievedItem.from_item(item)

    def test_format_timestamp(self, now):
        from zoneinfo import ZoneInfo
        from r3cent.retriever.context_builder import format_timestamp

        assert format_timestamp(now) == "Thu, Jan 15, 3:04 PM"
        assert format_timestamp(now, ZoneInfo("America/New_York")) == "Thu, Jan 15, 10:04 AM"

    def test_render_email_item(self, make_item, now):
        from r3cent.retriever.context_builder import render_item

        item = self._retrieved(make_item(
            "email.received",
            title="Invoice due",
            content="Please pay by Friday",
            metadata={"from": "billing@example.com", "to": ["me@example.com"]},
        ))

        assert render_item(1, item) == (
            "[1] email received (Thu, Jan 15, 3:04 PM) - From: billing@example.com\n"
            "Please pay by Friday"
        )

    def test_detail_first_present_key_wins(self, make_item):
        from r3cent.retriever.context_builder import extract_detail

        meeting = self._retrieved(make_item("calendar.upcoming", title="Sync", metadata={"attendeesCount": 4}))
        playlist = self._retrieved(make_item("tunes.context", metadata={"name": "Focus"}))
        track = self._retrieved(make_item("tunes.track", metadata={"artist": "Miles Davis", "name": "Kind of Blue"}))
        thought = self._retrieved(make_item("thought.voice", content="hmm", metadata={"from": "x"}))

        assert extract_detail(meeting) == "Attendees: 4"
        assert extract_detail(playlist) == "Playlist: Focus"
        assert extract_detail(track) == "Artist: Miles Davis"
        assert extract_detail(thought) is None

    def test_content_truncated_and_title_fallback(self, make_item):
        from r3cent.retriever.context_builder import render_item

        long_item = self._retrieved(make_item("scrawl.text", content="x" * 800))
        titled = self._retrieved(make_item("calendar.past", title="Team sync"))
        bare = self._retrieved(make_item("scrawl.text"))

        assert render_item(1, long_item).split("\n")[1] == "x" * 500
        assert render_item(2, titled).endswith("\nTeam sync")
        assert render_item(3, bare).endswith("\nNo content")

    def test_bounds_and_citation_prefix(self, processor, assembler, make_item):
        items = [
            self._retrieved(make_item("scrawl.text", content=f"note {i}", days_ago=i))
            for i in range(10)
        ]

        assembled = assembler.assemble(items, processor.parse("notes"))

        assert len(assembled.items) == 6
        assert len(assembled.citations) == 5
        assert [c.item_id for c in assembled.citations] == [i.id for i in assembled.items[:5]]
        assert assembled.context_block.count("\n\n") == 5
        assert assembled.context_block.startswith("[1] scrawl text")

    def test_citation_reasons(self, processor, make_item):
        from r3cent.retriever.context_builder import build_source_reason

        invoice = self._retrieved(make_item("email.received", title="Invoice due"))
        newsletter = self._retrieved(make_item("email.received", title="Weekly digest"))
        song = self._retrieved(make_item("tunes.track", title="So What"))

        context = processor.parse("invoice in my inbox")

        assert build_source_reason(invoice, context) == 'Matches keyword "invoice"'
        assert build_source_reason(newsletter, context) == "Matches email intent"
        assert build_source_reason(song, context) == "Recent activity"

    def test_scrawl_intent_reason(self, processor, make_item):
        from r3cent.retriever.context_builder import build_source_reason

        scrawl = self._retrieved(make_item("scrawl.text", content="buy milk"))

        assert build_source_reason(scrawl, processor.parse("my notes")) == "Matches notes intent"

    def test_empty_ranking(self, processor, assembler):
        assembled = assembler.assemble([], processor.parse("anything"))

        assert assembled.is_empty
        assert assembled.context_block == ""
        assert assembled.citations == []

    def test_accepts_scored_items(self, processor, assembler, make_item, now):
        from r3cent.retriever.scorer import RelevanceScorer

        items = [self._retrieved(make_item("scrawl.text", content="hello"))]
        context = processor.parse("hello")
        ranked = RelevanceScorer().rank(items, context, now=now)

        assembled = assembler.assemble(ranked, context)

        assert assembled.items[0].id == items[0].id


class TestFollowupSuggester:
    """Tests for FollowupSuggester"""

    @pytest.fixture
    def suggester(self):
        from r3cent.retriever.followups import FollowupSuggester
        return FollowupSuggester()

    @staticmethod
    def _retrieved(item):
        from r3cent.common.schemas import RetrievedItem
        return RetrievedItem.from_item(item)

    def test_one_question_per_channel(self, suggester, make_item):
        ranked = [
            self._retrieved(make_item("calendar.upcoming", title="Dentist")),
            self._retrieved(make_item("email.received", title="Invoice")),
        ]

        assert suggester.suggest("anything", ranked) == [
            "Which emails need a response?",
            "What's my schedule for tomorrow?",
        ]

    def test_thoughts_and_scrawls_share_a_question(self, suggester, make_item):
        ranked = [
            self._retrieved(make_item("thought.voice", content="a")),
            self._retrieved(make_item("scrawl.text", content="b")),
        ]

        assert suggester.suggest("anything", ranked) == ["Summarize my recent thoughts"]

    def test_capped_at_three_in_channel_order(self, suggester, make_item):
        ranked = [
            self._retrieved(make_item(t, content="x"))
            for t in ("tunes.track", "thought.voice", "calendar.past", "email.sent")
        ]

        assert suggester.suggest("anything", ranked) == [
            "Which emails need a response?",
            "What's my schedule for tomorrow?",
            "Summarize my recent thoughts",
        ]

    def test_generic_when_nothing_ranked(self, suggester):
        from r3cent.retriever.followups import GENERIC_FOLLOWUPS

        assert suggester.suggest("anything", []) == GENERIC_FOLLOWUPS


class TestResolveTimezone:
    """Tests for caller time zone resolution"""

    def test_known_name(self):
        from zoneinfo import ZoneInfo
        from r3cent.retriever.pipeline import resolve_timezone

        assert resolve_timezone("America/New_York") == ZoneInfo("America/New_York")

    def test_missing_name_uses_default(self):
        from zoneinfo import ZoneInfo
        from r3cent.retriever.pipeline import resolve_timezone

        assert resolve_timezone(None, default="Europe/Berlin") == ZoneInfo("Europe/Berlin")

    def test_unknown_name_falls_back_to_default(self, caplog):
        from zoneinfo import ZoneInfo
        from r3cent.retriever.pipeline import resolve_timezone

        assert resolve_timezone("Mars/Base", default="Europe/Berlin") == ZoneInfo("Europe/Berlin")
        assert "Mars/Base" in caplog.text

    def test_unknown_default_falls_back_to_utc(self, caplog, now):
        from datetime import timezone
        from r3cent.retriever.context_builder import format_timestamp
        from r3cent.retriever.pipeline import resolve_timezone

        tz = resolve_timezone("Mars/Base", default="Nowhere/Land")

        assert tz is timezone.utc
        assert format_timestamp(now, tz) == "Thu, Jan 15, 3:04 PM"
        assert "Mars/Base" in caplog.text
        assert "Nowhere/Land" in caplog.text
