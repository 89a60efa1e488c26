"""Tests for budgeted context assembly, history summarization and element builders."""

import pytest

from storyloom.context.assembler import HISTORY_ELEMENT_ID, ContextAssembler, format_context
from storyloom.context.builder import build_candidates, element_from_fact, element_from_record, elements_from_variables
from storyloom.context.models import ContextElement, Situation
from storyloom.decisions.models import DecisionRecord
from storyloom.enums import CompressionLevel, ContextElementType, ExternalErrorKind
from storyloom.errors import ExternalServiceError, ValidationError

from conftest import FakeSummarizer


def words(text: str) -> int:
    return len(text.split())


def element(element_id, importance=5, content="filler", element_type=ContextElementType.STORY_POINT, **kwargs):
    return ContextElement(id=element_id, type=element_type, content=content, importance=importance, **kwargs)


SITUATION = Situation(now_ms=0)

HISTORY = [
    "one two three four five six",
    "seven eight nine ten eleven twelve",
    "thirteen fourteen fifteen sixteen",
]


# ---------------------------------------------------------------------------
# Tests: selection under budget
# ---------------------------------------------------------------------------

class TestSelection:
    async def test_higher_importance_wins_the_budget(self):
        assembler = ContextAssembler(token_estimator=lambda text: 50)
        result = await assembler.assemble([element("minor", 1), element("major", 10)], SITUATION, 50)
        assert result.included_ids == ["major"]
        assert result.token_estimate == 50

    async def test_stops_at_first_rejection(self):
        assembler = ContextAssembler(token_estimator=words)
        candidates = [
            element("a", 9, "w " * 6),
            element("b", 8, "w " * 10),
            element("c", 7, "w w"),
        ]
        result = await assembler.assemble(candidates, SITUATION, 12)
        # "c" would fit but is never reached
        assert result.included_ids == ["a"]

    async def test_everything_fits(self):
        assembler = ContextAssembler(token_estimator=words)
        result = await assembler.assemble([element("a", 3), element("b", 4)], SITUATION, 100)
        assert result.included_ids == ["b", "a"]
        assert result.token_estimate == 2

    @pytest.mark.parametrize("budget", [0, -5])
    async def test_non_positive_budget(self, budget):
        with pytest.raises(ValidationError):
            await ContextAssembler().assemble([element("a")], SITUATION, budget)

    async def test_empty_pool(self):
        result = await ContextAssembler().assemble([], SITUATION, 100)
        assert result.text == ""
        assert result.included_ids == []


class TestFormatting:
    def test_sections_follow_fixed_order(self):
        text = format_context([
            element("v", content="gold: 12", element_type=ContextElementType.VARIABLE),
            element("l", content="Jed is a drifter (character)", element_type=ContextElementType.LORE),
            element("s", content="The stage arrived late."),
        ])
        assert text == (
            "## Story So Far\n- The stage arrived late.\n\n"
            "## Established World Facts\n- Jed is a drifter (character)\n\n"
            "## Current State\n- gold: 12"
        )

    def test_empty_sections_omitted(self):
        assert "## Past Decisions" not in format_context([element("s")])


# ---------------------------------------------------------------------------
# Tests: history handling
# ---------------------------------------------------------------------------

class TestHistory:
    async def test_history_within_budget(self):
        assembler = ContextAssembler(token_estimator=words)
        result = await assembler.assemble([], SITUATION, 100, history=HISTORY)
        assert result.included_ids == [HISTORY_ELEMENT_ID]
        assert not result.summarized
        assert not result.truncated
        assert "thirteen fourteen" in result.text

    async def test_oversize_history_is_summarized(self, summarizer):
        assembler = ContextAssembler(summarizer=summarizer, token_estimator=words)
        result = await assembler.assemble([], SITUATION, 10, history=HISTORY)
        assert result.summarized
        assert summarizer.summary in result.text
        assert summarizer.calls[0]["target_length"] == 20
        assert summarizer.calls[0]["long_text"] == "\n".join(HISTORY)

    async def test_summarizer_failure_truncates_oldest(self):
        failing = FakeSummarizer(error=ExternalServiceError(ExternalErrorKind.TRANSPORT_ERROR, "down", service="summarizer"))
        assembler = ContextAssembler(summarizer=failing, token_estimator=words)
        result = await assembler.assemble([], SITUATION, 10, history=HISTORY)
        assert result.truncated
        assert not result.summarized
        assert "one two" not in result.text
        assert "seven eight nine ten eleven twelve\n" in result.text
        assert result.text.endswith("thirteen fourteen fifteen sixteen")

    async def test_no_summarizer_truncates(self):
        result = await ContextAssembler(token_estimator=words).assemble([], SITUATION, 10, history=HISTORY)
        assert result.truncated

    async def test_summarizer_timeout_truncates(self):
        slow = FakeSummarizer(delay_s=1.0)
        assembler = ContextAssembler(summarizer=slow, token_estimator=words, summary_timeout_s=0.05)
        result = await assembler.assemble([], SITUATION, 10, history=HISTORY)
        assert result.truncated

    async def test_oversize_summary_rejected(self):
        verbose = FakeSummarizer(summary="word " * 30)
        assembler = ContextAssembler(summarizer=verbose, token_estimator=words)
        result = await assembler.assemble([], SITUATION, 10, history=HISTORY)
        assert result.truncated

    async def test_newest_entry_clipped_to_tail(self):
        entry = " ".join(f"w{i}" for i in range(20))
        result = await ContextAssembler(token_estimator=words).assemble([], SITUATION, 5, history=[entry])
        assert result.text.endswith("- w15 w16 w17 w18 w19")

    async def test_blank_history_ignored(self):
        result = await ContextAssembler().assemble([], SITUATION, 100, history=["", "   "])
        assert result.included_ids == []

    async def test_history_compression(self):
        assembler = ContextAssembler(history_compression=CompressionLevel.LOW)
        result = await assembler.assemble([], SITUATION, 100, history=["I think the horse is very tired"])
        assert "- the horse is tired" in result.text


# ---------------------------------------------------------------------------
# Tests: element builders
# ---------------------------------------------------------------------------

class TestBuilders:
    def test_fact_element(self, fact_store):
        e = element_from_fact(fact_store.get_fact("fact_1"))
        assert e.type == ContextElementType.LORE
        assert e.content == "Sheriff Cole is the lawman of Dry Gulch (character)"
        assert e.characters == frozenset({"sheriff cole", "dry gulch"})
        assert e.importance == 8

    def test_non_character_fact_has_no_characters(self, fact_store):
        assert element_from_fact(fact_store.get_fact("fact_2")).characters == frozenset()

    def test_record_element(self):
        record = DecisionRecord(
            decision_id="decision_1",
            selected_option_id="decision_1_opt0",
            narrative_outcome="The stranger bought the next round.",
            timestamp_ms=5,
            prompt="How do you greet the stranger?",
            option_text="Tip your hat",
            importance="significant",
            location="Silver Spur Saloon",
        )
        e = element_from_record(record)
        assert e.id == "decision:decision_1"
        assert e.content == (
            "Asked: How do you greet the stranger? | Chose: Tip your hat | "
            "Outcome: The stranger bought the next round."
        )
        assert e.importance == 8
        assert e.location == "Silver Spur Saloon"

    def test_variables_skip_empty(self):
        elements = elements_from_variables({"gold": 12, "horse": None, "wanted": ""}, now_ms=7)
        assert [e.content for e in elements] == ["gold: 12"]
        assert elements[0].timestamp_ms == 7

    def test_candidates_skip_invalid_facts(self, fact_store):
        fact_store.invalidate_fact("fact_3")
        candidates = build_candidates(
            facts=fact_store.all_facts(include_invalid=True),
            story_points=[{"id": "story_1", "content": "The stage arrived."}],
            variables={"gold": 3},
        )
        ids = [c.id for c in candidates]
        assert "fact_3" not in ids
        assert ids[0] == "story_1"
        assert ids[-1] == "var:gold"
        assert len(ids) == 6
