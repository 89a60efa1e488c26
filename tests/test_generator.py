"""Tests for decision prompts, response parsing and the three generation strategies."""

import pytest

from storyloom.decisions.generator import (
    HybridStrategy,
    ModelStrategy,
    TemplateStrategy,
    create_strategy,
)
from storyloom.decisions.models import DecisionRecord, GameStateSnapshot, GenerationRequest
from storyloom.decisions.prompts import build_decision_prompt, parse_decision_response
from storyloom.decisions.quality import QualityGate
from storyloom.enums import (
    DecisionImportance,
    DecisionSource,
    ExternalErrorKind,
    GenerationMode,
    PipelineState,
)
from storyloom.errors import ExternalServiceError
from storyloom.settings import EngineSettings

from conftest import MockLanguageModel, decision_json

NOW = 1_700_000_000_000


@pytest.fixture
def request_(saloon_state):
    return GenerationRequest(
        game_state=saloon_state,
        narrative_text='A stranger at the bar says, "You look like trouble."',
        now_ms=NOW,
    )


@pytest.fixture
def gate(settings):
    return QualityGate(settings)


class StateLog:
    """Collects notify() calls."""

    def __init__(self):
        self.states: list[PipelineState] = []

    def __call__(self, state: PipelineState) -> None:
        self.states.append(state)


# ---------------------------------------------------------------------------
# Tests: prompt building and parsing
# ---------------------------------------------------------------------------

class TestPrompt:
    def test_sections(self, settings):
        state = GameStateSnapshot(
            current_location="Dry Gulch",
            location_changed=True,
            active_characters=("Sheriff Cole", "Jed"),
            character_traits=("honest", "quick-tempered"),
        )
        request = GenerationRequest(
            game_state=state,
            narrative_text="You ride in at noon.",
            context_text="## Story So Far\n- The bank was robbed.",
            now_ms=NOW,
        )
        prompt = build_decision_prompt(request, settings)
        assert "Location: Dry Gulch (just arrived)" in prompt
        assert "Characters present: Sheriff Cole, Jed" in prompt
        assert "Player character traits: honest, quick-tempered" in prompt
        assert "## Recent Narrative\nYou ride in at noon." in prompt
        assert "## Context\n## Story So Far" in prompt
        assert "Give between 2 and 4 options." in prompt
        assert "## Previous Decisions" not in prompt

    def test_history_window(self, saloon_state):
        records = [
            DecisionRecord(
                decision_id=f"decision_{n}",
                selected_option_id=f"decision_{n}_opt0",
                timestamp_ms=n,
                prompt=f"Question {n}?",
                option_text=f"Answer {n}",
            )
            for n in range(1, 6)
        ]
        request = GenerationRequest(game_state=saloon_state, history=records, now_ms=NOW)
        prompt = build_decision_prompt(request, EngineSettings(history_window=2))
        assert "Question 3?" not in prompt
        assert "1. Prompt: Question 4?\n   Choice: Answer 4" in prompt
        assert "2. Prompt: Question 5?" in prompt


class TestParseResponse:
    def test_json_inside_prose(self, settings):
        raw = f"Here is the decision:\n```json\n{decision_json()}\n```"
        decision = parse_decision_response(raw, settings, NOW, location="Silver Spur Saloon", characters=["Jed"])
        assert decision.prompt == "How do you deal with the stranger at the bar?"
        assert [o.id for o in decision.options] == [f"{decision.id}_opt{i}" for i in range(3)]
        assert decision.source == DecisionSource.MODEL
        assert decision.ai_generated is True
        assert decision.location == "Silver Spur Saloon"
        assert decision.characters == ["Jed"]
        assert decision.timestamp_ms == NOW

    def test_options_capped(self, settings):
        raw = decision_json(options=[f"Option number {n}" for n in range(6)])
        assert len(parse_decision_response(raw, settings, NOW).options) == 4

    def test_lenient_fields(self, settings):
        raw = '{"prompt": "Which way now?", "options": ["Go north", "Go south"], "importance": "huge"}'
        decision = parse_decision_response(raw, settings, NOW)
        assert [o.text for o in decision.options] == ["Go north", "Go south"]
        assert decision.options[0].impact == "Impact unknown"
        assert decision.importance == DecisionImportance.MODERATE

    @pytest.mark.parametrize("raw", [
        "",
        "I cannot help with that.",
        "{broken json",
        '{"prompt": "Which way?", "options": []}',
        '{"options": ["Go north", "Go south"]}',
    ])
    def test_invalid_responses(self, settings, raw):
        with pytest.raises(ExternalServiceError) as exc_info:
            parse_decision_response(raw, settings, NOW)
        assert exc_info.value.kind == ExternalErrorKind.INVALID_RESPONSE


# ---------------------------------------------------------------------------
# Tests: template mode
# ---------------------------------------------------------------------------

class TestTemplateStrategy:
    async def test_never_calls_model(self, language_model, templates, gate, settings, request_):
        strategy = create_strategy(GenerationMode.TEMPLATE, language_model, templates, gate, settings)
        assert isinstance(strategy, TemplateStrategy)
        log = StateLog()
        outcome = await strategy.generate(request_, log)
        assert language_model.call_count == 0
        assert outcome.ok
        assert outcome.decision.source == DecisionSource.TEMPLATE
        assert outcome.used_fallback is False
        assert outcome.quality.passed
        assert log.states == [PipelineState.TEMPLATE_FALLBACK]

    async def test_avoids_recent_prompts(self, templates, gate, settings):
        brawl = GameStateSnapshot(current_location="Silver Spur Saloon", combat_active=True)
        first = templates.fallback_decision(brawl, NOW)
        request = GenerationRequest(
            game_state=brawl,
            history=[DecisionRecord(
                decision_id=first.id,
                selected_option_id=first.options[0].id,
                timestamp_ms=NOW,
                prompt=first.prompt,
            )],
            now_ms=NOW,
        )
        outcome = await TemplateStrategy(templates, gate, settings).generate(request)
        assert outcome.decision.prompt != first.prompt


# ---------------------------------------------------------------------------
# Tests: model mode
# ---------------------------------------------------------------------------

class TestModelStrategy:
    async def test_success(self, language_model, templates, gate, settings, request_):
        log = StateLog()
        outcome = await ModelStrategy(language_model, templates, gate, settings).generate(request_, log)
        assert outcome.ok
        assert outcome.decision.source == DecisionSource.MODEL
        assert outcome.model_attempts == 1
        assert log.states == [PipelineState.GENERATING, PipelineState.VALIDATING]
        assert language_model.calls[0]["timeout_s"] == settings.generation_timeout_s

    async def test_retries_once_after_timeout(self, language_model, templates, gate, settings, request_):
        language_model.queue_error(ExternalErrorKind.TIMEOUT)
        log = StateLog()
        outcome = await ModelStrategy(language_model, templates, gate, settings).generate(request_, log)
        assert outcome.ok
        assert language_model.call_count == 2
        assert outcome.model_attempts == 2
        assert log.states == [PipelineState.GENERATING, PipelineState.GENERATING, PipelineState.VALIDATING]

    async def test_gives_up_after_one_retry(self, language_model, templates, gate, settings, request_):
        language_model.queue_error(ExternalErrorKind.TRANSPORT_ERROR)
        language_model.queue_error(ExternalErrorKind.TRANSPORT_ERROR)
        outcome = await ModelStrategy(language_model, templates, gate, settings).generate(request_)
        assert not outcome.ok
        assert outcome.error_kind == ExternalErrorKind.TRANSPORT_ERROR
        assert language_model.call_count == 2

    async def test_invalid_response_not_retried(self, language_model, templates, gate, settings, request_):
        language_model.queue_response("Sorry, no decision today.")
        outcome = await ModelStrategy(language_model, templates, gate, settings).generate(request_)
        assert not outcome.ok
        assert outcome.error_kind == ExternalErrorKind.INVALID_RESPONSE
        assert language_model.call_count == 1

    async def test_slow_model_times_out(self, templates, gate, request_):
        settings = EngineSettings(generation_timeout_s=0.05, retry_backoff_s=0.0)
        slow = MockLanguageModel(delay_s=1.0)
        outcome = await ModelStrategy(slow, templates, gate, settings).generate(request_)
        assert outcome.error_kind == ExternalErrorKind.TIMEOUT
        assert outcome.model_attempts == 2

    async def test_no_retries_configured(self, language_model, templates, gate, request_):
        settings = EngineSettings(generation_retries=0, retry_backoff_s=0.0)
        language_model.queue_error(ExternalErrorKind.TIMEOUT)
        outcome = await ModelStrategy(language_model, templates, gate, settings).generate(request_)
        assert not outcome.ok
        assert language_model.call_count == 1

    async def test_quality_rejection_is_an_error(self, language_model, templates, gate, settings, request_):
        language_model.queue_decision(options=["Buy the stranger a drink"])
        outcome = await ModelStrategy(language_model, templates, gate, settings).generate(request_)
        assert not outcome.ok
        assert not outcome.quality.passed
        assert outcome.error.startswith("Quality gate rejected decision: Too few options")
        assert outcome.error_kind is None


# ---------------------------------------------------------------------------
# Tests: hybrid mode
# ---------------------------------------------------------------------------

class TestHybridStrategy:
    async def test_model_decision_preferred(self, language_model, templates, gate, settings, request_):
        outcome = await HybridStrategy(language_model, templates, gate, settings).generate(request_)
        assert outcome.decision.source == DecisionSource.MODEL
        assert outcome.used_fallback is False

    async def test_falls_back_on_model_failure(self, language_model, templates, gate, settings, request_):
        language_model.queue_error(ExternalErrorKind.TRANSPORT_ERROR)
        language_model.queue_error(ExternalErrorKind.TRANSPORT_ERROR)
        log = StateLog()
        outcome = await HybridStrategy(language_model, templates, gate, settings).generate(request_, log)
        assert outcome.ok
        assert outcome.used_fallback is True
        assert outcome.decision.source == DecisionSource.TEMPLATE
        assert outcome.error_kind == ExternalErrorKind.TRANSPORT_ERROR
        assert log.states[-1] == PipelineState.TEMPLATE_FALLBACK

    async def test_single_option_routes_to_template(self, language_model, templates, gate, settings, request_):
        language_model.queue_decision(options=["Buy the stranger a drink"])
        log = StateLog()
        outcome = await HybridStrategy(language_model, templates, gate, settings).generate(request_, log)
        assert outcome.used_fallback is True
        assert outcome.quality.passed
        assert len(outcome.decision.options) >= 2
        assert log.states == [
            PipelineState.GENERATING,
            PipelineState.VALIDATING,
            PipelineState.TEMPLATE_FALLBACK,
        ]

    async def test_irrelevant_decision_routes_to_template(self, language_model, templates, gate, settings, saloon_state):
        request = GenerationRequest(
            game_state=saloon_state,
            context_text="A cattle drive crosses the river near Abilene.",
            now_ms=NOW,
        )
        outcome = await HybridStrategy(language_model, templates, gate, settings).generate(request)
        assert outcome.used_fallback is True
        assert outcome.quality.passed


class TestCreateStrategy:
    def test_model_modes_need_a_model(self, templates, gate, settings):
        for mode in (GenerationMode.MODEL, GenerationMode.HYBRID):
            with pytest.raises(ValueError):
                create_strategy(mode, None, templates, gate, settings)

    def test_mode_mapping(self, language_model, templates, gate, settings):
        assert type(create_strategy("model", language_model, templates, gate, settings)) is ModelStrategy
        assert type(create_strategy("hybrid", language_model, templates, gate, settings)) is HybridStrategy
        assert create_strategy("template", None, templates, gate, settings).mode == GenerationMode.TEMPLATE
