"""
NarrativeSession - the per-game context object.

Owns the FactStore, DecisionHistory, ContextAssembler and DecisionPipeline
for one game and wires them together. Nothing here is global: a host
creates one session per game and passes it around explicitly.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

from ..context.assembler import ContextAssembler
from ..context.builder import build_candidates
from ..context.compression import TokenEstimator, estimate_tokens
from ..context.models import AssembledContext, ContextElement
from ..decisions.generator import create_strategy
from ..decisions.history import DecisionHistory
from ..decisions.models import Decision, DecisionRecord, GameStateSnapshot, PipelineResult
from ..decisions.pipeline import DecisionPipeline
from ..decisions.quality import QualityGate
from ..decisions.templates import TemplateLibrary
from ..enums import ContextElementType, GenerationMode, PipelineState
from ..llm.client import LanguageModel, Summarizer
from ..llm.manager import LLMManager
from ..lore.extraction import build_lore_extraction_prompt, parse_lore_block
from ..lore.lore_context import build_lore_context_prompt, extend_context_with_lore
from ..lore.models import IngestResult
from ..lore.store import FactStore
from ..settings import EngineSettings, SettingsStore
from ..utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0"


class NarrativeSession:
    """All engine state for one game."""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        llm: LanguageModel | None = None,
        summarizer: Summarizer | None = None,
        *,
        templates: TemplateLibrary | None = None,
        clock: Clock = now_ms,
        token_estimator: TokenEstimator = estimate_tokens,
        facts: FactStore | None = None,
        history: DecisionHistory | None = None,
    ):
        self.settings = settings or EngineSettings()
        self.clock = clock
        self.facts = facts if facts is not None else FactStore(clock=clock)
        self.history = history if history is not None else DecisionHistory(clock=clock)
        self.templates = templates or TemplateLibrary()
        self.gate = QualityGate(self.settings)
        self.assembler = ContextAssembler(
            summarizer=summarizer,
            token_estimator=token_estimator,
            summary_timeout_s=self.settings.summary_timeout_s,
            history_compression=self.settings.history_compression,
        )
        strategy = create_strategy(self.settings.generation_mode, llm, self.templates, self.gate, self.settings)
        self.pipeline = DecisionPipeline(strategy, self.history, settings=self.settings, clock=clock)

        self.story_points: list[ContextElement] = []
        self.narrative_log: list[str] = []

    @classmethod
    def from_config(
        cls,
        settings: EngineSettings | None = None,
        manager: LLMManager | None = None,
        **kwargs: Any,
    ) -> "NarrativeSession":
        """Session wired from the environment: stored settings plus the configured provider.

        Template mode needs no provider; a summarizer is still attached
        when one is available.
        """
        settings = settings or SettingsStore().load()
        if manager is None:
            try:
                manager = LLMManager()
            except ValueError:
                if settings.generation_mode != GenerationMode.TEMPLATE:
                    raise
                logger.info("No LLM provider configured; running template-only without summaries")
                return cls(settings, **kwargs)
        return cls(settings, manager.language_model(), manager.summarizer(), **kwargs)

    @property
    def current_decision(self) -> Decision | None:
        return self.history.current

    @property
    def pipeline_state(self) -> PipelineState:
        return self.pipeline.state

    # ── Narrative & lore ────────────────────────────────────────────

    def add_story_point(
        self,
        content: str,
        *,
        tags: Iterable[str] = (),
        importance: int = 5,
        location: str | None = None,
        characters: Iterable[str] = (),
    ) -> ContextElement:
        """Register a notable story beat as a context candidate."""
        element = ContextElement(
            id=f"story_{len(self.story_points) + 1}",
            type=ContextElementType.STORY_POINT,
            content=content,
            tags=frozenset(t.lower() for t in tags),
            importance=importance,
            timestamp_ms=self.clock(),
            location=location,
            characters=frozenset(characters),
        )
        self.story_points.append(element)
        return element

    def ingest_narrative(self, text: str, source_id: str | None = None) -> list[IngestResult]:
        """Log generated narrative and fold any extracted facts into the store."""
        if text and text.strip():
            self.narrative_log.append(text.strip())
        drafts = self.facts.extract_from_text(text, source_id=source_id)
        results = [self.facts.ingest(draft) for draft in drafts]
        added = sum(1 for r in results if r.action == "added")
        if results:
            logger.info(f"Narrative ingest: {added} added, {len(results) - added} duplicates")
        return results

    def apply_lore_block(self, payload: Any) -> list[IngestResult]:
        """Apply the `lore` block of a model narration response."""
        return self.facts.process_extraction(parse_lore_block(payload))

    # ── Context ─────────────────────────────────────────────────────

    async def build_context(
        self,
        game_state: GameStateSnapshot,
        variables: Mapping[str, Any] | None = None,
        token_budget: int | None = None,
    ) -> AssembledContext:
        """Assemble the context payload for the current moment."""
        now = self.clock()
        assembled = await self._assemble(game_state, variables, token_budget, now)
        self._mark_included(assembled, now)
        return assembled

    async def _assemble(
        self,
        game_state: GameStateSnapshot,
        variables: Mapping[str, Any] | None,
        token_budget: int | None,
        now: int,
    ) -> AssembledContext:
        situation = game_state.to_situation(now)
        candidates = build_candidates(
            facts=self.facts.all_facts(),
            records=self.history.get_history(),
            story_points=self.story_points,
            variables=variables,
            now_ms=now,
        )
        return await self.assembler.assemble(
            candidates,
            situation,
            token_budget or self.settings.token_budget,
            history=list(self.narrative_log),
        )

    def _mark_included(self, assembled: AssembledContext, now: int) -> None:
        self.facts.mark_referenced(
            (i for i in assembled.included_ids if i in self.facts), at_ms=now
        )

    def lore_prompt(self, game_state: GameStateSnapshot) -> str:
        """Detailed world-facts section sized by lore_token_budget."""
        return build_lore_context_prompt(
            self.facts,
            game_state.to_situation(self.clock()),
            token_budget=self.settings.lore_token_budget,
        )

    def narration_prompt_context(self, context_text: str, game_state: GameStateSnapshot) -> str:
        """Context for a narration call: lore appended plus lore-reporting instructions."""
        situation = game_state.to_situation(self.clock())
        extended = extend_context_with_lore(context_text, self.facts, situation)
        return f"{extended}\n\n{build_lore_extraction_prompt().strip()}"

    # ── Decisions ───────────────────────────────────────────────────

    async def evaluate(
        self,
        narrative_text: str,
        game_state: GameStateSnapshot,
        *,
        variables: Mapping[str, Any] | None = None,
        force_generation: bool = False,
    ) -> PipelineResult:
        """Run the decision pipeline on the latest narrative.

        Context is assembled inside the pipeline's evaluation task, after
        detection passes, so a newer evaluate() supersedes this one even
        while it is still summarizing history. Facts are only marked as
        referenced when the evaluation commits.
        """
        built: list[tuple[AssembledContext, int]] = []

        async def build() -> str:
            now = self.clock()
            assembled = await self._assemble(game_state, variables, None, now)
            built.append((assembled, now))
            return assembled.text

        def commit() -> None:
            for assembled, at_ms in built:
                self._mark_included(assembled, at_ms)

        return await self.pipeline.evaluate(
            narrative_text,
            game_state,
            force_generation=force_generation,
            context_builder=build,
            on_commit=commit,
        )

    def record_choice(self, decision_id: str, selected_option_id: str, outcome_text: str = "") -> DecisionRecord:
        return self.pipeline.record_choice(decision_id, selected_option_id, outcome_text)

    # ── Persistence ─────────────────────────────────────────────────

    def to_state(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "version": STATE_VERSION,
            "settings": self.settings.model_dump(mode="json"),
            "facts": self.facts.to_state(),
            "history": self.history.to_state(),
            "story_points": [p.model_dump(mode="json") for p in self.story_points],
            "narrative_log": list(self.narrative_log),
        }

    @classmethod
    def from_state(
        cls,
        state: dict[str, Any],
        llm: LanguageModel | None = None,
        summarizer: Summarizer | None = None,
        *,
        settings: EngineSettings | None = None,
        clock: Clock = now_ms,
        **kwargs: Any,
    ) -> "NarrativeSession":
        """Rebuild a session. `settings` overrides the saved ones."""
        if settings is None:
            settings = EngineSettings.model_validate(state.get("settings", {}))
        session = cls(
            settings,
            llm,
            summarizer,
            clock=clock,
            facts=FactStore.from_state(state.get("facts", {}), clock=clock),
            history=DecisionHistory.from_state(state.get("history", {}), clock=clock),
            **kwargs,
        )
        session.story_points = [ContextElement.model_validate(p) for p in state.get("story_points", [])]
        session.narrative_log = list(state.get("narrative_log", []))
        return session

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_state(), f, indent=2)
        logger.info(f"Session saved to {path}")
        return path

    @classmethod
    def load(cls, path: str | Path, llm: LanguageModel | None = None, summarizer: Summarizer | None = None, **kwargs: Any) -> "NarrativeSession":
        with open(path, "r", encoding="utf-8") as f:
            state = json.load(f)
        return cls.from_state(state, llm, summarizer, **kwargs)
