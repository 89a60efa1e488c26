"""
Decision generation strategies.

One strategy per GenerationMode, all with the same contract:

    await strategy.generate(request, notify=None) -> GenerationOutcome

- TemplateStrategy: template library only; never touches the model.
- ModelStrategy: model call with a bounded wait and at most one retry for
  retryable failures. Failures come back as an outcome with `error` set.
- HybridStrategy: ModelStrategy first, template fallback when the model
  fails or the quality gate rejects its decision.

`notify` receives PipelineState transitions so the caller can track
progress without the strategy knowing about pipeline bookkeeping.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

from ..enums import ExternalErrorKind, GenerationMode, PipelineState
from ..errors import ExternalServiceError
from ..llm.client import LanguageModel
from ..settings import EngineSettings
from .models import Decision, GenerationOutcome, GenerationRequest
from .prompts import build_decision_prompt, parse_decision_response
from .quality import QualityGate
from .templates import TemplateLibrary

logger = logging.getLogger(__name__)

StateCallback = Callable[[PipelineState], None]


def _emit(notify: StateCallback | None, state: PipelineState) -> None:
    if notify is not None:
        notify(state)


class GenerationStrategy(ABC):
    """Base class for decision generation modes."""

    mode: GenerationMode

    def __init__(
        self,
        templates: TemplateLibrary,
        gate: QualityGate,
        settings: EngineSettings | None = None,
    ):
        self.templates = templates
        self.gate = gate
        self.settings = settings or EngineSettings()

    @abstractmethod
    async def generate(
        self,
        request: GenerationRequest,
        notify: StateCallback | None = None,
    ) -> GenerationOutcome:
        """Produce one decision for the request."""
        pass

    def _template_outcome(
        self,
        request: GenerationRequest,
        notify: StateCallback | None,
        *,
        used_fallback: bool,
        model_attempts: int = 0,
        error: str | None = None,
        error_kind: ExternalErrorKind | None = None,
    ) -> GenerationOutcome:
        _emit(notify, PipelineState.TEMPLATE_FALLBACK)
        recent_prompts = [r.prompt for r in request.history]
        decision = self.templates.fallback_decision(
            request.game_state,
            request.now_ms,
            narrative_text=request.narrative_text,
            recent_prompts=recent_prompts,
        )
        # Templates are situation-generic; context relevance is a model-output check
        report = self.gate.assess(decision)
        if not report.passed:
            logger.error(f"Template decision failed the quality gate: {report.issues}")
        return GenerationOutcome(
            decision=decision,
            quality=report,
            used_fallback=used_fallback,
            model_attempts=model_attempts,
            error=error,
            error_kind=error_kind,
        )


class TemplateStrategy(GenerationStrategy):
    """Template library only."""

    mode = GenerationMode.TEMPLATE

    async def generate(self, request, notify=None) -> GenerationOutcome:
        return self._template_outcome(request, notify, used_fallback=False)


class ModelStrategy(GenerationStrategy):
    """Language model only; failures are returned, not raised."""

    mode = GenerationMode.MODEL

    def __init__(
        self,
        llm: LanguageModel,
        templates: TemplateLibrary,
        gate: QualityGate,
        settings: EngineSettings | None = None,
    ):
        super().__init__(templates, gate, settings)
        self.llm = llm

    async def _call_model(self, prompt: str, request: GenerationRequest) -> Decision:
        timeout_s = self.settings.generation_timeout_s
        try:
            raw = await asyncio.wait_for(self.llm.generate(prompt, timeout_s), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(
                ExternalErrorKind.TIMEOUT, f"no decision within {timeout_s}s"
            ) from e
        state = request.game_state
        return parse_decision_response(
            raw,
            self.settings,
            request.now_ms,
            location=state.current_location,
            characters=list(state.active_characters),
        )

    async def generate(self, request, notify=None) -> GenerationOutcome:
        prompt = build_decision_prompt(request, self.settings)
        max_attempts = 1 + self.settings.generation_retries
        attempts = 0

        while True:
            attempts += 1
            _emit(notify, PipelineState.GENERATING)
            try:
                decision = await self._call_model(prompt, request)
            except ExternalServiceError as e:
                logger.warning(f"Decision model {e.kind} (attempt {attempts}/{max_attempts}): {e}")
                if e.retryable and attempts < max_attempts:
                    await asyncio.sleep(self.settings.retry_backoff_s)
                    continue
                return GenerationOutcome(model_attempts=attempts, error=str(e), error_kind=e.kind)
            break

        _emit(notify, PipelineState.VALIDATING)
        report = self.gate.assess(decision, request.context_text or None)
        if not report.passed:
            logger.warning(f"Quality gate rejected {decision.id}: {'; '.join(report.issues)}")
            return GenerationOutcome(
                quality=report,
                model_attempts=attempts,
                error=f"Quality gate rejected decision: {'; '.join(report.issues)}",
            )
        logger.info(f"Model decision {decision.id} accepted (quality {report.score})")
        return GenerationOutcome(decision=decision, quality=report, model_attempts=attempts)


class HybridStrategy(ModelStrategy):
    """Model first, templates when the model fails or is rejected."""

    mode = GenerationMode.HYBRID

    async def generate(self, request, notify=None) -> GenerationOutcome:
        outcome = await super().generate(request, notify)
        if outcome.ok:
            return outcome
        logger.warning(f"Falling back to template decision: {outcome.error}")
        return self._template_outcome(
            request,
            notify,
            used_fallback=True,
            model_attempts=outcome.model_attempts,
            error=outcome.error,
            error_kind=outcome.error_kind,
        )


def create_strategy(
    mode: GenerationMode,
    llm: LanguageModel | None,
    templates: TemplateLibrary,
    gate: QualityGate,
    settings: EngineSettings | None = None,
) -> GenerationStrategy:
    """Build the strategy for a session's generation mode.

    Raises:
        ValueError: a model-backed mode was requested without a model.
    """
    mode = GenerationMode(mode)
    if mode == GenerationMode.TEMPLATE:
        return TemplateStrategy(templates, gate, settings)
    if llm is None:
        raise ValueError(f"Generation mode '{mode}' needs a language model")
    if mode == GenerationMode.MODEL:
        return ModelStrategy(llm, templates, gate, settings)
    return HybridStrategy(llm, templates, gate, settings)
