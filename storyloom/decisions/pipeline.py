"""
Decision pipeline - detection, generation and presentation as one
single-flight operation.

    idle -> detecting -> idle                       (below threshold)
    idle -> detecting -> generating -> validating -> presented
                                    \\-> template_fallback -> presented
    presented -> recorded -> idle                   (record_choice)

Each evaluate() call gets a sequence number and runs as its own task. A
newer call cancels the older task; whatever the older run produces after
that is treated as stale and never reaches DecisionHistory.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from ..enums import PipelineState
from ..settings import EngineSettings
from ..utils.clock import Clock, now_ms
from ..utils.tasks import safe_create_task
from .detector import DecisionDetector
from .generator import GenerationStrategy
from .history import DecisionHistory
from .models import DecisionRecord, GameStateSnapshot, GenerationRequest, PipelineResult
from .templates import classify_situation

logger = logging.getLogger(__name__)

ContextBuilder = Callable[[], Awaitable[str]]
CommitHook = Callable[[], None]


class DecisionPipeline:
    """Owns pipeline state and the in-flight evaluation task."""

    def __init__(
        self,
        strategy: GenerationStrategy,
        history: DecisionHistory,
        detector: DecisionDetector | None = None,
        settings: EngineSettings | None = None,
        clock: Clock = now_ms,
    ):
        self.settings = settings or EngineSettings()
        self.strategy = strategy
        self.history = history
        self.detector = detector or DecisionDetector(self.settings)
        self._clock = clock
        self._sequence = 0
        self._task: asyncio.Task | None = None
        self._state = PipelineState.PRESENTED if history.has_active() else PipelineState.IDLE

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def sequence(self) -> int:
        """Sequence number of the latest evaluate() call."""
        return self._sequence

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, state: PipelineState) -> None:
        if state != self._state:
            logger.info(f"Pipeline {self._state} -> {state}")
            self._state = state

    def _notifier(self, sequence: int):
        def notify(state: PipelineState) -> None:
            if sequence == self._sequence:
                self._set_state(state)
        return notify

    def cancel(self) -> bool:
        """Abandon the in-flight evaluation, if any."""
        if not self.in_flight:
            return False
        self._sequence += 1
        self._task.cancel()
        self._set_state(PipelineState.PRESENTED if self.history.has_active() else PipelineState.IDLE)
        return True

    async def evaluate(
        self,
        narrative_text: str,
        game_state: GameStateSnapshot,
        context_text: str = "",
        force_generation: bool = False,
        *,
        context_builder: ContextBuilder | None = None,
        on_commit: CommitHook | None = None,
    ) -> PipelineResult:
        """Run detection and, when warranted, generate and present a decision.

        Supersedes any evaluation still in flight. The superseded call
        returns a result with ``stale=True``.

        Args:
            context_text: Fixed context for the generation prompt.
            context_builder: Awaited after detection passes, inside the
                evaluation task, to produce the context text instead. A
                superseded evaluation is cancelled while building.
            on_commit: Called once the evaluation survives the stale check,
                before its outcome reaches DecisionHistory.
        """
        self._sequence += 1
        sequence = self._sequence
        if self.in_flight:
            logger.info(f"Evaluation #{sequence} supersedes an in-flight evaluation")
            self._task.cancel()

        task = safe_create_task(
            self._run(
                sequence,
                narrative_text,
                game_state,
                context_text,
                force_generation,
                context_builder,
                on_commit,
            ),
            name=f"decision-evaluate-{sequence}",
        )
        self._task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task.cancelled():
            logger.info(f"Evaluation #{sequence} was superseded")
            return PipelineResult(sequence=sequence, state=self._state, stale=True)
        return task.result()

    async def _run(
        self,
        sequence: int,
        narrative_text: str,
        game_state: GameStateSnapshot,
        context_text: str,
        force_generation: bool,
        context_builder: ContextBuilder | None,
        on_commit: CommitHook | None,
    ) -> PipelineResult:
        notify = self._notifier(sequence)

        if self.history.has_active():
            notify(PipelineState.PRESENTED)
            return PipelineResult(
                sequence=sequence,
                state=PipelineState.PRESENTED,
                error="A decision is already awaiting a choice",
            )

        now = self._clock()
        notify(PipelineState.DETECTING)
        detection = self.detector.detect(
            narrative_text,
            game_state,
            self.history.last_presented_at,
            now,
            force_generation=force_generation,
        )
        if not detection.should_present:
            notify(PipelineState.IDLE)
            logger.debug(f"No decision: {detection.reason}")
            return PipelineResult(sequence=sequence, state=PipelineState.IDLE, detection=detection)

        if context_builder is not None:
            context_text = await context_builder()

        situation_type = classify_situation(game_state, narrative_text)
        request = GenerationRequest(
            game_state=game_state,
            narrative_text=narrative_text,
            context_text=context_text,
            history=self.history.recent_window(self.settings.history_window),
            now_ms=now,
        )
        outcome = await self.strategy.generate(request, notify)

        # Commit point: only the latest evaluation may touch history
        if sequence != self._sequence:
            logger.info(f"Discarding stale result of evaluation #{sequence}")
            return PipelineResult(
                sequence=sequence,
                state=self._state,
                detection=detection,
                quality=outcome.quality,
                situation_type=situation_type,
                stale=True,
            )

        if on_commit is not None:
            on_commit()

        if not outcome.ok:
            notify(PipelineState.IDLE)
            logger.warning(f"No decision presented: {outcome.error}")
            return PipelineResult(
                sequence=sequence,
                state=PipelineState.IDLE,
                detection=detection,
                quality=outcome.quality,
                situation_type=situation_type,
                error=outcome.error,
                error_kind=outcome.error_kind,
            )

        if self.history.has_active():
            notify(PipelineState.PRESENTED)
            logger.warning(f"Dropping {outcome.decision.id}: another decision was presented meanwhile")
            return PipelineResult(
                sequence=sequence,
                state=PipelineState.PRESENTED,
                detection=detection,
                quality=outcome.quality,
                situation_type=situation_type,
                error="A decision is already awaiting a choice",
            )

        decision = self.history.present(outcome.decision)
        notify(PipelineState.PRESENTED)
        return PipelineResult(
            sequence=sequence,
            state=PipelineState.PRESENTED,
            detection=detection,
            decision=decision,
            quality=outcome.quality,
            situation_type=situation_type,
            used_fallback=outcome.used_fallback,
        )

    def record_choice(self, decision_id: str, selected_option_id: str, outcome_text: str = "") -> DecisionRecord:
        """Record the player's choice for the presented decision.

        Raises:
            NotFoundError / ValidationError: see DecisionHistory.record().
        """
        record = self.history.record(decision_id, selected_option_id, outcome_text)
        self._set_state(PipelineState.RECORDED)
        self._set_state(PipelineState.IDLE)
        return record
