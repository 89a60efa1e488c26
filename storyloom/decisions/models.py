"""Pydantic records for the decision pipeline."""

from pydantic import BaseModel, ConfigDict, Field

from ..context.models import Situation
from ..enums import (
    DecisionImportance,
    DecisionSource,
    ExternalErrorKind,
    PipelineState,
    SituationType,
)


class GameStateSnapshot(BaseModel):
    """Read-only view of the host's game state. Never mutated by the engine."""
    model_config = ConfigDict(frozen=True)

    current_location: str | None = None
    location_changed: bool = False
    active_characters: tuple[str, ...] = ()
    combat_active: bool = False
    recent_narrative: str = ""
    story_decision_point: bool = Field(default=False, description="Upstream narrative flagged a decision point")
    elapsed_ms_since_last_decision: int | None = None
    character_traits: tuple[str, ...] = ()
    recent_topics: tuple[str, ...] = ()

    def to_situation(self, now_ms: int) -> Situation:
        return Situation(
            current_location=self.current_location,
            active_characters=frozenset(self.active_characters),
            recent_topics=frozenset(self.recent_topics),
            now_ms=now_ms,
        )


class DecisionOption(BaseModel):
    id: str
    text: str
    impact: str = ""
    tags: list[str] = Field(default_factory=list)


class Decision(BaseModel):
    """A player choice with its options."""
    id: str
    prompt: str
    options: list[DecisionOption] = Field(default_factory=list)
    context: str = ""
    importance: DecisionImportance = DecisionImportance.MODERATE
    characters: list[str] = Field(default_factory=list)
    location: str | None = None
    ai_generated: bool = False
    timestamp_ms: int = 0
    source: DecisionSource = DecisionSource.TEMPLATE

    def get_option(self, option_id: str) -> DecisionOption | None:
        return next((o for o in self.options if o.id == option_id), None)


class DecisionRecord(BaseModel):
    """History entry: one presented decision and the choice made."""
    decision_id: str
    selected_option_id: str
    narrative_outcome: str = ""
    timestamp_ms: int

    # Denormalized so prompts can describe past choices
    prompt: str = ""
    option_text: str = ""
    importance: DecisionImportance = DecisionImportance.MODERATE
    tags: list[str] = Field(default_factory=list)
    location: str | None = None


class DetectionResult(BaseModel):
    score: float = Field(ge=0.0, le=1.0)
    contributing_factors: dict[str, float] = Field(default_factory=dict)
    should_present: bool = False
    reason: str = ""


class QualityReport(BaseModel):
    passed: bool
    issues: list[str] = Field(default_factory=list)
    score: float = Field(default=0.0, description="Weighted quality score, informational")


class GenerationRequest(BaseModel):
    """Everything a generation strategy may use."""
    game_state: GameStateSnapshot
    narrative_text: str = ""
    context_text: str = ""
    history: list[DecisionRecord] = Field(default_factory=list, description="Recent window, oldest first")
    now_ms: int = 0


class GenerationOutcome(BaseModel):
    """Result of one strategy run. `decision` is None only on failure."""
    decision: Decision | None = None
    quality: QualityReport | None = None
    used_fallback: bool = False
    model_attempts: int = 0
    error: str | None = None
    error_kind: ExternalErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.decision is not None


class PipelineResult(BaseModel):
    """What the host gets back from DecisionPipeline.evaluate()."""
    sequence: int
    state: PipelineState
    detection: DetectionResult | None = None
    decision: Decision | None = None
    quality: QualityReport | None = None
    situation_type: SituationType | None = None
    used_fallback: bool = Field(default=False, description="Decision came from a template after the model failed")
    stale: bool = Field(default=False, description="Superseded by a newer evaluation; nothing was committed")
    error: str | None = None
    error_kind: ExternalErrorKind | None = None
