"""Engine settings: the static, host-supplied configuration surface of a session."""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from .config import Config
from .enums import CompressionLevel, GenerationMode

logger = logging.getLogger(__name__)


class EngineSettings(BaseModel):
    """Per-session configuration.

    Static for the lifetime of a NarrativeSession: the pipeline picks its
    generation strategy from ``generation_mode`` once, at construction.
    """

    # === DETECTION ===
    min_decision_interval_ms: int = Field(
        default=45_000, ge=0,
        description="Elapsed game time that must pass between two presented decisions"
    )
    relevance_threshold: float = Field(
        default=0.65, ge=0.0, le=1.0,
        description="Detection score at or above which a decision is surfaced"
    )

    # === GENERATION ===
    generation_mode: GenerationMode = Field(
        default=GenerationMode.HYBRID,
        description="template | model | hybrid"
    )
    min_options: int = Field(default=2, ge=1, description="Fewest options a decision may carry")
    max_options_per_decision: int = Field(default=4, ge=1, description="Most options a decision may carry")
    generation_timeout_s: float = Field(default=12.0, gt=0, description="Bounded wait for one model call")
    generation_retries: int = Field(default=1, ge=0, le=1, description="Retries before falling back")
    retry_backoff_s: float = Field(default=1.0, ge=0, description="Pause before the single retry")
    history_window: int = Field(default=3, ge=0, description="Past decisions fed into the prompt")

    # === CONTEXT ===
    token_budget: int = Field(default=2000, gt=0, description="Cap on the assembled context payload")
    summary_timeout_s: float = Field(default=10.0, gt=0, description="Bounded wait for a summarization call")
    lore_token_budget: int = Field(default=500, ge=0, description="Share of the prompt reserved for world facts")
    history_compression: CompressionLevel = Field(
        default=CompressionLevel.NONE,
        description="Rule-based compression applied to narrative history before budgeting"
    )

    @model_validator(mode="after")
    def _check_option_bounds(self) -> "EngineSettings":
        if self.min_options > self.max_options_per_decision:
            raise ValueError(
                f"min_options ({self.min_options}) exceeds "
                f"max_options_per_decision ({self.max_options_per_decision})"
            )
        return self

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from environment defaults (see Config)."""
        return cls(
            generation_mode=GenerationMode(Config.GENERATION_MODE),
            token_budget=Config.TOKEN_BUDGET,
        )


class SettingsStore:
    """Persists EngineSettings to a JSON file.

    Missing or unreadable files fall back to environment defaults.
    """

    def __init__(self, settings_path: Path | None = None):
        if settings_path:
            self._path = Path(settings_path)
        elif Config.SETTINGS_PATH:
            self._path = Path(Config.SETTINGS_PATH)
        else:
            self._path = Path.cwd() / "storyloom_settings.json"
        self._settings: EngineSettings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> EngineSettings:
        """Load settings from file, or return defaults."""
        if self._settings is not None:
            return self._settings

        if self._path.exists():
            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._settings = EngineSettings.model_validate(data)
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Could not load settings from {self._path}: {e}")
                self._settings = EngineSettings.from_env()
        else:
            self._settings = EngineSettings.from_env()

        return self._settings

    def reload(self) -> EngineSettings:
        """Force reload settings from disk, bypassing the cache."""
        self._settings = None
        return self.load()

    def save(self, settings: EngineSettings | None = None) -> None:
        """Save settings to file."""
        if settings:
            self._settings = settings
        if self._settings is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(self._settings.model_dump(mode="json"), f, indent=2)
        logger.info(f"Settings saved to {self._path}")
