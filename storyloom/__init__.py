"""storyloom - narrative memory and decision orchestration for an AI game master."""

from .core.session import NarrativeSession
from .decisions.models import Decision, DecisionOption, DecisionRecord, GameStateSnapshot, PipelineResult
from .enums import FactCategory, GenerationMode, PipelineState
from .errors import ConflictError, ExternalServiceError, NotFoundError, StoryloomError, ValidationError
from .settings import EngineSettings

__version__ = "0.1.0"

__all__ = [
    "NarrativeSession", "EngineSettings",
    "Decision", "DecisionOption", "DecisionRecord", "GameStateSnapshot", "PipelineResult",
    "FactCategory", "GenerationMode", "PipelineState",
    "StoryloomError", "ValidationError", "NotFoundError", "ConflictError", "ExternalServiceError",
]
