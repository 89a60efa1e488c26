"""Decision orchestration: detection, generation strategies, quality gate and history."""

from .detector import DecisionDetector
from .generator import (
    GenerationStrategy,
    HybridStrategy,
    ModelStrategy,
    TemplateStrategy,
    create_strategy,
)
from .history import DecisionHistory
from .models import (
    Decision,
    DecisionOption,
    DecisionRecord,
    DetectionResult,
    GameStateSnapshot,
    GenerationOutcome,
    GenerationRequest,
    PipelineResult,
    QualityReport,
)
from .pipeline import DecisionPipeline
from .quality import QualityGate
from .templates import DecisionTemplate, TemplateLibrary, classify_situation

__all__ = [
    "DecisionDetector", "DecisionHistory", "DecisionPipeline", "QualityGate",
    "GenerationStrategy", "TemplateStrategy", "ModelStrategy", "HybridStrategy", "create_strategy",
    "DecisionTemplate", "TemplateLibrary", "classify_situation",
    "Decision", "DecisionOption", "DecisionRecord", "DetectionResult", "GameStateSnapshot",
    "GenerationOutcome", "GenerationRequest", "PipelineResult", "QualityReport",
]
