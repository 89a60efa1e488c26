"""
Canonical string enumerations for storyloom.

StrEnum values serialize as plain strings, so they're
drop-in replacements for raw string literals in JSON
snapshots, LLM schemas and YAML template files.
"""

from enum import StrEnum


# ── Lore ───────────────────────────────────────────────────────────────

class FactCategory(StrEnum):
    """Categories for organizing world facts."""
    CHARACTER = "character"    # NPCs and PCs
    LOCATION = "location"      # Places, landmarks, regions
    HISTORY = "history"        # Past events of significance
    ITEM = "item"              # Notable objects and artifacts
    CONCEPT = "concept"        # Customs, laws, abstract ideas


class ConflictKind(StrEnum):
    """How a candidate fact collides with an existing one."""
    DUPLICATE = "duplicate"
    CONTRADICTION = "contradiction"


# ── Context ────────────────────────────────────────────────────────────

class ContextElementType(StrEnum):
    """Kinds of narrative information eligible for a prompt."""
    STORY_POINT = "story_point"
    DECISION = "decision"
    LORE = "lore"
    VARIABLE = "variable"


class CompressionLevel(StrEnum):
    """How aggressively narrative text is compressed."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ── Decisions ──────────────────────────────────────────────────────────

class DecisionImportance(StrEnum):
    """How much weight a decision carries."""
    MINOR = "minor"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class DecisionSource(StrEnum):
    """Where a presented decision came from."""
    MODEL = "model"
    TEMPLATE = "template"


class GenerationMode(StrEnum):
    """Decision generation strategy, fixed per session."""
    TEMPLATE = "template"    # Never call the model
    MODEL = "model"          # Model only; failures surface to the host
    HYBRID = "hybrid"        # Model first, templates on failure / low quality


class SituationType(StrEnum):
    """Keys for the decision template library."""
    COMBAT_ADJACENT = "combat_adjacent"
    LOCATION_ENTRY = "location_entry"
    SOCIAL = "social"
    GENERIC = "generic"


class PipelineState(StrEnum):
    """States of the decision pipeline."""
    IDLE = "idle"
    DETECTING = "detecting"
    GENERATING = "generating"
    VALIDATING = "validating"
    TEMPLATE_FALLBACK = "template_fallback"
    PRESENTED = "presented"
    RECORDED = "recorded"


# ── External services ──────────────────────────────────────────────────

class ExternalErrorKind(StrEnum):
    """Failure modes of the language-model and summarizer collaborators."""
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    INVALID_RESPONSE = "invalid_response"
