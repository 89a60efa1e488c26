"""Pydantic records for world facts."""

from pydantic import BaseModel, Field, field_validator

from ..enums import ConflictKind, FactCategory


def _normalize_tags(value) -> set[str]:
    if value is None:
        return set()
    if isinstance(value, str):
        value = [value]
    elif not isinstance(value, (list, tuple, set, frozenset)):
        raise ValueError(f"tags must be a string or a list of strings, got {type(value).__name__}")
    return {str(tag).strip().lower() for tag in value if str(tag).strip()}


class FactDraft(BaseModel):
    """Input to FactStore.add_fact: a fact without system-assigned fields."""
    content: str = Field(default="", description="Factual statement about the world")
    category: FactCategory | None = Field(default=None, description="character|location|history|item|concept")
    importance: int = Field(default=5, ge=1, le=10, description="How central the fact is to the story")
    confidence: int = Field(default=5, ge=1, le=10, description="How definitively the fact is established")
    tags: set[str] = Field(default_factory=set)
    related_fact_ids: set[str] = Field(default_factory=set)
    is_valid: bool = True
    source_id: str | None = Field(default=None, description="Narrative entry the fact came from, if any")

    @field_validator("tags", mode="before")
    @classmethod
    def _lower_tags(cls, v):
        return _normalize_tags(v)


class Fact(BaseModel):
    """A stored, versioned world-truth statement."""
    id: str
    content: str
    category: FactCategory
    importance: int = Field(ge=1, le=10)
    confidence: int = Field(ge=1, le=10)
    tags: set[str] = Field(default_factory=set)
    related_fact_ids: set[str] = Field(default_factory=set)
    is_valid: bool = True
    version: int = 1

    # Timestamps (epoch ms)
    created_at: int
    updated_at: int
    last_referenced_at: int

    source_id: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _lower_tags(cls, v):
        return _normalize_tags(v)


class FactVersion(BaseModel):
    """Snapshot of a fact's mutable fields at one version."""
    version: int
    content: str
    category: FactCategory
    importance: int
    confidence: int
    tags: set[str] = Field(default_factory=set)
    updated_at: int


class FactConflict(BaseModel):
    """A collision between a candidate fact and an existing one."""
    existing_fact_id: str
    reason: str
    kind: ConflictKind


class FactUpdate(BaseModel):
    """Model-supplied revision of an existing fact."""
    id: str
    content: str | None = None
    importance: int | None = Field(default=None, ge=1, le=10)
    confidence: int | None = Field(default=None, ge=1, le=10)


class LoreExtractionResult(BaseModel):
    """Parsed `lore` block from a model response."""
    new_facts: list[FactDraft] = Field(default_factory=list)
    updated_facts: list[FactUpdate] = Field(default_factory=list)


class IngestResult(BaseModel):
    """Outcome of running a draft through the conflict policy."""
    action: str = Field(description="added | duplicate")
    fact: Fact | None = Field(default=None, description="The stored fact (new, or the existing duplicate)")
    conflicts: list[FactConflict] = Field(default_factory=list)
    invalidated_ids: list[str] = Field(default_factory=list)
