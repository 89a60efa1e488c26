"""Records flowing through context scoring and assembly."""

from pydantic import BaseModel, ConfigDict, Field

from ..enums import ContextElementType


class ContextElement(BaseModel):
    """A unit of narrative information eligible for a prompt.

    Immutable: superseded by building a new element, never edited.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    type: ContextElementType
    content: str
    tags: frozenset[str] = Field(default_factory=frozenset)
    importance: int = Field(default=5, ge=1, le=10)
    timestamp_ms: int = 0
    location: str | None = None
    characters: frozenset[str] = Field(default_factory=frozenset)


class Situation(BaseModel):
    """The slice of game state the scorer needs."""
    model_config = ConfigDict(frozen=True)

    current_location: str | None = None
    active_characters: frozenset[str] = Field(default_factory=frozenset)
    recent_topics: frozenset[str] = Field(default_factory=frozenset)
    now_ms: int = 0


class ScoredElement(BaseModel):
    model_config = ConfigDict(frozen=True)

    element: ContextElement
    score: float


class AssembledContext(BaseModel):
    """Formatted context payload plus bookkeeping about how it was built."""
    text: str = ""
    included_ids: list[str] = Field(default_factory=list)
    token_estimate: int = 0
    summarized: bool = Field(default=False, description="History was replaced by a model summary")
    truncated: bool = Field(default=False, description="History was hard-truncated after a summary failure")
