"""
Derive ContextElements on demand.

Elements are read views: facts stay owned by the FactStore and
decision records by DecisionHistory. Nothing built here is stored.
"""

from typing import Any, Iterable, Mapping

from ..enums import ContextElementType, FactCategory
from .models import ContextElement

DECISION_IMPORTANCE = {"minor": 4, "moderate": 6, "significant": 8}
VARIABLE_IMPORTANCE = 3


def element_from_fact(fact) -> ContextElement:
    characters = frozenset(fact.tags) if fact.category == FactCategory.CHARACTER else frozenset()
    return ContextElement(
        id=fact.id,
        type=ContextElementType.LORE,
        content=f"{fact.content} ({fact.category})",
        tags=frozenset(fact.tags),
        importance=fact.importance,
        timestamp_ms=fact.updated_at,
        characters=characters,
    )


def element_from_record(record) -> ContextElement:
    """Past decision as context: what was asked, what was chosen, what happened."""
    parts = []
    if getattr(record, "prompt", ""):
        parts.append(f"Asked: {record.prompt}")
    parts.append(f"Chose: {getattr(record, 'option_text', '') or record.selected_option_id}")
    if record.narrative_outcome:
        parts.append(f"Outcome: {record.narrative_outcome}")
    importance = DECISION_IMPORTANCE.get(str(getattr(record, "importance", "moderate")), 6)
    return ContextElement(
        id=f"decision:{record.decision_id}",
        type=ContextElementType.DECISION,
        content=" | ".join(parts),
        tags=frozenset(getattr(record, "tags", ()) or ()),
        importance=importance,
        timestamp_ms=record.timestamp_ms,
        location=getattr(record, "location", None),
    )


def element_from_story_point(point: ContextElement | Mapping[str, Any]) -> ContextElement:
    if isinstance(point, ContextElement):
        return point
    data = dict(point)
    data.setdefault("type", ContextElementType.STORY_POINT)
    return ContextElement.model_validate(data)


def elements_from_variables(variables: Mapping[str, Any], now_ms: int) -> list[ContextElement]:
    return [
        ContextElement(
            id=f"var:{name}",
            type=ContextElementType.VARIABLE,
            content=f"{name}: {value}",
            tags=frozenset({name.lower()}),
            importance=VARIABLE_IMPORTANCE,
            timestamp_ms=now_ms,
        )
        for name, value in sorted(variables.items())
        if value is not None and value != ""
    ]


def build_candidates(
    *,
    facts: Iterable = (),
    records: Iterable = (),
    story_points: Iterable[ContextElement | Mapping[str, Any]] = (),
    variables: Mapping[str, Any] | None = None,
    now_ms: int = 0,
) -> list[ContextElement]:
    """Pool every available source into one candidate list.

    Invalid facts are skipped; callers wanting them must build
    elements themselves.
    """
    candidates = [element_from_story_point(p) for p in story_points]
    candidates.extend(element_from_fact(f) for f in facts if f.is_valid)
    candidates.extend(element_from_record(r) for r in records)
    if variables:
        candidates.extend(elements_from_variables(variables, now_ms))
    return candidates
