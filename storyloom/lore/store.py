"""
Fact Store: the single owner of world-fact records.

Facts are versioned and never deleted; contradicted or retracted facts
are invalidated and stay on record. Single-writer by contract, so no
internal locking.

Version rules:
- update_fact() always bumps `version` and snapshots the new state.
- validate/invalidate, link and tag maintenance, and reference
  tracking do not.
"""

import logging
from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError

from ..enums import ConflictKind, FactCategory
from ..errors import NotFoundError, ValidationError
from ..utils.clock import Clock, now_ms
from .conflicts import find_conflict
from .extraction import extract_facts
from .models import (
    Fact,
    FactConflict,
    FactDraft,
    FactVersion,
    IngestResult,
    LoreExtractionResult,
)

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({
    "content", "category", "importance", "confidence",
    "tags", "related_fact_ids", "is_valid", "source_id",
})


class FactStore:
    """In-memory, indexed, versioned fact records for one session."""

    def __init__(self, clock: Clock = now_ms):
        self._clock = clock
        self._facts: dict[str, Fact] = {}
        self._by_category: dict[FactCategory, set[str]] = {c: set() for c in FactCategory}
        self._by_tag: dict[str, set[str]] = {}
        self._history: dict[str, list[FactVersion]] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._facts)

    def __contains__(self, fact_id: str) -> bool:
        return fact_id in self._facts

    # ── Indexing ────────────────────────────────────────────────────

    def _index(self, fact: Fact) -> None:
        self._by_category[fact.category].add(fact.id)
        for tag in fact.tags:
            self._by_tag.setdefault(tag, set()).add(fact.id)

    def _unindex(self, fact: Fact) -> None:
        self._by_category[fact.category].discard(fact.id)
        for tag in fact.tags:
            ids = self._by_tag.get(tag)
            if ids is not None:
                ids.discard(fact.id)
                if not ids:
                    del self._by_tag[tag]

    def _snapshot(self, fact: Fact) -> None:
        self._history.setdefault(fact.id, []).append(FactVersion(
            version=fact.version,
            content=fact.content,
            category=fact.category,
            importance=fact.importance,
            confidence=fact.confidence,
            tags=set(fact.tags),
            updated_at=fact.updated_at,
        ))

    def _require(self, fact_id: str) -> Fact:
        fact = self._facts.get(fact_id)
        if fact is None:
            raise NotFoundError("fact", fact_id)
        return fact

    @staticmethod
    def _detached(fact: Fact) -> Fact:
        return fact.model_copy(deep=True)

    @staticmethod
    def _coerce_draft(draft: FactDraft | dict) -> FactDraft:
        if isinstance(draft, FactDraft):
            return draft
        if not isinstance(draft, dict):
            raise ValidationError(f"Fact draft must be a FactDraft or dict, got {type(draft).__name__}")
        try:
            return FactDraft.model_validate(draft)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid fact draft: {e.errors()[0]['msg']}") from e

    # ── Lifecycle ───────────────────────────────────────────────────

    def add_fact(self, draft: FactDraft | dict) -> Fact:
        """Store a new fact and return it with system fields assigned.

        Raises:
            ValidationError: missing content or category, or out-of-range ratings.
        """
        draft = self._coerce_draft(draft)
        if not draft.content or not draft.content.strip():
            raise ValidationError("Fact draft is missing content")
        if draft.category is None:
            raise ValidationError("Fact draft is missing category")

        now = self._clock()
        fact = Fact(
            id=f"fact_{self._next_id}",
            content=draft.content.strip(),
            category=draft.category,
            importance=draft.importance,
            confidence=draft.confidence,
            tags=set(draft.tags),
            related_fact_ids=set(draft.related_fact_ids),
            is_valid=draft.is_valid,
            version=1,
            created_at=now,
            updated_at=now,
            last_referenced_at=now,
            source_id=draft.source_id,
        )
        self._next_id += 1
        self._facts[fact.id] = fact
        self._index(fact)
        self._snapshot(fact)
        logger.debug(f"Added {fact.id} [{fact.category}] {fact.content[:60]}")
        return self._detached(fact)

    def update_fact(self, fact_id: str, **changes: Any) -> Fact:
        """Merge field changes into a fact, bump its version and re-index.

        Raises:
            NotFoundError: unknown id.
            ValidationError: unknown field or invalid value.
        """
        fact = self._require(fact_id)
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fact field(s): {', '.join(sorted(unknown))}")
        if "content" in changes and not str(changes["content"] or "").strip():
            raise ValidationError("Fact content cannot be empty")

        data = fact.model_dump()
        data.update(changes)
        data["version"] = fact.version + 1
        data["updated_at"] = self._clock()
        try:
            updated = Fact.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid fact update for {fact_id}: {e.errors()[0]['msg']}") from e

        self._unindex(fact)
        self._facts[fact_id] = updated
        self._index(updated)
        self._snapshot(updated)
        logger.debug(f"Updated {fact_id} to v{updated.version}: {sorted(changes)}")
        return self._detached(updated)

    def invalidate_fact(self, fact_id: str) -> Fact:
        """Mark a fact invalid. Idempotent; version unchanged."""
        fact = self._require(fact_id)
        if fact.is_valid:
            fact.is_valid = False
            logger.debug(f"Invalidated {fact_id}")
        return self._detached(fact)

    def validate_fact(self, fact_id: str) -> Fact:
        """Mark a fact valid again. Idempotent; version unchanged."""
        fact = self._require(fact_id)
        if not fact.is_valid:
            fact.is_valid = True
            logger.debug(f"Re-validated {fact_id}")
        return self._detached(fact)

    # ── Links and tags ──────────────────────────────────────────────

    def add_related_facts(self, fact_id: str, related_ids: Iterable[str]) -> Fact:
        fact = self._require(fact_id)
        for related_id in related_ids:
            self._require(related_id)
            if related_id != fact_id:
                fact.related_fact_ids.add(related_id)
        return self._detached(fact)

    def remove_related_facts(self, fact_id: str, related_ids: Iterable[str]) -> Fact:
        fact = self._require(fact_id)
        fact.related_fact_ids.difference_update(related_ids)
        return self._detached(fact)

    def add_tags(self, fact_id: str, tags: Iterable[str]) -> Fact:
        fact = self._require(fact_id)
        self._unindex(fact)
        fact.tags.update(t.strip().lower() for t in tags if t and t.strip())
        self._index(fact)
        return self._detached(fact)

    def remove_tags(self, fact_id: str, tags: Iterable[str]) -> Fact:
        fact = self._require(fact_id)
        self._unindex(fact)
        fact.tags.difference_update(t.strip().lower() for t in tags if t)
        self._index(fact)
        return self._detached(fact)

    def mark_referenced(self, fact_ids: Iterable[str], at_ms: int | None = None) -> None:
        """Refresh last_referenced_at for facts that made it into a prompt."""
        stamp = at_ms if at_ms is not None else self._clock()
        for fact_id in fact_ids:
            fact = self._facts.get(fact_id)
            if fact is not None:
                fact.last_referenced_at = stamp

    # ── Queries ─────────────────────────────────────────────────────

    def get_fact(self, fact_id: str) -> Fact:
        """A copy of the stored fact. Use the store methods to change it."""
        return self._detached(self._require(fact_id))

    def all_facts(self, include_invalid: bool = False) -> list[Fact]:
        return [self._detached(f) for f in self._facts.values() if include_invalid or f.is_valid]

    def get_facts_by_category(self, category: FactCategory | str, include_invalid: bool = False) -> list[Fact]:
        try:
            category = FactCategory(category)
        except ValueError as e:
            raise ValidationError(f"Unknown fact category '{category}'") from e
        ids = self._by_category[category]
        return [self._detached(f) for f in self._facts.values() if f.id in ids and (include_invalid or f.is_valid)]

    def get_facts_by_tag(self, tag: str, include_invalid: bool = False) -> list[Fact]:
        ids = self._by_tag.get(tag.strip().lower(), set())
        return [self._detached(f) for f in self._facts.values() if f.id in ids and (include_invalid or f.is_valid)]

    def get_version_history(self, fact_id: str) -> list[FactVersion]:
        self._require(fact_id)
        return list(self._history.get(fact_id, []))

    # ── Conflicts ───────────────────────────────────────────────────

    def detect_conflicts(self, candidate: FactDraft | Fact | dict) -> list[FactConflict]:
        """Duplicates and contradictions between a candidate and valid facts."""
        if isinstance(candidate, dict):
            candidate = self._coerce_draft(candidate)
        if candidate.category is None or not candidate.content:
            return []

        conflicts = []
        for existing_id in sorted(self._by_category[candidate.category], key=_id_order):
            existing = self._facts[existing_id]
            if not existing.is_valid or existing.id == getattr(candidate, "id", None):
                continue
            conflict = find_conflict(
                candidate.content,
                candidate.category,
                set(candidate.tags),
                candidate.confidence,
                existing,
            )
            if conflict is not None:
                conflicts.append(conflict)
        return conflicts

    def resolve_conflicts(self, candidate: FactDraft, conflicts: list[FactConflict]) -> IngestResult:
        """Apply the default policy and store the candidate accordingly.

        - duplicate: the candidate is not stored; the existing fact is
          referenced instead.
        - contradiction: higher confidence wins and the loser is
          invalidated; equal confidence keeps both.
        """
        candidate = self._coerce_draft(candidate)

        duplicate = next((c for c in conflicts if c.kind == ConflictKind.DUPLICATE), None)
        if duplicate is not None:
            existing = self._require(duplicate.existing_fact_id)
            self.mark_referenced([existing.id])
            logger.info(f"Fact policy: duplicate of {existing.id}, not re-added")
            return IngestResult(action="duplicate", fact=self._detached(existing), conflicts=conflicts)

        contradictions = [c for c in conflicts if c.kind == ConflictKind.CONTRADICTION]
        stronger = [
            c for c in contradictions
            if self._require(c.existing_fact_id).confidence > candidate.confidence
        ]
        candidate_valid = candidate.is_valid and not stronger

        stored = self.add_fact(candidate.model_copy(update={"is_valid": candidate_valid}))
        invalidated: list[str] = []

        for conflict in contradictions:
            existing = self._require(conflict.existing_fact_id)
            if existing.confidence > candidate.confidence:
                logger.info(
                    f"Fact policy: {stored.id} (conf {candidate.confidence}) loses to "
                    f"{existing.id} (conf {existing.confidence}): {conflict.reason}"
                )
            elif existing.confidence < candidate.confidence and candidate_valid:
                self.invalidate_fact(existing.id)
                invalidated.append(existing.id)
                logger.info(
                    f"Fact policy: {stored.id} (conf {candidate.confidence}) supersedes "
                    f"{existing.id} (conf {existing.confidence}): {conflict.reason}"
                )
            else:
                logger.info(
                    f"Fact policy: keeping both {stored.id} and {existing.id} "
                    f"(conf {existing.confidence}): {conflict.reason}"
                )

        if not candidate_valid:
            invalidated.append(stored.id)

        return IngestResult(
            action="added",
            fact=stored,
            conflicts=conflicts,
            invalidated_ids=invalidated,
        )

    def ingest(self, draft: FactDraft | dict) -> IngestResult:
        """detect_conflicts + resolve_conflicts for one draft."""
        draft = self._coerce_draft(draft)
        if not draft.content or draft.category is None:
            raise ValidationError("Fact draft is missing content or category")
        return self.resolve_conflicts(draft, self.detect_conflicts(draft))

    # ── Extraction ──────────────────────────────────────────────────

    def extract_from_text(self, text: str, source_id: str | None = None) -> list[FactDraft]:
        """Heuristic drafts from generated text. Never raises."""
        return extract_facts(text, source_id=source_id)

    def process_extraction(self, result: LoreExtractionResult) -> list[IngestResult]:
        """Apply a parsed model lore block: ingest new facts, apply updates."""
        outcomes = [self.ingest(draft) for draft in result.new_facts]

        for update in result.updated_facts:
            changes = update.model_dump(exclude={"id"}, exclude_none=True)
            if not changes:
                continue
            if update.id not in self._facts:
                logger.warning(f"Lore update references unknown fact {update.id}, skipped")
                continue
            self.update_fact(update.id, **changes)

        return outcomes

    # ── Serialization ───────────────────────────────────────────────

    def to_state(self) -> dict:
        return {
            "next_id": self._next_id,
            "facts": [f.model_dump(mode="json") for f in self._facts.values()],
            "history": {
                fid: [v.model_dump(mode="json") for v in versions]
                for fid, versions in self._history.items()
            },
        }

    @classmethod
    def from_state(cls, state: dict, clock: Clock = now_ms) -> "FactStore":
        store = cls(clock=clock)
        for raw in state.get("facts", []):
            fact = Fact.model_validate(raw)
            store._facts[fact.id] = fact
            store._index(fact)
        for fid, versions in state.get("history", {}).items():
            store._history[fid] = [FactVersion.model_validate(v) for v in versions]
        store._next_id = state.get("next_id", len(store._facts) + 1)
        return store


def _id_order(fact_id: str) -> tuple[int, str]:
    _, _, suffix = fact_id.rpartition("_")
    return (int(suffix) if suffix.isdigit() else 0, fact_id)
