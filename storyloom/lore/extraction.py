"""
Fact extraction from generated narrative.

Two sources:
- extract_facts(): sentence-level heuristics over free narrative text.
  Advisory only, never raises.
- parse_lore_block(): the structured `lore` object the narrator model
  is asked to emit (see build_lore_extraction_prompt()).
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..enums import FactCategory
from .conflicts import normalize_content, numbers_in
from .models import FactDraft, FactUpdate, LoreExtractionResult

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_STATE_VERB = re.compile(
    r"\b(is|are|was|were|has|have|had|owns|owned|belongs|belonged|lives|lived|runs|ran|"
    r"died|keeps|holds|stands|lies|sits|serves|works|became|remains|founded|built)\b",
    re.I,
)
_PROPER_NOUN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
_ROLE_STATEMENT = re.compile(r"^([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\s+(?:is|was)\s+(?:the|a|an)\s+\w+")
_HEDGES = re.compile(r"\b(maybe|perhaps|rumou?red|rumou?rs?|might|seems?|supposedly|allegedly|possibly|probably)\b", re.I)

# Capitalized words that start sentences without naming anything
_LEADING_WORDS = frozenset({
    "the", "a", "an", "he", "she", "it", "they", "we", "you", "i", "there", "this",
    "that", "these", "those", "in", "on", "at", "as", "if", "when", "after", "before",
    "his", "her", "their", "its", "our", "your", "but", "and", "then", "now", "once",
    "everyone", "nobody", "someone", "some", "many", "most",
})

_CATEGORY_CUES: list[tuple[FactCategory, re.Pattern]] = [
    (FactCategory.HISTORY, re.compile(
        r"\b(years? ago|long ago|decades? ago|in \d{4}|founded|built in|during the|used to|had been|back in)\b",
        re.I)),
    (FactCategory.ITEM, re.compile(
        r"\b(revolver|rifle|pistol|shotgun|gun|knife|sword|blade|map|key|badge|watch|ring|"
        r"amulet|locket|book|letter|deed|saddle|wagon)\b",
        re.I)),
    (FactCategory.CONCEPT, re.compile(
        r"\b(law|laws|custom|tradition|forbidden|illegal|rule|rules|outlawed|ordinance|bounty)\b",
        re.I)),
    (FactCategory.LOCATION, re.compile(
        r"\b(town|city|village|saloon|bank|jail|ranch|farm|mine|canyon|river|creek|mesa|valley|"
        r"church|station|fort|hotel|store|street|trail|pass|mountains?|desert|tavern|inn)\b",
        re.I)),
]

MIN_WORDS = 4
MAX_WORDS = 40


def _proper_nouns(sentence: str) -> list[str]:
    names = []
    for match in _PROPER_NOUN.findall(sentence):
        words = match.split()
        while words and words[0].lower() in _LEADING_WORDS:
            words = words[1:]
        if words:
            names.append(" ".join(words))
    return names


def _categorize(sentence: str, names: list[str]) -> tuple[FactCategory | None, str | None]:
    """Category guess plus the cue word that decided it."""
    role = _ROLE_STATEMENT.match(sentence)
    if role and role.group(1).split()[0].lower() not in _LEADING_WORDS:
        return FactCategory.CHARACTER, None
    for category, pattern in _CATEGORY_CUES:
        match = pattern.search(sentence)
        if match:
            return category, match.group(0).lower()
    if names:
        return FactCategory.CHARACTER, None
    return None, None


def _score(sentence: str, names: list[str]) -> tuple[int, int]:
    """(importance, confidence), confidence tracking statement specificity."""
    confidence = 3 + min(len(names), 3)
    if numbers_in(sentence):
        confidence += 2
    if len(sentence.split()) >= 12:
        confidence += 1
    if _HEDGES.search(sentence):
        confidence -= 2
    importance = 4 + min(len(names), 3)
    return max(1, min(10, importance)), max(1, min(10, confidence))


def _extract(text: str, source_id: str | None) -> list[FactDraft]:
    drafts: list[FactDraft] = []
    seen: set[str] = set()

    for raw in _SENTENCE_SPLIT.split(text.strip()):
        sentence = " ".join(raw.split())
        word_count = len(sentence.split())
        if not (MIN_WORDS <= word_count <= MAX_WORDS):
            continue
        # Dialogue and questions are claims by characters, not established truth
        if sentence.endswith("?") or any(q in sentence for q in ('"', "“", "”")):
            continue
        if not _STATE_VERB.search(sentence):
            continue

        names = _proper_nouns(sentence)
        category, cue = _categorize(sentence, names)
        if category is None:
            continue

        key = normalize_content(sentence)
        if key in seen:
            continue
        seen.add(key)

        importance, confidence = _score(sentence, names)
        tags = {name.lower() for name in names}
        if cue and category != FactCategory.HISTORY:
            tags.add(cue)

        drafts.append(FactDraft(
            content=sentence,
            category=category,
            importance=importance,
            confidence=confidence,
            tags=tags,
            source_id=source_id,
        ))

    return drafts


def extract_facts(text: Any, source_id: str | None = None) -> list[FactDraft]:
    """Heuristic fact drafts from narrative text.

    Deterministic: the same text always yields the same drafts. Returns
    an empty list for anything that isn't usable text.
    """
    if not isinstance(text, str) or not text.strip():
        return []
    try:
        drafts = _extract(text, source_id)
    except (ValueError, TypeError, re.error) as e:
        logger.warning(f"Fact extraction failed, returning no drafts: {e}")
        return []
    logger.debug(f"Extracted {len(drafts)} fact drafts from {len(text)} chars")
    return drafts


# ── Structured lore block ──────────────────────────────────────────────

def _clamp_rating(value: Any, default: int = 5) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number <= 0:
        return default
    return min(10, number)


def _coerce_category(value: Any) -> FactCategory:
    try:
        return FactCategory(str(value).lower())
    except ValueError:
        return FactCategory.CONCEPT


def _related_ids(value: Any) -> set[str]:
    if not value:
        return set()
    if isinstance(value, str):
        return {value}
    if not isinstance(value, (list, tuple, set)):
        raise TypeError(f"related fact ids must be a list, got {type(value).__name__}")
    return {str(v) for v in value}


def _load_payload(payload: Any) -> dict | None:
    if isinstance(payload, dict):
        return payload
    if not isinstance(payload, str):
        return None
    match = re.search(r"\{.*\}", payload, re.DOTALL)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_lore_block(payload: Any) -> LoreExtractionResult:
    """Parse a model response (dict or JSON text) carrying a `lore` block.

    Accepts either the whole response (`{"narration": ..., "lore": {...}}`)
    or the bare block. Unknown categories become `concept`; missing
    ratings default to 5. Malformed input yields an empty result.
    """
    data = _load_payload(payload)
    if data is None:
        return LoreExtractionResult()

    block = data.get("lore", data)
    if not isinstance(block, dict):
        logger.warning("Invalid lore block in model response")
        return LoreExtractionResult()

    raw_new = block.get("new_facts", block.get("newFacts")) or []
    raw_updated = block.get("updated_facts", block.get("updatedFacts")) or []
    if not isinstance(raw_new, list) or not isinstance(raw_updated, list):
        logger.warning("Invalid lore block in model response")
        return LoreExtractionResult()

    new_facts = []
    for item in raw_new:
        if not isinstance(item, dict) or not str(item.get("content", "")).strip():
            continue
        try:
            new_facts.append(FactDraft(
                content=str(item["content"]).strip(),
                category=_coerce_category(item.get("category")),
                importance=_clamp_rating(item.get("importance")),
                confidence=_clamp_rating(item.get("confidence")),
                tags=item.get("tags") or [],
                related_fact_ids=_related_ids(item.get("related_fact_ids", item.get("relatedFactIds"))),
            ))
        except (TypeError, PydanticValidationError) as e:
            logger.warning(f"Skipping malformed lore fact: {e}")

    updated_facts = []
    for item in raw_updated:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        try:
            updated_facts.append(FactUpdate(
                id=str(item["id"]),
                content=item.get("content") or None,
                importance=_clamp_rating(item["importance"]) if item.get("importance") else None,
                confidence=_clamp_rating(item["confidence"]) if item.get("confidence") else None,
            ))
        except (TypeError, PydanticValidationError) as e:
            logger.warning(f"Skipping malformed lore update for {item['id']}: {e}")

    return LoreExtractionResult(new_facts=new_facts, updated_facts=updated_facts)


def build_lore_extraction_prompt() -> str:
    """Instructions appended to a narration prompt so the model emits a lore block."""
    return """
Additionally, report world facts established by your response in a "lore" field:

"lore": {
  "new_facts": [
    {
      "category": "character|location|history|item|concept",
      "content": "Factual statement about the world",
      "importance": 1-10 (how central this fact is to the world/story),
      "confidence": 1-10 (how definitively it is established),
      "tags": ["keyword", "keyword"]
    }
  ],
  "updated_facts": [
    {"id": "fact_12", "content": "Revised statement", "importance": 1-10, "confidence": 1-10}
  ]
}

Guidelines:
- Report 1-3 key facts, objective statements only
- Characters: role, relationships, background
- Locations: purpose, history, notable features
- History: significant events that shaped the world
- Items: properties, owner, significance
- Concepts: customs, laws, abstract ideas
"""
