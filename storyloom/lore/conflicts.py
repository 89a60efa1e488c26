"""
Contradiction heuristics between world facts.

Pure functions over fact text; no store access. A candidate is only
compared against a fact of the same category that is "about the same
thing" (shared tag, or at least half of the smaller keyword set in
common). Identical statements are duplicates. Everything else is a
contradiction only when one of these fires:

  - exclusive states: a character alive vs dead, a location open vs
    closed vs destroyed
  - item ownership: two different owners named for the same item
  - negation flip: one side says "not"/"never", the other doesn't
  - numeric mismatch: both sides carry numbers (counts, years) and
    they differ
"""

import re

from ..enums import ConflictKind, FactCategory
from .models import FactConflict

_WORD_RE = re.compile(r"[a-z0-9]+(?:'[a-z]+)?")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

_STOPWORDS = frozenset({
    "the", "and", "for", "with", "from", "that", "this", "there", "their", "they",
    "was", "were", "are", "has", "have", "had", "his", "her", "its", "him", "she",
    "who", "whom", "which", "into", "onto", "over", "under", "than", "then", "been",
    "being", "will", "would", "could", "should", "also", "only", "just", "now",
    "still", "very", "some", "any", "all", "each", "one", "out", "about", "after",
    "before", "where", "when", "what", "while", "because", "upon", "there's",
})

_NEGATIONS = frozenset({
    "not", "never", "no", "none", "nobody", "nothing", "neither", "nor", "cannot",
    "isn't", "wasn't", "aren't", "weren't", "doesn't", "didn't", "don't", "won't",
    "can't", "hasn't", "haven't", "hadn't", "couldn't", "wouldn't",
})

_NUMBER_WORDS = {
    "two": "2", "three": "3", "four": "4", "five": "5", "six": "6", "seven": "7",
    "eight": "8", "nine": "9", "ten": "10", "eleven": "11", "twelve": "12",
    "twenty": "20", "fifty": "50", "hundred": "100", "thousand": "1000",
}

_EXCLUSIVE_STATES: dict[FactCategory, dict[str, frozenset[str]]] = {
    FactCategory.CHARACTER: {
        "alive": frozenset({"alive", "living", "lives", "survived", "survives"}),
        "dead": frozenset({"dead", "died", "killed", "murdered", "deceased", "hanged", "buried", "slain"}),
    },
    FactCategory.LOCATION: {
        "open": frozenset({"open", "opened", "reopened", "operating"}),
        "closed": frozenset({"closed", "shut", "boarded", "abandoned", "deserted"}),
        "destroyed": frozenset({"destroyed", "burned", "burnt", "razed", "ruined", "collapsed"}),
    },
}
_STATE_WORDS = frozenset(w for states in _EXCLUSIVE_STATES.values() for ws in states.values() for w in ws)

_OWNER_RE = re.compile(
    r"(?i:owned by|belongs to|belonged to|carried by|held by|property of|in the possession of)"
    r"\s+(?:(?i:the)\s+)?([A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)*)"
)
_POSSESSIVE_RE = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)'s\b")
_PRONOUNS = frozenset({"it", "that", "there", "he", "she", "what", "who", "here", "let", "where"})

SUBJECT_OVERLAP = 0.5


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens; curly apostrophes folded, possessive 's dropped."""
    text = text.lower().replace("’", "'")
    words = _WORD_RE.findall(text)
    return [w[:-2] if w.endswith("'s") else w for w in words]


def normalize_content(text: str) -> str:
    """Case/punctuation/whitespace-insensitive form used for duplicate checks."""
    return " ".join(tokenize(text))


def keywords(text: str) -> set[str]:
    """Content words: no stopwords, negations, numbers or short words."""
    return {
        w for w in tokenize(text)
        if len(w) >= 3 and w not in _STOPWORDS and w not in _NEGATIONS and not w.isdigit()
    }


def keyword_overlap(a: set[str], b: set[str]) -> float:
    """Shared share of the smaller keyword set (0.0 when either is empty)."""
    if not a or not b:
        return 0.0
    return len(a & b) / min(len(a), len(b))


def has_negation(text: str) -> bool:
    return any(w in _NEGATIONS for w in tokenize(text))


def numbers_in(text: str) -> set[str]:
    """Digits (thousands separators removed) plus common number words."""
    found = set(_NUMBER_RE.findall(re.sub(r"(?<=\d),(?=\d{3})", "", text)))
    found.update(_NUMBER_WORDS[w] for w in tokenize(text) if w in _NUMBER_WORDS)
    return found


def state_of(text: str, category: FactCategory) -> str | None:
    """Mutually exclusive state asserted by the text, if exactly one is."""
    states = _EXCLUSIVE_STATES.get(category)
    if not states or has_negation(text):
        return None
    words = set(tokenize(text))
    hits = [name for name, vocab in states.items() if words & vocab]
    return hits[0] if len(hits) == 1 else None


def owner_of(text: str) -> str | None:
    """Named owner of an item ("belongs to Jake", "Jake's revolver")."""
    match = _OWNER_RE.search(text) or _POSSESSIVE_RE.search(text)
    if not match:
        return None
    owner = normalize_content(match.group(1))
    if owner.startswith("the "):
        owner = owner[4:]
    if owner in _PRONOUNS:
        return None
    return owner


def _subject_keywords(text: str) -> set[str]:
    return keywords(text) - _STATE_WORDS


def is_comparable(
    candidate_content: str,
    candidate_tags: set[str],
    existing_content: str,
    existing_tags: set[str],
) -> bool:
    """Two same-category facts talk about the same subject."""
    if candidate_tags & existing_tags:
        return True
    overlap = keyword_overlap(_subject_keywords(candidate_content), _subject_keywords(existing_content))
    return overlap >= SUBJECT_OVERLAP


def find_conflict(
    candidate_content: str,
    candidate_category: FactCategory,
    candidate_tags: set[str],
    candidate_confidence: int,
    existing,
) -> FactConflict | None:
    """Compare one candidate statement with one existing Fact."""
    if candidate_category != existing.category:
        return None

    if normalize_content(candidate_content) == normalize_content(existing.content):
        if candidate_confidence == existing.confidence:
            return FactConflict(
                existing_fact_id=existing.id,
                reason="identical content",
                kind=ConflictKind.DUPLICATE,
            )
        return FactConflict(
            existing_fact_id=existing.id,
            reason=(
                f"identical content asserted with confidence "
                f"{candidate_confidence} vs {existing.confidence}"
            ),
            kind=ConflictKind.CONTRADICTION,
        )

    if not is_comparable(candidate_content, candidate_tags, existing.content, existing.tags):
        return None

    reason = _contradiction_reason(candidate_content, candidate_category, existing.content)
    if reason is None:
        return None
    return FactConflict(
        existing_fact_id=existing.id,
        reason=reason,
        kind=ConflictKind.CONTRADICTION,
    )


def _contradiction_reason(candidate: str, category: FactCategory, existing: str) -> str | None:
    new_state = state_of(candidate, category)
    old_state = state_of(existing, category)
    if new_state and old_state and new_state != old_state:
        return f"{category} state mismatch: {new_state} vs {old_state}"

    if category == FactCategory.ITEM:
        new_owner = owner_of(candidate)
        old_owner = owner_of(existing)
        if new_owner and old_owner and new_owner != old_owner:
            return f"item owner mismatch: {new_owner} vs {old_owner}"

    subject_overlap = keyword_overlap(_subject_keywords(candidate), _subject_keywords(existing))
    if subject_overlap < SUBJECT_OVERLAP:
        return None

    if has_negation(candidate) != has_negation(existing):
        return "negation flip"

    new_numbers = numbers_in(candidate)
    old_numbers = numbers_in(existing)
    if new_numbers and old_numbers and new_numbers != old_numbers:
        return (
            f"numeric mismatch: {', '.join(sorted(new_numbers))} "
            f"vs {', '.join(sorted(old_numbers))}"
        )

    return None
