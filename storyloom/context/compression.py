"""
Token estimation and rule-based narrative compression.

Levels:
  none   - untouched
  low    - filler words dropped, whitespace normalized
  medium - low + verbose phrases shortened, decorative adverbs/adjectives dropped
  high   - medium + long sentences reduced to names, key verbs and objects
"""

import math
import re
from typing import Callable

from ..enums import CompressionLevel

TokenEstimator = Callable[[str], int]

WORDS_PER_TOKEN = 0.75


def estimate_tokens(text: str) -> int:
    """Rough token count: ceil(words / 0.75)."""
    if not text or not text.strip():
        return 0
    return math.ceil(len(text.split()) / WORDS_PER_TOKEN)


_FILLERS = re.compile(r"\bI think\b|\bperhaps\b|\bmaybe\b|\bin my opinion\b|\bvery\b|\breally\b|\bextremely\b|\bquite\b", re.I)

_VERBOSE_PHRASES: list[tuple[re.Pattern, str]] = [
    (re.compile(p, re.I), r) for p, r in [
        (r"\bin order to\b", "to"),
        (r"\bat this point in time\b", "now"),
        (r"\btake into consideration\b", "consider"),
        (r"\bon the grounds that\b", "because"),
        (r"\bin the event that\b", "if"),
        (r"\bin spite of the fact that\b", "although"),
        (r"\bat the present time\b", "now"),
        (r"\bdue to the fact that\b", "because"),
        (r"\bfor the purpose of\b", "for"),
        (r"\bin the vicinity of\b", "near"),
        (r"\bwith regard to\b", "about"),
    ]
]

_DECORATIVE = re.compile(
    r"\b(beautiful|gorgeous|amazing|wonderful|fantastic|lovely|magnificent|"
    r"slowly|quickly|suddenly|carefully|quietly|loudly)\b",
    re.I,
)

_KEY_VERBS = [
    re.compile(p, re.I) for p in (
        r"\b(killed|shot|attacked|fought|defeated|destroyed|conquered)\b",
        r"\b(discovered|found|revealed|uncovered|learned|realized)\b",
        r"\b(escaped|fled|ran|hid|evaded|avoided)\b",
        r"\b(said|told|asked|replied|shouted|whispered|demanded)\b",
        r"\b(took|grabbed|stole|acquired|obtained|received)\b",
        r"\b(gave|offered|provided|delivered|handed)\b",
        r"\b(went|traveled|rode|walked|entered|left|arrived)\b",
        r"\b(decided|chose|picked|selected|determined)\b",
    )
]

_KEY_OBJECTS = [
    re.compile(p, re.I) for p in (
        r"\b(gun|rifle|revolver|pistol|firearm|weapon|knife|blade)\b",
        r"\b(gold|money|cash|dollars|coin|treasure|loot)\b",
        r"\b(horse|steed|mare|stallion|pony|mount)\b",
        r"\b(sheriff|deputy|marshal|lawman|badge|star)\b",
        r"\b(bandit|outlaw|criminal|gunslinger|desperado)\b",
        r"\b(saloon|bank|jail|prison|cell|town|ranch|farm)\b",
        r"\b(map|letter|document|note|message|telegram)\b",
    )
]

_ARTICLES = re.compile(r"\b(a|an|the)\b", re.I)
_PREPOSITIONS = re.compile(r"\b(of|for|with|by|at|from|to|in|on|under|over)\b", re.I)


def _squash(text: str) -> str:
    text = re.sub(r"\s+([,.?!])", r"\1", text)
    return re.sub(r"\s+", " ", text).strip()


def _compress_low(text: str) -> str:
    return _squash(_FILLERS.sub("", text))


def _compress_medium(text: str) -> str:
    result = _compress_low(text)
    for pattern, replacement in _VERBOSE_PHRASES:
        result = pattern.sub(replacement, result)
    return _squash(_DECORATIVE.sub("", result))


def _compress_sentence(sentence: str) -> str:
    if len(sentence.split()) <= 8:
        return sentence
    key = re.findall(r"\b[A-Z][a-z]+\b", sentence)
    for pattern in _KEY_VERBS + _KEY_OBJECTS:
        match = pattern.search(sentence)
        if match:
            key.append(match.group(0))
    if len(key) >= 4:
        return " ".join(key)
    return _squash(_PREPOSITIONS.sub("", _ARTICLES.sub("", sentence)))


def _compress_high(text: str) -> str:
    sentences = re.split(r"(?<=[.!?])\s+", _compress_medium(text))
    return " ".join(_compress_sentence(s) for s in sentences if s)


def compress_text(text: str, level: CompressionLevel | str = CompressionLevel.NONE) -> str:
    level = CompressionLevel(level)
    if not text or level == CompressionLevel.NONE:
        return text
    if level == CompressionLevel.LOW:
        return _compress_low(text)
    if level == CompressionLevel.MEDIUM:
        return _compress_medium(text)
    return _compress_high(text)


def truncate_to_tokens(text: str, token_budget: int, estimator: TokenEstimator = estimate_tokens) -> str:
    """Keep the tail of `text` that fits the budget (recent words matter most)."""
    if estimator(text) <= token_budget:
        return text
    words = text.split()
    lo, hi = 0, len(words)
    # Smallest cut index whose tail fits
    while lo < hi:
        mid = (lo + hi) // 2
        if estimator(" ".join(words[mid:])) <= token_budget:
            hi = mid
        else:
            lo = mid + 1
    return " ".join(words[lo:])
