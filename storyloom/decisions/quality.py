"""
Quality Gate - accept or reject a decision before it is shown.

Hard checks (any failure means passed=False):
  - prompt length within [MIN_PROMPT_WORDS, MAX_PROMPT_WORDS]
  - option count within [min_options, max_options_per_decision]
  - every option has text
  - no duplicate or near-duplicate options (word Jaccard >= 0.8)
  - with context supplied, at least one shared keyword

`score` is a softer weighted rating kept for logs and tuning; it never
decides on its own.
"""

import logging
from itertools import combinations

from ..lore.conflicts import keywords
from ..settings import EngineSettings
from .models import Decision, QualityReport

logger = logging.getLogger(__name__)

MIN_PROMPT_WORDS = 3
MAX_PROMPT_WORDS = 60
NEAR_DUPLICATE_JACCARD = 0.8
MIN_CONTEXT_KEYWORDS = 3

# Soft score weights
BASE_SCORE = 0.9
SHORT_PROMPT_PENALTY = 0.3
FEW_OPTIONS_PENALTY = 0.3
MANY_OPTIONS_PENALTY = 0.1
SHORT_OPTION_PENALTY = 0.05
SHORT_IMPACT_PENALTY = 0.05
MISSING_TAGS_PENALTY = 0.03
DUPLICATE_OPTIONS_PENALTY = 0.2
SIMILAR_OPTIONS_PENALTY = 0.1
RELEVANCE_WEIGHT = 0.2
SIMILAR_DISTINCTIVENESS = 0.6


def word_count(text: str) -> int:
    return len(text.split()) if text and text.strip() else 0


def jaccard(a: str, b: str) -> float:
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    union = words_a | words_b
    return len(words_a & words_b) / len(union) if union else 0.0


def _decision_keywords(decision: Decision) -> set[str]:
    parts = [decision.prompt, decision.location or "", *decision.characters]
    for option in decision.options:
        parts.extend([option.text, option.impact, *option.tags])
    return keywords(" ".join(parts))


class QualityGate:
    """Completeness, diversity and relevance checks for a Decision."""

    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()

    def assess(self, decision: Decision, context_text: str | None = None) -> QualityReport:
        issues: list[str] = []
        penalty = 0.0
        min_options = self.settings.min_options
        max_options = self.settings.max_options_per_decision

        prompt_words = word_count(decision.prompt)
        if prompt_words < MIN_PROMPT_WORDS:
            issues.append(f"Prompt too short ({prompt_words} words, need {MIN_PROMPT_WORDS})")
            penalty += SHORT_PROMPT_PENALTY
        elif prompt_words > MAX_PROMPT_WORDS:
            issues.append(f"Prompt too long ({prompt_words} words, max {MAX_PROMPT_WORDS})")
            penalty += SHORT_PROMPT_PENALTY

        count = len(decision.options)
        if count < min_options:
            issues.append(f"Too few options ({count}, need at least {min_options})")
            penalty += FEW_OPTIONS_PENALTY
        elif count > max_options:
            issues.append(f"Too many options ({count}, max {max_options})")
            penalty += MANY_OPTIONS_PENALTY

        for index, option in enumerate(decision.options, start=1):
            if not option.text or not option.text.strip():
                issues.append(f"Option {index} has no text")
                penalty += SHORT_OPTION_PENALTY
                continue
            if word_count(option.text) < 2:
                penalty += SHORT_OPTION_PENALTY
            if word_count(option.impact) < 3:
                penalty += SHORT_IMPACT_PENALTY
            if not option.tags:
                penalty += MISSING_TAGS_PENALTY

        texts = [o.text.strip() for o in decision.options if o.text and o.text.strip()]
        similarities = [jaccard(a, b) for a, b in combinations(texts, 2)]
        if len({t.lower() for t in texts}) < len(texts):
            issues.append("Duplicate option text")
            penalty += DUPLICATE_OPTIONS_PENALTY
        elif any(s >= NEAR_DUPLICATE_JACCARD for s in similarities):
            issues.append("Near-duplicate options")
            penalty += DUPLICATE_OPTIONS_PENALTY
        elif similarities and 1 - sum(similarities) / len(similarities) < SIMILAR_DISTINCTIVENESS:
            penalty += SIMILAR_OPTIONS_PENALTY

        relevance = 0.5
        if context_text:
            context_words = keywords(context_text)
            if len(context_words) >= MIN_CONTEXT_KEYWORDS:
                shared = _decision_keywords(decision) & context_words
                if not shared:
                    issues.append("Decision shares no keywords with the current context")
                    relevance = 0.0
                else:
                    relevance = 0.5 + 0.5 * min(1.0, len(shared) / 3)

        score = max(0.0, BASE_SCORE - penalty) * (1 - RELEVANCE_WEIGHT) + relevance * RELEVANCE_WEIGHT
        score = round(max(0.0, min(1.0, score)), 3)
        report = QualityReport(passed=not issues, issues=issues, score=score)
        logger.debug(f"Quality {decision.id}: passed={report.passed} score={score} issues={issues}")
        return report
