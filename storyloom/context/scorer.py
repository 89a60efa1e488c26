"""
Relevance scoring for context elements.

    score = importance
          + max(0, 10 - ln(age_hours + 1))
          + 3 if element.location == situation.current_location
          + |element.characters ∩ situation.active_characters|
          + 2 * |element.tags ∩ situation.recent_topics|

All comparisons are case-insensitive. Scores are recomputed on every
call; nothing is cached across situations.
"""

import logging
import math
from typing import Iterable

from .models import ContextElement, ScoredElement, Situation

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000
LOCATION_BONUS = 3.0
TOPIC_WEIGHT = 2.0


def _fold(values: Iterable[str]) -> set[str]:
    return {v.strip().lower() for v in values if v and v.strip()}


def recency_bonus(timestamp_ms: int, now_ms: int) -> float:
    """10 - ln(age_hours + 1), floored at 0. Future timestamps count as age 0."""
    age_hours = max(0, now_ms - timestamp_ms) / MS_PER_HOUR
    return max(0.0, 10.0 - math.log(age_hours + 1))


def score_element(element: ContextElement, situation: Situation) -> float:
    score = float(element.importance)
    score += recency_bonus(element.timestamp_ms, situation.now_ms)

    if (
        element.location
        and situation.current_location
        and element.location.strip().lower() == situation.current_location.strip().lower()
    ):
        score += LOCATION_BONUS

    score += len(_fold(element.characters) & _fold(situation.active_characters))
    score += TOPIC_WEIGHT * len(_fold(element.tags) & _fold(situation.recent_topics))
    return score


def rank_key(scored: ScoredElement) -> tuple:
    """Score desc, then newer first, then id asc."""
    return (-scored.score, -scored.element.timestamp_ms, scored.element.id)


class ContextScorer:
    """Scores and orders candidate elements against a situation."""

    def score(self, element: ContextElement, situation: Situation) -> float:
        return score_element(element, situation)

    def rank(self, elements: Iterable[ContextElement], situation: Situation) -> list[ScoredElement]:
        scored = [ScoredElement(element=e, score=self.score(e, situation)) for e in elements]
        scored.sort(key=rank_key)
        if logger.isEnabledFor(logging.DEBUG):
            for s in scored[:10]:
                logger.debug(f"  {s.element.id} [{s.element.type}] score={s.score:.2f}")
        return scored
