"""
Lore selection for narration prompts.

Unlike the ContextAssembler, lore selection skips facts that don't fit
and keeps trying smaller ones: world facts are independent of each
other, so packing more of them is preferred over strict ordering.
"""

import logging

from ..context.compression import estimate_tokens
from ..context.models import Situation
from ..enums import FactCategory
from .models import Fact
from .store import FactStore

logger = logging.getLogger(__name__)

MS_PER_DAY = 86_400_000
DEFAULT_HEADER = "Established World Facts:"


def fact_relevance(fact: Fact, situation: Situation) -> float:
    """Importance + recency + location/character/topic tag hits, scaled by confidence."""
    score = float(fact.importance)

    age_days = max(0, situation.now_ms - fact.created_at) / MS_PER_DAY
    score += max(0.0, 3 - age_days / 10)

    location = (situation.current_location or "").strip().lower()
    if location:
        if fact.category == FactCategory.LOCATION and location in fact.tags:
            score += 3
        if location in fact.tags:
            score += 1

    for character in situation.active_characters:
        name = character.strip().lower()
        if fact.category == FactCategory.CHARACTER and name in fact.tags:
            score += 3
        if name in fact.tags:
            score += 1

    for topic in situation.recent_topics:
        if topic.strip().lower() in fact.tags:
            score += 1

    # Confidence 1..10 scales the score by 0.6..1.5
    return score * (0.5 + fact.confidence / 10)


def select_lore(store: FactStore, situation: Situation, token_budget: int) -> list[Fact]:
    """Most relevant valid facts whose formatted lines fit the budget."""
    if token_budget <= 0:
        return []
    facts = store.all_facts()
    if not facts:
        return []

    ranked = sorted(facts, key=lambda f: (-fact_relevance(f, situation), f.id))
    selected, used = [], 0
    for fact in ranked:
        cost = estimate_tokens(_format_fact(fact))
        if used + cost > token_budget:
            continue
        selected.append(fact)
        used += cost
    logger.debug(f"Lore: {len(selected)}/{len(facts)} facts, {used}/{token_budget} tokens")
    return selected


def _format_fact(fact: Fact) -> str:
    return f"{fact.content} ({fact.category})"


def build_lore_context_prompt(
    store: FactStore,
    situation: Situation,
    token_budget: int = 500,
    header: str = DEFAULT_HEADER,
    concise: bool = False,
) -> str:
    """Lore section for a prompt; empty string when nothing qualifies."""
    facts = select_lore(store, situation, token_budget)
    if not facts:
        return ""
    store.mark_referenced([f.id for f in facts], situation.now_ms)

    if concise:
        return f"{header} " + " ".join(_format_fact(f) for f in facts)
    lines = "\n".join(_format_fact(f) for f in facts)
    return f"{header}\n{lines}\n\nPlease maintain consistency with these established facts in your response."


def lore_allocation_ratio(context_tokens: int) -> float:
    """Lore budget as a multiple of the existing context size."""
    if context_tokens < 50:
        return 8.0
    if context_tokens < 100:
        return 4.0
    if context_tokens < 500:
        return 1.0
    return 0.3


def extend_context_with_lore(context_text: str, store: FactStore, situation: Situation) -> str:
    """Append a concise lore section sized relative to the existing context."""
    if not store.all_facts():
        return context_text
    existing = estimate_tokens(context_text)
    budget = int(existing * lore_allocation_ratio(existing))
    section = build_lore_context_prompt(store, situation, token_budget=budget, concise=True)
    if not section:
        return context_text
    return f"{context_text}\n\n{section}"
