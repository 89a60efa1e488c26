"""
Context Assembler - builds the context payload for a model call.

Selection is greedy over the scorer's ordering and stops at the first
element that does not fit the token budget; it never skips ahead to a
smaller element. The budget counts element content only, not the
section headers added by formatting.

Raw narrative history that alone exceeds the budget is summarized
through the Summarizer (bounded by summary_timeout_s). If that fails,
the oldest entries are dropped instead; the most recent entry is
always kept, clipped to its tail if it is itself oversize. History entries
may first be run through rule-based compression (history_compression).
"""

import asyncio
import logging
from typing import Iterable

from ..enums import CompressionLevel, ContextElementType, ExternalErrorKind
from ..errors import ExternalServiceError, ValidationError
from ..llm.client import Summarizer
from .compression import WORDS_PER_TOKEN, TokenEstimator, compress_text, estimate_tokens, truncate_to_tokens
from .models import AssembledContext, ContextElement, Situation
from .scorer import ContextScorer

logger = logging.getLogger(__name__)

HISTORY_ELEMENT_ID = "history"
HISTORY_IMPORTANCE = 10

SECTION_HEADERS: list[tuple[ContextElementType, str]] = [
    (ContextElementType.STORY_POINT, "## Story So Far"),
    (ContextElementType.LORE, "## Established World Facts"),
    (ContextElementType.DECISION, "## Past Decisions"),
    (ContextElementType.VARIABLE, "## Current State"),
]


def format_context(elements: list[ContextElement]) -> str:
    """Group accepted elements under one header per type, keeping rank order."""
    sections = []
    for element_type, header in SECTION_HEADERS:
        lines = [f"- {e.content}" for e in elements if e.type == element_type]
        if lines:
            sections.append(header + "\n" + "\n".join(lines))
    return "\n\n".join(sections)


class ContextAssembler:
    """Scores candidates and packs them under a token budget."""

    def __init__(
        self,
        scorer: ContextScorer | None = None,
        summarizer: Summarizer | None = None,
        token_estimator: TokenEstimator = estimate_tokens,
        summary_timeout_s: float = 10.0,
        history_compression: CompressionLevel = CompressionLevel.NONE,
    ):
        self.scorer = scorer or ContextScorer()
        self.summarizer = summarizer
        self.estimate = token_estimator
        self.summary_timeout_s = summary_timeout_s
        self.history_compression = CompressionLevel(history_compression)

    async def assemble(
        self,
        candidates: Iterable[ContextElement],
        situation: Situation,
        token_budget: int,
        history: list[str] | None = None,
    ) -> AssembledContext:
        """Select and format the highest-ranked elements that fit the budget.

        Args:
            candidates: Pool of elements to choose from.
            situation: Current location, characters and topics to score against.
            token_budget: Cap on the summed token estimate of accepted elements.
            history: Raw narrative entries, oldest first. Becomes one
                story_point element (summarized or truncated when oversize).
        """
        if token_budget <= 0:
            raise ValidationError(f"token_budget must be positive, got {token_budget}")

        pool = list(candidates)
        summarized = truncated = False
        if history:
            history_element, summarized, truncated = await self._history_element(
                history, situation, token_budget
            )
            if history_element is not None:
                pool.append(history_element)

        accepted: list[ContextElement] = []
        used = 0
        for scored in self.scorer.rank(pool, situation):
            cost = self.estimate(scored.element.content)
            if used + cost > token_budget:
                logger.debug(
                    f"Budget stop at {scored.element.id}: {used}+{cost} > {token_budget}"
                )
                break
            accepted.append(scored.element)
            used += cost

        logger.debug(f"Assembled {len(accepted)}/{len(pool)} elements, {used}/{token_budget} tokens")
        return AssembledContext(
            text=format_context(accepted),
            included_ids=[e.id for e in accepted],
            token_estimate=used,
            summarized=summarized,
            truncated=truncated,
        )

    # ── History ─────────────────────────────────────────────────────

    def _history_as_element(self, text: str, situation: Situation) -> ContextElement:
        return ContextElement(
            id=HISTORY_ELEMENT_ID,
            type=ContextElementType.STORY_POINT,
            content=text,
            importance=HISTORY_IMPORTANCE,
            timestamp_ms=situation.now_ms,
            location=situation.current_location,
        )

    async def _history_element(
        self,
        history: list[str],
        situation: Situation,
        token_budget: int,
    ) -> tuple[ContextElement | None, bool, bool]:
        entries = [compress_text(h.strip(), self.history_compression) for h in history if h and h.strip()]
        entries = [e for e in entries if e]
        if not entries:
            return None, False, False

        raw = "\n".join(entries)
        raw_tokens = self.estimate(raw)
        if raw_tokens <= token_budget:
            return self._history_as_element(raw, situation), False, False

        logger.info(f"History is {raw_tokens} tokens (budget {token_budget}), summarizing")
        summary = await self._summarize(raw, token_budget)
        if summary is not None:
            return self._history_as_element(summary, situation), True, False

        kept = self._truncate(entries, token_budget)
        logger.warning(f"History hard-truncated: kept {len(kept)}/{len(entries)} most recent entries")
        return self._history_as_element("\n".join(kept), situation), False, True

    async def _summarize(self, raw: str, token_budget: int) -> str | None:
        if self.summarizer is None:
            logger.warning("No summarizer configured for oversize history")
            return None

        target_words = max(20, int(token_budget * WORDS_PER_TOKEN) // 2)
        try:
            summary = await asyncio.wait_for(
                self.summarizer.summarize(raw, target_words, self.summary_timeout_s),
                timeout=self.summary_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Summarizer {ExternalErrorKind.TIMEOUT} after {self.summary_timeout_s}s")
            return None
        except ExternalServiceError as e:
            logger.warning(f"Summarizer {e.kind}: {e}")
            return None

        summary = (summary or "").strip()
        if not summary:
            logger.warning(f"Summarizer {ExternalErrorKind.INVALID_RESPONSE}: empty summary")
            return None
        if self.estimate(summary) > token_budget:
            logger.warning(
                f"Summarizer {ExternalErrorKind.INVALID_RESPONSE}: summary still over budget "
                f"({self.estimate(summary)} > {token_budget})"
            )
            return None
        return summary

    def _truncate(self, entries: list[str], token_budget: int) -> list[str]:
        """Newest entries that fit, oldest dropped first; the newest always stays."""
        newest = truncate_to_tokens(entries[-1], token_budget, self.estimate)
        kept = [newest]
        used = self.estimate(newest)
        for entry in reversed(entries[:-1]):
            # Entries are joined with newlines, so each counts on its own
            cost = self.estimate(entry)
            if used + cost > token_budget:
                break
            kept.append(entry)
            used += cost
        kept.reverse()
        return kept
