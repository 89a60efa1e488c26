"""Context optimization: score narrative elements and pack them under a token budget."""

from .assembler import ContextAssembler, format_context
from .models import AssembledContext, ContextElement, ScoredElement, Situation
from .scorer import ContextScorer, score_element

__all__ = [
    "ContextAssembler", "ContextScorer", "format_context", "score_element",
    "AssembledContext", "ContextElement", "ScoredElement", "Situation",
]
