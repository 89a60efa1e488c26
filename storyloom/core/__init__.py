"""Session wiring for the narrative engine."""

from .session import NarrativeSession

__all__ = ["NarrativeSession"]
