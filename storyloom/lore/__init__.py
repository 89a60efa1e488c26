"""World facts: storage, conflict detection, extraction and prompt selection."""

from .extraction import build_lore_extraction_prompt, extract_facts, parse_lore_block
from .models import Fact, FactConflict, FactDraft, FactUpdate, FactVersion, IngestResult, LoreExtractionResult
from .store import FactStore

__all__ = [
    "FactStore", "Fact", "FactDraft", "FactConflict", "FactUpdate", "FactVersion",
    "IngestResult", "LoreExtractionResult",
    "extract_facts", "parse_lore_block", "build_lore_extraction_prompt",
]
