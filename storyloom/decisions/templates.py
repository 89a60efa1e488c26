"""
Decision template library.

Templates are loaded from YAML (templates.yaml next to this module by
default) and keyed by SituationType. Selection has no external
dependency and always yields a decision with at least two options.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import Iterable

import yaml
from pydantic import BaseModel, Field

from ..enums import DecisionImportance, DecisionSource, SituationType
from .models import Decision, DecisionOption, GameStateSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_PATH = Path(__file__).parent / "templates.yaml"

_ACTION_HINT = re.compile(r"\b(gun\w*|draws?|drew|shot|shoot\w*|fight\w*|brawl\w*|threat\w*|ambush\w*|attack\w*)\b", re.I)
_DIALOGUE_HINT = re.compile(r"[\"“”]|\b(said|asked|replied|says|asks)\b", re.I)


class TemplateOption(BaseModel):
    id: str
    text: str
    impact: str = ""
    tags: list[str] = Field(default_factory=list)


class DecisionTemplate(BaseModel):
    """A canned decision for one situation type."""
    id: str
    situation_type: SituationType
    prompt: str
    importance: DecisionImportance = DecisionImportance.MODERATE
    location_keywords: list[str] = Field(default_factory=list)
    options: list[TemplateOption] = Field(min_length=2)


def classify_situation(game_state: GameStateSnapshot, narrative_text: str = "") -> SituationType:
    """Pick the template key for the current moment."""
    text = narrative_text or game_state.recent_narrative
    if game_state.combat_active or _ACTION_HINT.search(text):
        return SituationType.COMBAT_ADJACENT
    if game_state.location_changed:
        return SituationType.LOCATION_ENTRY
    if _DIALOGUE_HINT.search(text) or game_state.active_characters:
        return SituationType.SOCIAL
    return SituationType.GENERIC


class TemplateLibrary:
    """Loads templates and turns them into Decisions."""

    def __init__(self, templates: Iterable[DecisionTemplate] | None = None, path: Path | None = None):
        if templates is None:
            templates = self._load_yaml_file(path or DEFAULT_TEMPLATE_PATH)
        self._by_type: dict[SituationType, list[DecisionTemplate]] = {t: [] for t in SituationType}
        for template in templates:
            self._by_type[template.situation_type].append(template)
        if not self._by_type[SituationType.GENERIC]:
            raise ValueError("Template library needs at least one generic template")
        logger.debug(f"Loaded {sum(len(v) for v in self._by_type.values())} decision templates")

    @staticmethod
    def _load_yaml_file(file_path: Path) -> list[DecisionTemplate]:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or []
        if not isinstance(data, list):
            raise ValueError(f"{file_path}: expected a list of templates")
        return [DecisionTemplate.model_validate(item) for item in data]

    def templates_for(self, situation_type: SituationType) -> list[DecisionTemplate]:
        return list(self._by_type[situation_type])

    def select(
        self,
        situation_type: SituationType,
        location: str | None = None,
        recent_prompts: Iterable[str] = (),
    ) -> DecisionTemplate:
        """Choose a template deterministically.

        Location-keyword matches come first, then the rest of the type in
        file order; prompts already presented recently are skipped when
        something else is available. Empty types fall back to generic.
        """
        pool = self._by_type[situation_type] or self._by_type[SituationType.GENERIC]
        loc = (location or "").lower()
        matched = [t for t in pool if loc and any(k.lower() in loc for k in t.location_keywords)]
        # Keyword templates only fit their own locations
        unkeyed = [t for t in pool if not t.location_keywords]
        ordered = matched + unkeyed or pool

        seen = {p.strip().lower() for p in recent_prompts}
        for template in ordered:
            if template.prompt.strip().lower() not in seen:
                return template
        return ordered[0]

    def instantiate(
        self,
        template: DecisionTemplate,
        game_state: GameStateSnapshot,
        now_ms: int,
        context: str = "",
    ) -> Decision:
        decision_id = f"decision_{uuid.uuid4().hex[:12]}"
        return Decision(
            id=decision_id,
            prompt=template.prompt,
            options=[
                DecisionOption(id=opt.id, text=opt.text, impact=opt.impact, tags=list(opt.tags))
                for opt in template.options
            ],
            context=context or f"Template: {template.id}",
            importance=template.importance,
            characters=list(game_state.active_characters),
            location=game_state.current_location,
            ai_generated=False,
            timestamp_ms=now_ms,
            source=DecisionSource.TEMPLATE,
        )

    def fallback_decision(
        self,
        game_state: GameStateSnapshot,
        now_ms: int,
        narrative_text: str = "",
        recent_prompts: Iterable[str] = (),
    ) -> Decision:
        """classify + select + instantiate. Cannot fail."""
        situation_type = classify_situation(game_state, narrative_text)
        template = self.select(situation_type, game_state.current_location, recent_prompts)
        logger.info(f"Template decision '{template.id}' for {situation_type}")
        return self.instantiate(template, game_state, now_ms)
