"""Decision prompt construction and model-response parsing."""

import json
import logging
import re
import uuid

from ..enums import DecisionImportance, DecisionSource, ExternalErrorKind
from ..errors import ExternalServiceError
from ..settings import EngineSettings
from .models import Decision, DecisionOption, DecisionRecord, GenerationRequest

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

RESPONSE_SCHEMA = """{
  "prompt": "The question put to the player",
  "options": [
    {"text": "What the player does", "impact": "Likely consequence", "tags": ["keyword"]}
  ],
  "context": "One sentence on why this choice matters now",
  "importance": "minor|moderate|significant"
}"""


def _format_history(records: list[DecisionRecord]) -> str:
    lines = []
    for i, record in enumerate(records, start=1):
        lines.append(f"{i}. Prompt: {record.prompt or record.decision_id}")
        lines.append(f"   Choice: {record.option_text or record.selected_option_id}")
        if record.narrative_outcome:
            lines.append(f"   Outcome: {record.narrative_outcome}")
    return "\n".join(lines)


def build_decision_prompt(request: GenerationRequest, settings: EngineSettings) -> str:
    """Prompt asking the model for one decision as JSON."""
    state = request.game_state
    sections = ["Create a meaningful decision for the player character at this moment in the story."]

    situation = []
    if state.current_location:
        arrived = " (just arrived)" if state.location_changed else ""
        situation.append(f"Location: {state.current_location}{arrived}")
    if state.active_characters:
        situation.append(f"Characters present: {', '.join(state.active_characters)}")
    if state.character_traits:
        situation.append(f"Player character traits: {', '.join(state.character_traits)}")
    if situation:
        sections.append("## Situation\n" + "\n".join(situation))

    narrative = request.narrative_text or state.recent_narrative
    if narrative:
        sections.append(f"## Recent Narrative\n{narrative.strip()}")

    if request.context_text:
        sections.append(f"## Context\n{request.context_text.strip()}")

    window = request.history[-settings.history_window:] if settings.history_window else []
    if window:
        sections.append(
            "## Previous Decisions\n"
            + _format_history(window)
            + "\nDo not repeat these choices; build on their consequences."
        )

    sections.append(
        "## Response Format\n"
        f"Respond with a single JSON object, no other text:\n{RESPONSE_SCHEMA}\n"
        f"Give between {settings.min_options} and {settings.max_options_per_decision} options. "
        "Options must be clearly different from each other and fit the character's traits."
    )
    return "\n\n".join(sections)


def parse_decision_response(
    response_text: str,
    settings: EngineSettings,
    now_ms: int,
    location: str | None = None,
    characters: list[str] | None = None,
) -> Decision:
    """Turn raw model output into a Decision.

    Raises:
        ExternalServiceError(INVALID_RESPONSE): no JSON object, bad JSON,
            or missing prompt/options.
    """
    match = _JSON_OBJECT.search(response_text or "")
    if not match:
        raise ExternalServiceError(ExternalErrorKind.INVALID_RESPONSE, "no JSON object in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ExternalServiceError(ExternalErrorKind.INVALID_RESPONSE, f"bad JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExternalServiceError(ExternalErrorKind.INVALID_RESPONSE, "response JSON is not an object")
    prompt = data.get("prompt")
    raw_options = data.get("options")
    if not isinstance(prompt, str) or not prompt.strip() or not isinstance(raw_options, list) or not raw_options:
        raise ExternalServiceError(ExternalErrorKind.INVALID_RESPONSE, "missing prompt or options")

    decision_id = f"decision_{uuid.uuid4().hex[:12]}"
    options = []
    for index, raw in enumerate(raw_options[:settings.max_options_per_decision]):
        if isinstance(raw, str):
            raw = {"text": raw}
        if not isinstance(raw, dict):
            continue
        tags = raw.get("tags") or []
        options.append(DecisionOption(
            id=f"{decision_id}_opt{index}",
            text=str(raw.get("text") or "").strip(),
            impact=str(raw.get("impact") or "Impact unknown").strip(),
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
        ))

    try:
        importance = DecisionImportance(str(data.get("importance", "moderate")).lower())
    except ValueError:
        importance = DecisionImportance.MODERATE

    return Decision(
        id=decision_id,
        prompt=prompt.strip(),
        options=options,
        context=str(data.get("context") or "A decision point has been reached."),
        importance=importance,
        characters=list(characters or []),
        location=location,
        ai_generated=True,
        timestamp_ms=now_ms,
        source=DecisionSource.MODEL,
    )
