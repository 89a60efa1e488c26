"""
Decision Detector - is this a good moment to offer the player a choice?

Score = base 0.4 plus these factors, clamped to [0, 1]:

    dialogue markers             +0.15   (+0.05 more for questions)
    action/violence verbs        -0.20   (+0.10 back if the action concludes)
    explicit decision phrasing   +0.25
    story decision-point flag    +0.30
    location just changed        +0.20
    time since last decision     up to +0.25, linear to 5 x min interval
    combat active                -0.60, and the score is capped at 0.10

min_decision_interval_ms gates presentation outright unless the caller
forces generation.
"""

import logging
import re

from ..settings import EngineSettings
from .models import DetectionResult, GameStateSnapshot

logger = logging.getLogger(__name__)

BASE_SCORE = 0.4
DIALOGUE_BONUS = 0.15
QUESTION_BONUS = 0.05
ACTION_PENALTY = -0.2
ACTION_CONCLUSION_BONUS = 0.1
EXPLICIT_DECISION_BONUS = 0.25
STORY_POINT_BONUS = 0.3
LOCATION_CHANGE_BONUS = 0.2
TIME_PRESSURE_MAX = 0.25
TIME_PRESSURE_INTERVALS = 5
COMBAT_PENALTY = -0.6
COMBAT_CAP = 0.1

_DIALOGUE = re.compile(r"[\"“”]|\b(said|says|asked|asks|replied|replies|shouted|whispered)\b", re.I)
_QUESTION = re.compile(r"\?|\b(what|where|when|why|who|how)\b", re.I)
_ACTION = re.compile(
    r"\b(shot|shoots?|shooting|punch\w*|run|runs|running|fight\w*|chase\w*|attack\w*|"
    r"defend\w*|dodg\w*|fire[sd]?|firing|flee\w*|fled|strike\w*|struck|hit|hits)\b",
    re.I,
)
_ACTION_CONCLUDES = re.compile(r"\b(stopped|ended|finally|after|aftermath|settles?|settled)\b", re.I)
_EXPLICIT_DECISION = re.compile(
    r"\b(decide\w*|choice|choices|choose|option\w*)\b|what will you do|what do you do",
    re.I,
)


class DecisionDetector:
    """Computes DetectionResult from narrative text and a game-state snapshot."""

    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()

    def score_factors(
        self,
        narrative_text: str,
        game_state: GameStateSnapshot,
        elapsed_ms: int | None,
    ) -> dict[str, float]:
        """Each factor's signed contribution (only non-zero ones are listed)."""
        text = narrative_text or ""
        factors: dict[str, float] = {"base": BASE_SCORE}

        if _DIALOGUE.search(text):
            factors["dialogue"] = DIALOGUE_BONUS
            if _QUESTION.search(text):
                factors["interactive_dialogue"] = QUESTION_BONUS

        if _ACTION.search(text):
            factors["action"] = ACTION_PENALTY
            if _ACTION_CONCLUDES.search(text):
                factors["action_conclusion"] = ACTION_CONCLUSION_BONUS

        if _EXPLICIT_DECISION.search(text):
            factors["explicit_decision"] = EXPLICIT_DECISION_BONUS

        if game_state.story_decision_point:
            factors["story_decision_point"] = STORY_POINT_BONUS

        if game_state.location_changed:
            factors["location_change"] = LOCATION_CHANGE_BONUS

        interval = self.settings.min_decision_interval_ms
        if elapsed_ms is None or interval <= 0:
            time_factor = 1.0
        else:
            time_factor = min(elapsed_ms / (TIME_PRESSURE_INTERVALS * interval), 1.0)
        if time_factor > 0:
            factors["time_pressure"] = round(time_factor * TIME_PRESSURE_MAX, 4)

        if game_state.combat_active:
            factors["combat"] = COMBAT_PENALTY

        return factors

    def detect(
        self,
        narrative_text: str,
        game_state: GameStateSnapshot,
        last_decision_timestamp_ms: int | None,
        now_ms: int,
        force_generation: bool = False,
    ) -> DetectionResult:
        """Score the current moment.

        Args:
            narrative_text: Latest narrative output.
            game_state: Read-only snapshot of the host's state.
            last_decision_timestamp_ms: When the previous decision was
                presented, or None if there hasn't been one.
            now_ms: Current game time.
            force_generation: Bypass both the interval gate and the threshold.
        """
        if game_state.elapsed_ms_since_last_decision is not None:
            elapsed = game_state.elapsed_ms_since_last_decision
        elif last_decision_timestamp_ms is not None:
            elapsed = max(0, now_ms - last_decision_timestamp_ms)
        else:
            elapsed = None

        if (
            not force_generation
            and elapsed is not None
            and elapsed < self.settings.min_decision_interval_ms
        ):
            return DetectionResult(
                score=0.0,
                contributing_factors={},
                should_present=False,
                reason="Too soon since last decision",
            )

        factors = self.score_factors(narrative_text, game_state, elapsed)
        score = max(0.0, min(1.0, sum(factors.values())))
        if game_state.combat_active:
            score = min(score, COMBAT_CAP)

        threshold = self.settings.relevance_threshold
        if force_generation:
            should_present, reason = True, "Generation forced by caller"
        elif score >= threshold:
            top = max((k for k in factors if k != "base"), key=lambda k: factors[k], default="base")
            should_present, reason = True, f"Decision point detected, led by {top} (score {score:.2f})"
        elif game_state.combat_active:
            should_present, reason = False, "Combat in progress"
        else:
            should_present, reason = False, f"Decision threshold not met (score {score:.2f} < {threshold:.2f})"

        logger.debug(f"Detection score={score:.3f} factors={factors}")
        return DetectionResult(
            score=score,
            contributing_factors=factors,
            should_present=should_present,
            reason=reason,
        )
