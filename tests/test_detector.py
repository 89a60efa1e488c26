"""Tests for DecisionDetector scoring, gating and combat suppression."""

import pytest

from storyloom.decisions.detector import COMBAT_CAP, DecisionDetector
from storyloom.decisions.models import GameStateSnapshot
from storyloom.settings import EngineSettings

NOW = 1_700_000_000_000
INTERVAL = 45_000


@pytest.fixture
def detector():
    return DecisionDetector(EngineSettings(min_decision_interval_ms=INTERVAL, relevance_threshold=0.65))


# ---------------------------------------------------------------------------
# Tests: scoring
# ---------------------------------------------------------------------------

class TestScoring:
    def test_combat_penalty_dominates(self, detector):
        state = GameStateSnapshot(
            story_decision_point=True,
            location_changed=True,
            combat_active=True,
        )
        text = '"Draw!" he shouted. What will you do? You must choose.'
        result = detector.detect(text, state, None, NOW)
        assert result.score < 0.65
        assert result.score <= COMBAT_CAP
        assert not result.should_present
        assert result.reason == "Combat in progress"
        assert result.contributing_factors["combat"] == -0.6

    def test_question_in_dialogue(self, detector):
        result = detector.detect('"Care for a game of cards?" the stranger asked.', GameStateSnapshot(), None, NOW)
        factors = result.contributing_factors
        assert factors["dialogue"] == 0.15
        assert factors["interactive_dialogue"] == 0.05
        # No previous decision means full time pressure
        assert factors["time_pressure"] == 0.25
        assert result.score == pytest.approx(0.85)
        assert result.should_present
        assert "time_pressure" in result.reason

    def test_action_penalty_and_conclusion(self, detector):
        fighting = detector.detect("Jed fired at the outlaw.", GameStateSnapshot(), None, NOW)
        assert fighting.contributing_factors["action"] == -0.2
        assert "action_conclusion" not in fighting.contributing_factors

        settled = detector.detect("After the shooting finally stopped, dust settled.", GameStateSnapshot(), None, NOW)
        assert settled.contributing_factors["action_conclusion"] == 0.1
        assert settled.score > fighting.score

    def test_explicit_and_story_flags(self, detector):
        state = GameStateSnapshot(story_decision_point=True)
        result = detector.detect("You must choose a path.", state, None, NOW)
        assert result.contributing_factors["explicit_decision"] == 0.25
        assert result.contributing_factors["story_decision_point"] == 0.3

    def test_score_clamped_to_one(self, detector):
        state = GameStateSnapshot(story_decision_point=True, location_changed=True)
        result = detector.detect('"Which way?" she asked. Choose now.', state, None, NOW)
        assert result.score == 1.0

    def test_time_pressure_scales_with_elapsed(self, detector):
        result = detector.detect("The wind blows across the plain.", GameStateSnapshot(), NOW - INTERVAL, NOW)
        assert result.contributing_factors["time_pressure"] == 0.05
        assert result.score == pytest.approx(0.45)
        assert not result.should_present
        assert result.reason == "Decision threshold not met (score 0.45 < 0.65)"


# ---------------------------------------------------------------------------
# Tests: interval gate and forcing
# ---------------------------------------------------------------------------

class TestGating:
    def test_too_soon(self, detector):
        result = detector.detect("You must choose.", GameStateSnapshot(story_decision_point=True), NOW - 10_000, NOW)
        assert result.score == 0.0
        assert not result.should_present
        assert result.reason == "Too soon since last decision"

    def test_snapshot_elapsed_overrides_timestamp(self, detector):
        state = GameStateSnapshot(elapsed_ms_since_last_decision=1_000)
        result = detector.detect("You must choose.", state, NOW - 10 * INTERVAL, NOW)
        assert result.reason == "Too soon since last decision"

    def test_force_bypasses_gate_and_threshold(self, detector):
        result = detector.detect("Quiet.", GameStateSnapshot(), NOW - 1_000, NOW, force_generation=True)
        assert result.should_present
        assert result.reason == "Generation forced by caller"

    def test_force_overrides_combat(self, detector):
        result = detector.detect("Bullets fly.", GameStateSnapshot(combat_active=True), None, NOW, force_generation=True)
        assert result.should_present
        assert result.score <= COMBAT_CAP

    def test_zero_interval_never_gates(self):
        detector = DecisionDetector(EngineSettings(min_decision_interval_ms=0))
        result = detector.detect("You must choose.", GameStateSnapshot(), NOW, NOW)
        assert result.reason != "Too soon since last decision"
