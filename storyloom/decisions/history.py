"""
Decision History - presented decisions and the choices made.

Owns the single-current-decision invariant: present() refuses a second
decision while one is awaiting a choice. Records are append-only.
"""

import logging

from ..errors import ConflictError, NotFoundError, ValidationError
from ..utils.clock import Clock, now_ms
from .models import Decision, DecisionRecord

logger = logging.getLogger(__name__)


class DecisionHistory:
    """Append-only log of decision records plus the current decision."""

    def __init__(self, clock: Clock = now_ms):
        self._clock = clock
        self._records: list[DecisionRecord] = []
        self._current: Decision | None = None
        self._last_presented_at: int | None = None

    @property
    def current(self) -> Decision | None:
        return self._current

    @property
    def last_presented_at(self) -> int | None:
        """Timestamp of the most recent present() call, for detection pacing."""
        return self._last_presented_at

    def has_active(self) -> bool:
        return self._current is not None

    def present(self, decision: Decision) -> Decision:
        """Make `decision` current.

        Raises:
            ConflictError: another decision is already awaiting a choice.
        """
        if self._current is not None:
            raise ConflictError(
                f"Decision {self._current.id} is still awaiting a choice; cannot present {decision.id}"
            )
        self._current = decision
        self._last_presented_at = decision.timestamp_ms or self._clock()
        logger.info(f"Presented decision {decision.id} ({decision.source}, {len(decision.options)} options)")
        return decision

    def record(self, decision_id: str, selected_option_id: str, outcome_text: str = "") -> DecisionRecord:
        """Record the player's choice for the current decision and clear it.

        Raises:
            NotFoundError: decision_id is not the current decision.
            ValidationError: the option does not belong to the decision.
        """
        current = self._current
        if current is None or current.id != decision_id:
            raise NotFoundError("decision", decision_id)
        option = current.get_option(selected_option_id)
        if option is None:
            raise ValidationError(f"Option '{selected_option_id}' is not part of decision {decision_id}")

        record = DecisionRecord(
            decision_id=decision_id,
            selected_option_id=selected_option_id,
            narrative_outcome=outcome_text,
            timestamp_ms=self._clock(),
            prompt=current.prompt,
            option_text=option.text,
            importance=current.importance,
            tags=list(option.tags),
            location=current.location,
        )
        self._records.append(record)
        self._current = None
        logger.info(f"Recorded choice '{option.text}' for {decision_id}")
        return record

    def clear_active(self) -> Decision | None:
        """Withdraw the current decision without recording a choice."""
        withdrawn, self._current = self._current, None
        if withdrawn is not None:
            logger.info(f"Withdrew decision {withdrawn.id}")
        return withdrawn

    def get_history(self, limit: int | None = None) -> list[DecisionRecord]:
        """Records, most recent first."""
        records = list(reversed(self._records))
        return records[:limit] if limit is not None else records

    def recent_window(self, n: int) -> list[DecisionRecord]:
        """Last n records in presentation order, for prompt building."""
        if n <= 0:
            return []
        return list(self._records[-n:])

    def __len__(self) -> int:
        return len(self._records)

    # ── Serialization ───────────────────────────────────────────────

    def to_state(self) -> dict:
        return {
            "records": [r.model_dump(mode="json") for r in self._records],
            "current": self._current.model_dump(mode="json") if self._current else None,
            "last_presented_at": self._last_presented_at,
        }

    @classmethod
    def from_state(cls, state: dict, clock: Clock = now_ms) -> "DecisionHistory":
        history = cls(clock=clock)
        history._records = [DecisionRecord.model_validate(r) for r in state.get("records", [])]
        if state.get("current"):
            history._current = Decision.model_validate(state["current"])
        history._last_presented_at = state.get("last_presented_at")
        return history
