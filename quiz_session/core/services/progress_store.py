"""Service for persisting in-flight quiz progress and the shared global deadline.

Each topic's progress is one JSON blob; the correct-answer counter is kept
under its own key so it survives even when the blob is a legacy record that
predates it. Topic engines never talk to each other; they meet only through
the global deadline stored here.
"""

from __future__ import annotations

import json

from quiz_session.constants.quiz_constants import PER_QUESTION_SECONDS
from quiz_session.constants.storage_constants import (
    CORRECT_COUNT_KEY_PREFIX,
    FINISHED_AT_KEY_PREFIX,
    GLOBAL_DEADLINE_KEY,
    PROGRESS_KEY_PREFIX,
)
from quiz_session.core.models import SessionState
from quiz_session.core.services.key_value_store import KeyValueStore, StoreError
from quiz_session.core.services.timer_source import Clock, system_clock


class ProgressStore:
    """Reads and writes per-topic ``SessionState`` records."""

    def __init__(
        self,
        backend: KeyValueStore,
        clock: Clock = system_clock,
        per_question_seconds: int = PER_QUESTION_SECONDS,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._per_question_seconds = per_question_seconds

    # --- Session state ---

    def save(self, topic: str, state: SessionState) -> None:
        data = {
            "index": state.current_index,
            "answers": list(state.answers),
            "remaining": state.remaining_seconds,
            "lastSavedAt": state.last_saved_at_millis,
            "penalties": state.penalties,
            "correct": state.correct_count,
            "startedAt": state.started_at_millis,
        }
        self._backend.set(PROGRESS_KEY_PREFIX + topic, json.dumps(data))

    def load(self, topic: str) -> SessionState | None:
        """Return the saved state for ``topic`` or ``None`` if there is none.

        Missing fields take their defaults, so records written before
        ``remaining``/``penalties`` existed still load. The returned state is
        not normalized against a question bank; the engine does that.
        """
        raw = self._backend.get(PROGRESS_KEY_PREFIX + topic)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Saved progress for {topic!r} is not valid JSON.") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Saved progress for {topic!r} has an unexpected shape.")

        answers = [_coerce_slot(slot) for slot in data.get("answers") or []]
        return SessionState(
            current_index=_coerce_int(data.get("index"), 0),
            answers=answers,
            remaining_seconds=_coerce_int(data.get("remaining"), self._per_question_seconds),
            penalties=_coerce_int(data.get("penalties"), 0),
            correct_count=self.get_correct_count(topic),
            last_saved_at_millis=_coerce_int(data.get("lastSavedAt"), 0),
            started_at_millis=_coerce_int(data.get("startedAt"), 0),
        )

    def clear(self, topic: str) -> None:
        self._backend.remove(PROGRESS_KEY_PREFIX + topic)

    def has_progress(self, topic: str) -> bool:
        return self._backend.get(PROGRESS_KEY_PREFIX + topic) is not None

    def list_topics_with_progress(self) -> set[str]:
        return {
            key[len(PROGRESS_KEY_PREFIX):]
            for key in self._backend.keys()
            if key.startswith(PROGRESS_KEY_PREFIX)
        }

    # --- Global deadline ---

    def get_or_create_global_deadline(self, budget_minutes: float) -> int:
        existing = self.get_global_deadline()
        if existing is not None:
            return existing
        deadline = self._clock() + round(budget_minutes * 60) * 1000
        self._backend.set(GLOBAL_DEADLINE_KEY, str(deadline))
        return deadline

    def get_global_deadline(self) -> int | None:
        raw = self._backend.get(GLOBAL_DEADLINE_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError as exc:
            raise StoreError(f"Global deadline {raw!r} is not an integer.") from exc

    def clear_global_deadline(self) -> None:
        self._backend.remove(GLOBAL_DEADLINE_KEY)

    # --- Correct-answer counter ---

    def bump_correct_count(self, topic: str) -> int:
        value = self.get_correct_count(topic) + 1
        self._backend.set(CORRECT_COUNT_KEY_PREFIX + topic, str(value))
        return value

    def get_correct_count(self, topic: str) -> int:
        raw = self._backend.get(CORRECT_COUNT_KEY_PREFIX + topic)
        return _coerce_int(raw, 0)

    def clear_correct_count(self, topic: str) -> None:
        self._backend.remove(CORRECT_COUNT_KEY_PREFIX + topic)

    # --- Finish markers ---

    def mark_finished(self, topic: str, finished_at_millis: int) -> None:
        self._backend.set(FINISHED_AT_KEY_PREFIX + topic, str(finished_at_millis))

    def get_finished_at(self, topic: str) -> int | None:
        raw = self._backend.get(FINISHED_AT_KEY_PREFIX + topic)
        if raw is None:
            return None
        return _coerce_int(raw, 0)

    def list_finished_topics(self) -> set[str]:
        return {
            key[len(FINISHED_AT_KEY_PREFIX):]
            for key in self._backend.keys()
            if key.startswith(FINISHED_AT_KEY_PREFIX)
        }

    def clear_finished(self, topic: str) -> None:
        self._backend.remove(FINISHED_AT_KEY_PREFIX + topic)


def _coerce_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def _coerce_slot(value: object) -> int | None:
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        return None
    return value
