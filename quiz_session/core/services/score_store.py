"""Service for finished-quiz results: the latest score per topic and the attempt log."""

from __future__ import annotations

import json

from quiz_session.constants.quiz_constants import NOT_RATED_LABEL
from quiz_session.constants.storage_constants import (
    ATTEMPT_TOPICS_KEY,
    ATTEMPTS_KEY_PREFIX,
    SCORES_KEY,
)
from quiz_session.core.models import Attempt, ScoreSnapshot
from quiz_session.core.services.key_value_store import KeyValueStore, StoreError
from quiz_session.core.services.timer_source import Clock, system_clock


class ScoreStore:
    """Keeps one ``ScoreSnapshot`` per topic plus a newest-first attempt log."""

    def __init__(self, backend: KeyValueStore, clock: Clock = system_clock) -> None:
        self._backend = backend
        self._clock = clock

    # --- Latest score ---

    def save_score(self, topic: str, score: int, total: int) -> None:
        scores = self._read_json(SCORES_KEY, default={})
        scores[topic] = {"score": score, "total": total, "timestamp": self._clock()}
        self._backend.set(SCORES_KEY, json.dumps(scores))

    def get_score(self, topic: str) -> ScoreSnapshot | None:
        return self.get_all_scores().get(topic)

    def get_all_scores(self) -> dict[str, ScoreSnapshot]:
        scores = self._read_json(SCORES_KEY, default={})
        result: dict[str, ScoreSnapshot] = {}
        for topic, entry in scores.items():
            if isinstance(entry, dict):
                result[topic] = ScoreSnapshot(
                    score=int(entry.get("score", 0)),
                    total=int(entry.get("total", 0)),
                    saved_at_millis=int(entry.get("timestamp", 0)),
                )
        return result

    def format_score(self, topic: str) -> str:
        snapshot = self.get_score(topic)
        if snapshot is None:
            return NOT_RATED_LABEL
        return snapshot.format()

    # --- Attempt log ---

    def save_attempt(
        self,
        topic: str,
        score: int,
        total: int,
        finished_at_millis: int,
        taken_seconds: int,
        timed_out: bool,
    ) -> Attempt:
        attempt = Attempt(
            score=score,
            total=total,
            finished_at_millis=finished_at_millis,
            taken_seconds=taken_seconds,
            timed_out=timed_out,
        )
        entries = self._read_json(ATTEMPTS_KEY_PREFIX + topic, default=[])
        entries.insert(0, _attempt_to_dict(attempt))
        self._backend.set(ATTEMPTS_KEY_PREFIX + topic, json.dumps(entries))
        self._remember_topic(topic)
        return attempt

    def get_attempts(self, topic: str, limit: int | None = None) -> list[Attempt]:
        """Return attempts for ``topic``, newest first, at most ``limit`` of them."""
        entries = self._read_json(ATTEMPTS_KEY_PREFIX + topic, default=[])
        if limit is not None:
            if limit < 0:
                raise ValueError("Attempt limit must not be negative.")
            entries = entries[:limit]
        return [_attempt_from_dict(entry) for entry in entries if isinstance(entry, dict)]

    def topics_with_attempts(self) -> set[str]:
        return set(self._read_json(ATTEMPT_TOPICS_KEY, default=[]))

    def clear_all(self) -> None:
        for topic in self.topics_with_attempts():
            self._backend.remove(ATTEMPTS_KEY_PREFIX + topic)
        self._backend.remove(ATTEMPT_TOPICS_KEY)
        self._backend.remove(SCORES_KEY)

    def _remember_topic(self, topic: str) -> None:
        topics = self.topics_with_attempts()
        if topic in topics:
            return
        topics.add(topic)
        self._backend.set(ATTEMPT_TOPICS_KEY, json.dumps(sorted(topics)))

    def _read_json(self, key: str, default):
        raw = self._backend.get(key)
        if raw is None:
            return default
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Stored value under {key!r} is not valid JSON.") from exc
        if not isinstance(value, type(default)):
            raise StoreError(f"Stored value under {key!r} has an unexpected shape.")
        return value


def _attempt_to_dict(attempt: Attempt) -> dict[str, object]:
    return {
        "score": attempt.score,
        "total": attempt.total,
        "at": attempt.finished_at_millis,
        "secs": attempt.taken_seconds,
        "timedOut": attempt.timed_out,
    }


def _attempt_from_dict(entry: dict) -> Attempt:
    return Attempt(
        score=int(entry.get("score", 0)),
        total=int(entry.get("total", 0)),
        finished_at_millis=int(entry.get("at", 0)),
        taken_seconds=int(entry.get("secs", 0)),
        timed_out=bool(entry.get("timedOut", False)),
    )
