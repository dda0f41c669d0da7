"""Dashboard-side view over every topic: global deadline, expiry and session score.

Architecture note:
    Topic engines only exist while their screen is open, but the global
    deadline keeps running for every topic with saved progress. The aggregator
    therefore finalizes expired topics from the stored progress when no live
    engine is attached, and goes through the engine when one is. Expiry is
    reported to listeners; deciding what the UI does about it is their job.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Iterable, Mapping

from quiz_session.constants.quiz_constants import (
    PER_QUESTION_SECONDS,
    SESSION_SCORE_ATTEMPT_LIMIT,
    TICK_INTERVAL_SECONDS,
)
from quiz_session.core.credential_window import CredentialWindow
from quiz_session.core.models import (
    Attempt,
    DeadlineStatus,
    QuestionBank,
    QuizOutcome,
    TopicProgress,
)
from quiz_session.core.services.key_value_store import StoreError
from quiz_session.core.services.progress_store import ProgressStore
from quiz_session.core.services.score_store import ScoreStore
from quiz_session.core.services.session_engine import QuizSessionEngine, finalize_topic
from quiz_session.core.services.timer_source import (
    Clock,
    TimerHandle,
    TimerSource,
    system_clock,
)

logger = logging.getLogger(__name__)

ExpiryListener = Callable[[DeadlineStatus], None]


class SessionAggregator:
    """Reconciles the global deadline against all topics with saved progress."""

    def __init__(
        self,
        progress_store: ProgressStore,
        score_store: ScoreStore,
        banks: Mapping[str, QuestionBank],
        timer_source: TimerSource,
        clock: Clock = system_clock,
        per_question_seconds: int = PER_QUESTION_SECONDS,
        tick_interval_seconds: int = TICK_INTERVAL_SECONDS,
    ) -> None:
        self._progress_store = progress_store
        self._score_store = score_store
        self._banks = dict(banks)
        self._timer_source = timer_source
        self._clock = clock
        self._per_question_seconds = per_question_seconds
        self._tick_interval_seconds = tick_interval_seconds
        self._engines: dict[str, QuizSessionEngine] = {}
        self._listeners: list[ExpiryListener] = []
        self._timer: TimerHandle | None = None
        self._last_status = DeadlineStatus(remaining_seconds=None)

    @property
    def last_status(self) -> DeadlineStatus:
        return self._last_status

    def attach(self, engine: QuizSessionEngine) -> None:
        self._engines[engine.topic] = engine

    def detach(self, topic: str) -> None:
        self._engines.pop(topic, None)

    def add_listener(self, listener: ExpiryListener) -> None:
        self._listeners.append(listener)

    # --- Global tick ---

    def start(self) -> None:
        if self._timer is not None:
            return
        self.tick()
        self._timer = self._timer_source.schedule(self._tick_interval_seconds, self.tick)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def is_running(self) -> bool:
        return self._timer is not None and self._timer.is_active()

    def tick(self) -> DeadlineStatus:
        deadline = self._read_deadline()
        if deadline is None:
            self._last_status = DeadlineStatus(remaining_seconds=None)
            return self._last_status

        now = self._clock()
        if now < deadline:
            self._last_status = DeadlineStatus(remaining_seconds=math.ceil((deadline - now) / 1000))
            return self._last_status

        finalized = self.finalize_expired()
        self._last_status = DeadlineStatus(remaining_seconds=0, expired=True, finalized=tuple(finalized))
        for listener in list(self._listeners):
            try:
                listener(self._last_status)
            except Exception:
                logger.exception("Expiry listener failed")
        return self._last_status

    def finalize_expired(self) -> list[QuizOutcome]:
        """Finish every topic that still has progress, tagged as timed out."""
        try:
            topics = self._progress_store.list_topics_with_progress()
        except (StoreError, OSError):
            logger.warning("Could not list topics with progress", exc_info=True)
            return []

        outcomes: list[QuizOutcome] = []
        for topic in sorted(topics):
            outcome = self._finalize_topic(topic)
            if outcome is not None:
                outcomes.append(outcome)

        try:
            self._progress_store.clear_global_deadline()
        except (StoreError, OSError):
            logger.warning("Could not clear the global deadline", exc_info=True)
        if outcomes:
            logger.info("Global deadline expired; finalized %s", ", ".join(o.topic for o in outcomes))
        return outcomes

    def _finalize_topic(self, topic: str) -> QuizOutcome | None:
        engine = self._engines.get(topic)
        if engine is not None and engine.is_active():
            return engine.force_finish(timed_out=True)

        try:
            saved = self._progress_store.load(topic)
        except (StoreError, OSError):
            logger.warning("Could not load progress for %s; dropping it", topic, exc_info=True)
            try:
                self._progress_store.clear(topic)
            except (StoreError, OSError):
                logger.warning("Could not drop progress for %s", topic, exc_info=True)
            return None
        if saved is None:
            # Finished between listing and loading.
            return None

        bank = self._banks.get(topic)
        total = len(bank) if bank is not None else len(saved.answers)
        return finalize_topic(
            topic=topic,
            total=total,
            correct=saved.correct_count,
            penalties=saved.penalties,
            started_at_millis=saved.started_at_millis,
            timed_out=True,
            progress_store=self._progress_store,
            score_store=self._score_store,
            now_millis=self._clock(),
        )

    def _read_deadline(self) -> int | None:
        try:
            return self._progress_store.get_global_deadline()
        except (StoreError, OSError):
            logger.warning("Could not read the global deadline", exc_info=True)
            return None

    # --- Summaries ---

    def scorable_topics(self) -> list[str]:
        return list(self._banks)

    def session_score(self, window: CredentialWindow, topics: Iterable[str] | None = None) -> int:
        """Sum over topics of the best attempt finished inside ``window``."""
        total = 0
        for topic in self.scorable_topics() if topics is None else topics:
            attempts = self._read_attempts(topic, SESSION_SCORE_ATTEMPT_LIMIT)
            total += max(
                (a.score for a in attempts if window.contains(a.finished_at_millis)),
                default=0,
            )
        return total

    def session_attempts(
        self,
        window: CredentialWindow,
        topics: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Attempt]]:
        result: dict[str, list[Attempt]] = {}
        for topic in self.scorable_topics() if topics is None else topics:
            attempts = self._read_attempts(topic, limit)
            result[topic] = [a for a in attempts if window.contains(a.finished_at_millis)]
        return result

    def topic_progress(self, topic: str) -> TopicProgress | None:
        try:
            saved = self._progress_store.load(topic)
        except (StoreError, OSError):
            logger.warning("Could not read progress for %s; leaving it off the dashboard", topic, exc_info=True)
            return None
        if saved is None:
            return None
        bank = self._banks.get(topic)
        total = len(bank) if bank is not None else len(saved.answers)
        current_index = min(max(saved.current_index, 0), max(total - 1, 0))
        answered = min(saved.answered_count(), total)
        remaining = saved.remaining_seconds
        if remaining <= 0 or remaining > self._per_question_seconds:
            remaining = self._per_question_seconds
        questions_after = max(total - current_index - 1, 0)
        return TopicProgress(
            topic=topic,
            current_index=current_index,
            answered=answered,
            correct=min(saved.correct_count, answered),
            total=total,
            estimated_remaining_seconds=remaining + questions_after * self._per_question_seconds,
        )

    def _read_attempts(self, topic: str, limit: int | None) -> list[Attempt]:
        try:
            return self._score_store.get_attempts(topic, limit=limit)
        except (StoreError, OSError):
            logger.warning("Could not read attempts for %s; treating them as empty", topic, exc_info=True)
            return []
