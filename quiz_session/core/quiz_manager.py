"""Business logic facade shared between the quiz screens, the dashboard and the API."""

from __future__ import annotations

import logging
from threading import RLock
from typing import Callable, Mapping

from quiz_session.constants.quiz_constants import (
    DASHBOARD_ATTEMPT_LIMIT,
    GLOBAL_DEADLINE_MINUTES,
    NOT_RATED_LABEL,
    PER_QUESTION_SECONDS,
)
from quiz_session.core.credential_window import CredentialWindow
from quiz_session.core.models import (
    AnswerReveal,
    Attempt,
    DashboardView,
    DeadlineStatus,
    QuestionBank,
    QuizOutcome,
    SessionPhase,
    TopicView,
)
from quiz_session.core.services.key_value_store import KeyValueStore, StoreError
from quiz_session.core.services.progress_store import ProgressStore
from quiz_session.core.services.score_store import ScoreStore
from quiz_session.core.services.session_aggregator import ExpiryListener, SessionAggregator
from quiz_session.core.services.session_engine import OutcomeListener, QuizSessionEngine
from quiz_session.core.services.timer_source import (
    Clock,
    TimerHandle,
    TimerSource,
    system_clock,
)

logger = logging.getLogger(__name__)


class _LockedTimerSource:
    """Runs every timer callback under the manager's lock."""

    def __init__(self, inner: TimerSource, lock: RLock) -> None:
        self._inner = inner
        self._lock = lock

    def schedule(self, interval_seconds: int, callback: Callable[[], None]) -> TimerHandle:
        def locked_callback() -> None:
            with self._lock:
                callback()

        return self._inner.schedule(interval_seconds, locked_callback)


class QuizManager:
    """Facade for quiz services: stores, per-topic engines and the aggregator."""

    def __init__(
        self,
        banks: Mapping[str, QuestionBank],
        backend: KeyValueStore,
        timer_source: TimerSource,
        clock: Clock = system_clock,
        per_question_seconds: int = PER_QUESTION_SECONDS,
        global_deadline_minutes: float = GLOBAL_DEADLINE_MINUTES,
    ) -> None:
        self._lock = RLock()
        self._banks = dict(banks)
        self._clock = clock
        self._per_question_seconds = per_question_seconds
        self._global_deadline_minutes = global_deadline_minutes

        # Services
        self._timer_source = _LockedTimerSource(timer_source, self._lock)
        self._progress_store = ProgressStore(backend, clock, per_question_seconds)
        self._score_store = ScoreStore(backend, clock)
        self._aggregator = SessionAggregator(
            self._progress_store,
            self._score_store,
            self._banks,
            self._timer_source,
            clock=clock,
            per_question_seconds=per_question_seconds,
        )

        self._engines: dict[str, QuizSessionEngine] = {}
        self._outcomes: dict[str, QuizOutcome] = {}
        self._finish_listeners: list[OutcomeListener] = []

    @property
    def progress_store(self) -> ProgressStore:
        return self._progress_store

    @property
    def score_store(self) -> ScoreStore:
        return self._score_store

    # --- Topic catalogue ---

    def get_topics(self) -> list[str]:
        return list(self._banks)

    def get_bank(self, topic: str) -> QuestionBank:
        try:
            return self._banks[topic]
        except KeyError:
            raise KeyError(f"Unknown quiz topic {topic!r}.") from None

    # --- Engine lifecycle ---

    def open_topic(self, topic: str) -> TopicView:
        """Resume the saved session for ``topic`` or start a fresh one."""
        with self._lock:
            engine = self._engines.get(topic)
            if engine is None or not engine.is_active():
                engine = QuizSessionEngine(
                    self.get_bank(topic),
                    self._progress_store,
                    self._score_store,
                    self._timer_source,
                    clock=self._clock,
                    per_question_seconds=self._per_question_seconds,
                    global_deadline_minutes=self._global_deadline_minutes,
                )
                engine.add_listener(self._handle_outcome)
                self._outcomes.pop(topic, None)
                self._engines[topic] = engine
                self._aggregator.attach(engine)
                engine.start()
                logger.info("Opened %s at question %d", topic, engine.state.current_index + 1)
            return self._build_view(topic)

    def close_topic(self, topic: str) -> None:
        """Save and stop the topic's countdown; the saved session stays resumable."""
        with self._lock:
            engine = self._engines.pop(topic, None)
            if engine is None:
                return
            self._aggregator.detach(topic)
            engine.close()

    def close_all(self) -> None:
        with self._lock:
            for topic in list(self._engines):
                self.close_topic(topic)
            self._aggregator.stop()

    def suspend_all(self) -> None:
        """Persist every open topic; called when the app is backgrounded."""
        with self._lock:
            for engine in self._engines.values():
                engine.suspend()

    def is_topic_open(self, topic: str) -> bool:
        with self._lock:
            return topic in self._engines

    # --- Quiz input ---

    def select_option(self, topic: str, option_index: int) -> AnswerReveal | None:
        with self._lock:
            return self._require_engine(topic).select(option_index)

    def advance(self, topic: str) -> TopicView:
        with self._lock:
            self._require_engine(topic).advance()
            return self._build_view(topic)

    def suspend(self, topic: str) -> None:
        with self._lock:
            self._require_engine(topic).suspend()

    def get_topic_view(self, topic: str) -> TopicView:
        with self._lock:
            self.get_bank(topic)
            return self._build_view(topic)

    # --- Dashboard ---

    def start_dashboard_watch(self) -> None:
        with self._lock:
            self._aggregator.start()

    def stop_dashboard_watch(self) -> None:
        with self._lock:
            self._aggregator.stop()

    def tick_dashboard(self) -> DeadlineStatus:
        with self._lock:
            return self._aggregator.tick()

    def get_dashboard(self, window: CredentialWindow | None = None) -> DashboardView:
        window = window or CredentialWindow.unbounded()
        with self._lock:
            status = self._aggregator.tick()
            in_progress = []
            for topic in self._banks:
                progress = self._aggregator.topic_progress(topic)
                if progress is not None:
                    in_progress.append(progress)
            return DashboardView(
                remaining_seconds=status.remaining_seconds,
                session_score=self._aggregator.session_score(window),
                in_progress=tuple(in_progress),
                history=self._aggregator.session_attempts(window, limit=DASHBOARD_ATTEMPT_LIMIT),
                latest_scores={topic: self.get_latest_score(topic) for topic in self._banks},
            )

    def get_latest_score(self, topic: str) -> str:
        """Latest "score/total" for ``topic``, or the not-rated label."""
        with self._lock:
            try:
                return self._score_store.format_score(topic)
            except (StoreError, OSError):
                logger.warning("Could not read the latest score for %s", topic, exc_info=True)
                return NOT_RATED_LABEL

    def get_attempts(self, topic: str, limit: int | None = DASHBOARD_ATTEMPT_LIMIT) -> list[Attempt]:
        with self._lock:
            self.get_bank(topic)
            return self._score_store.get_attempts(topic, limit=limit)

    def reset_all_progress(self) -> None:
        """Forget in-flight sessions, scores and history (used on logout)."""
        with self._lock:
            for topic, engine in list(self._engines.items()):
                self._aggregator.detach(topic)
                engine.abandon()
            self._engines.clear()
            self._outcomes.clear()
            topics = (
                self._progress_store.list_topics_with_progress()
                | self._progress_store.list_finished_topics()
                | set(self._banks)
            )
            for topic in topics:
                self._progress_store.clear(topic)
                self._progress_store.clear_correct_count(topic)
                self._progress_store.clear_finished(topic)
            self._progress_store.clear_global_deadline()
            self._score_store.clear_all()
            logger.info("All quiz progress and history cleared")

    # --- Listeners ---

    def add_finish_listener(self, listener: OutcomeListener) -> None:
        with self._lock:
            self._finish_listeners.append(listener)

    def add_expiry_listener(self, listener: ExpiryListener) -> None:
        with self._lock:
            self._aggregator.add_listener(listener)

    # --- Internals ---

    def _require_engine(self, topic: str) -> QuizSessionEngine:
        self.get_bank(topic)
        engine = self._engines.get(topic)
        if engine is None:
            raise RuntimeError(f"Quiz {topic!r} is not open.")
        return engine

    def _handle_outcome(self, outcome: QuizOutcome) -> None:
        self._outcomes[outcome.topic] = outcome
        self._engines.pop(outcome.topic, None)
        self._aggregator.detach(outcome.topic)
        for listener in list(self._finish_listeners):
            try:
                listener(outcome)
            except Exception:
                logger.exception("Finish listener failed for %s", outcome.topic)

    def _build_view(self, topic: str) -> TopicView:
        bank = self._banks[topic]
        engine = self._engines.get(topic)
        if engine is None:
            outcome = self._outcomes.get(topic)
            phase = SessionPhase.FINISHED if outcome is not None else SessionPhase.LOADING
            return TopicView(topic=topic, phase=phase, total=len(bank), outcome=outcome)

        state = engine.state
        question = engine.current_question
        return TopicView(
            topic=topic,
            phase=engine.phase,
            total=len(bank),
            current_index=state.current_index,
            prompt=question.prompt,
            options=question.options,
            remaining_seconds=state.remaining_seconds,
            penalties=state.penalties,
            correct_count=state.correct_count,
            countdown_running=engine.is_countdown_running(),
            reveal=engine.current_reveal(),
        )
