"""Timed question-by-question session for a single quiz topic.

Architecture note:
    One engine instance serves every topic; it is parameterized by the topic's
    ``QuestionBank``. Two clocks bound a session: the per-question countdown
    owned by this engine's timer handle, and the global deadline shared by all
    topics through the progress store. Persistence is best effort. A failed
    load starts a fresh session and a failed save is logged, so storage trouble
    never blocks the quiz. Finishing is the only place scores and attempts are
    written.
"""

from __future__ import annotations

import logging
import math
from typing import Callable

from quiz_session.constants.quiz_constants import (
    GLOBAL_DEADLINE_MINUTES,
    PER_QUESTION_SECONDS,
    SKIPPED_ANSWER,
    TICK_INTERVAL_SECONDS,
)
from quiz_session.core.models import (
    AnswerReveal,
    Question,
    QuestionBank,
    QuizOutcome,
    SessionPhase,
    SessionState,
)
from quiz_session.core.services.key_value_store import StoreError
from quiz_session.core.services.progress_store import ProgressStore
from quiz_session.core.services.score_store import ScoreStore
from quiz_session.core.services.timer_source import (
    Clock,
    TimerHandle,
    TimerSource,
    system_clock,
)

logger = logging.getLogger(__name__)

OutcomeListener = Callable[[QuizOutcome], None]


def compute_score(correct: int, penalties: int, total: int) -> int:
    """Penalized score, always within ``[0, total]``."""
    return max(0, min(correct - penalties, total))


def elapsed_seconds(started_at_millis: int, now_millis: int) -> int:
    """Whole seconds between two epoch-millis values, halves rounded up."""
    return max(0, math.floor((now_millis - started_at_millis) / 1000 + 0.5))


def finalize_topic(
    topic: str,
    total: int,
    correct: int,
    penalties: int,
    started_at_millis: int,
    timed_out: bool,
    progress_store: ProgressStore,
    score_store: ScoreStore,
    now_millis: int,
) -> QuizOutcome:
    """Write the result of a topic and drop its saved progress.

    Shared by live engines and by the dashboard when it finalizes a topic
    that has no engine on screen. Each write is attempted independently.
    """
    score = compute_score(correct, penalties, total)
    taken_seconds = elapsed_seconds(started_at_millis, now_millis) if started_at_millis else 0
    _best_effort("save score", score_store.save_score, topic, score, total)
    _best_effort(
        "save attempt",
        score_store.save_attempt,
        topic,
        score,
        total,
        now_millis,
        taken_seconds,
        timed_out,
    )
    _best_effort("clear progress", progress_store.clear, topic)
    _best_effort("clear correct count", progress_store.clear_correct_count, topic)
    _best_effort("mark finished", progress_store.mark_finished, topic, now_millis)
    remaining_topics = _best_effort("list topics", progress_store.list_topics_with_progress)
    if remaining_topics is not None and not remaining_topics:
        _best_effort("clear global deadline", progress_store.clear_global_deadline)
    logger.info(
        "Finished %s: %d/%d (correct=%d, penalties=%d, timed_out=%s)",
        topic,
        score,
        total,
        correct,
        penalties,
        timed_out,
    )
    return QuizOutcome(
        topic=topic,
        score=score,
        total=total,
        correct=correct,
        penalties=penalties,
        taken_seconds=taken_seconds,
        timed_out=timed_out,
        finished_at_millis=now_millis,
    )


def _best_effort(action: str, func, *args):
    try:
        return func(*args)
    except (StoreError, OSError):
        logger.warning("Could not %s; continuing without it.", action, exc_info=True)
        return None


class QuizSessionEngine:
    """State machine for one topic: LOADING -> ACTIVE -> FINISHING -> FINISHED."""

    def __init__(
        self,
        bank: QuestionBank,
        progress_store: ProgressStore,
        score_store: ScoreStore,
        timer_source: TimerSource,
        clock: Clock = system_clock,
        per_question_seconds: int = PER_QUESTION_SECONDS,
        global_deadline_minutes: float = GLOBAL_DEADLINE_MINUTES,
        tick_interval_seconds: int = TICK_INTERVAL_SECONDS,
    ) -> None:
        if len(bank) == 0:
            raise ValueError(f"Question bank for {bank.topic!r} is empty.")
        if per_question_seconds <= 0:
            raise ValueError("Per-question budget must be a positive number of seconds.")
        self._bank = bank
        self._progress_store = progress_store
        self._score_store = score_store
        self._timer_source = timer_source
        self._clock = clock
        self._per_question_seconds = per_question_seconds
        self._global_deadline_minutes = global_deadline_minutes
        self._tick_interval_seconds = tick_interval_seconds

        self._phase = SessionPhase.LOADING
        self._state: SessionState | None = None
        self._timer: TimerHandle | None = None
        self._outcome: QuizOutcome | None = None
        self._listeners: list[OutcomeListener] = []

    # --- Read-only views ---

    @property
    def topic(self) -> str:
        return self._bank.topic

    @property
    def bank(self) -> QuestionBank:
        return self._bank

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def outcome(self) -> QuizOutcome | None:
        return self._outcome

    @property
    def state(self) -> SessionState:
        if self._state is None:
            raise RuntimeError("Session has not been started.")
        return self._state

    @property
    def current_question(self) -> Question:
        return self._bank[self.state.current_index]

    def is_active(self) -> bool:
        return self._phase is SessionPhase.ACTIVE

    def is_countdown_running(self) -> bool:
        return self._timer is not None and self._timer.is_active()

    def current_reveal(self) -> AnswerReveal | None:
        """Correctness of the current question once an option was picked."""
        slot = self.state.answers[self.state.current_index]
        if slot is None or slot == SKIPPED_ANSWER:
            return None
        correct_index = self.current_question.correct_option_index
        return AnswerReveal(slot, correct_index, slot == correct_index)

    def add_listener(self, listener: OutcomeListener) -> None:
        self._listeners.append(listener)

    # --- Lifecycle ---

    def start(self) -> None:
        if self._phase is not SessionPhase.LOADING:
            raise RuntimeError(f"Session for {self.topic!r} was already started.")
        self._state = self._restore()
        self._phase = SessionPhase.ACTIVE
        self._start_timer()
        logger.debug(
            "Started %s at question %d with %ds left",
            self.topic,
            self._state.current_index,
            self._state.remaining_seconds,
        )

    def close(self) -> None:
        """Save and release the countdown; used when the screen goes away."""
        if self._phase is SessionPhase.ACTIVE:
            self._persist()
        self._stop_timer()

    def abandon(self) -> None:
        """Stop without saving or scoring; the caller is wiping progress."""
        self._stop_timer()
        self._phase = SessionPhase.FINISHED

    def __enter__(self) -> QuizSessionEngine:
        if self._phase is SessionPhase.LOADING:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- Inputs ---

    def select(self, option_index: int) -> AnswerReveal | None:
        """Record an answer for the current question.

        Returns ``None`` when the question was already resolved or the session
        is not active. Selecting stops the countdown but does not advance.
        """
        if self._phase is not SessionPhase.ACTIVE:
            return None
        state = self.state
        question = self.current_question
        if not 0 <= option_index < len(question.options):
            raise ValueError(
                f"Option index {option_index} is out of range for a question with "
                f"{len(question.options)} options."
            )
        if state.answers[state.current_index] is not None:
            return None

        state.answers[state.current_index] = option_index
        is_correct = option_index == question.correct_option_index
        if is_correct:
            state.correct_count += 1
            _best_effort("bump correct count", self._progress_store.bump_correct_count, self.topic)
        self._stop_timer()
        self._persist()
        return AnswerReveal(option_index, question.correct_option_index, is_correct)

    def advance(self) -> QuizOutcome | None:
        """Move to the next question, or finish after the last one.

        An unanswered question is marked skipped without a penalty.
        """
        if self._phase is not SessionPhase.ACTIVE:
            return None
        state = self.state
        if state.answers[state.current_index] is None:
            state.answers[state.current_index] = SKIPPED_ANSWER
        return self._move_next(timed_out=False)

    def tick(self) -> QuizOutcome | None:
        if self._phase is not SessionPhase.ACTIVE:
            return None
        state = self.state
        if self.is_countdown_running():
            state.remaining_seconds -= 1
            if state.remaining_seconds <= 0:
                if state.answers[state.current_index] is None:
                    state.answers[state.current_index] = SKIPPED_ANSWER
                    state.penalties += 1
                self._move_next(timed_out=True)
        if self._phase is SessionPhase.ACTIVE and self._global_deadline_elapsed():
            logger.info("Global deadline passed while %s was active", self.topic)
            self._finish(timed_out=True)
        return self._outcome

    def suspend(self) -> None:
        """Persist everything; called when the app goes to the background."""
        if self._phase is SessionPhase.ACTIVE:
            self._persist()

    def force_finish(self, timed_out: bool = True) -> QuizOutcome | None:
        """Finalize now; a no-op once the session is finished."""
        if self._phase is not SessionPhase.ACTIVE:
            return None
        return self._finish(timed_out=timed_out)

    # --- Internals ---

    def _move_next(self, timed_out: bool) -> QuizOutcome | None:
        state = self.state
        if state.current_index >= len(self._bank) - 1:
            return self._finish(timed_out=timed_out)
        state.current_index += 1
        state.remaining_seconds = self._per_question_seconds
        self._restart_timer()
        self._persist()
        return None

    def _finish(self, timed_out: bool) -> QuizOutcome:
        self._phase = SessionPhase.FINISHING
        self._stop_timer()
        state = self.state

        recounted = self._recount_correct(state)
        if recounted != state.correct_count:
            logger.warning(
                "Correct count for %s is %d but answers show %d; keeping %d",
                self.topic,
                state.correct_count,
                recounted,
                state.correct_count,
            )

        self._outcome = finalize_topic(
            topic=self.topic,
            total=len(self._bank),
            correct=state.correct_count,
            penalties=state.penalties,
            started_at_millis=state.started_at_millis,
            timed_out=timed_out,
            progress_store=self._progress_store,
            score_store=self._score_store,
            now_millis=self._clock(),
        )
        self._phase = SessionPhase.FINISHED
        for listener in list(self._listeners):
            try:
                listener(self._outcome)
            except Exception:
                logger.exception("Outcome listener failed for %s", self.topic)
        return self._outcome

    def _recount_correct(self, state: SessionState) -> int:
        return sum(
            1
            for question, slot in zip(self._bank.questions, state.answers)
            if slot is not None and slot >= 0 and slot == question.correct_option_index
        )

    def _restore(self) -> SessionState:
        now = self._clock()
        try:
            saved = self._progress_store.load(self.topic)
        except (StoreError, OSError):
            logger.warning("Could not load progress for %s; starting fresh.", self.topic, exc_info=True)
            saved = None

        if saved is None:
            _best_effort("reset correct count", self._progress_store.clear_correct_count, self.topic)
            return SessionState.fresh(len(self._bank), self._per_question_seconds, now)
        return self._normalize(saved, now)

    def _normalize(self, saved: SessionState, now: int) -> SessionState:
        question_count = len(self._bank)
        answers = list(saved.answers[:question_count])
        answers.extend([None] * (question_count - len(answers)))
        for index, slot in enumerate(answers):
            option_count = len(self._bank[index].options)
            if slot is not None and not SKIPPED_ANSWER <= slot < option_count:
                answers[index] = SKIPPED_ANSWER

        remaining = saved.remaining_seconds
        if remaining <= 0 or remaining > self._per_question_seconds:
            remaining = self._per_question_seconds

        return SessionState(
            current_index=min(max(saved.current_index, 0), question_count - 1),
            answers=answers,
            remaining_seconds=remaining,
            penalties=max(saved.penalties, 0),
            correct_count=max(saved.correct_count, 0),
            last_saved_at_millis=saved.last_saved_at_millis,
            started_at_millis=saved.started_at_millis or now,
        )

    def _persist(self) -> None:
        state = self.state
        state.last_saved_at_millis = self._clock()
        _best_effort(
            "start global deadline",
            self._progress_store.get_or_create_global_deadline,
            self._global_deadline_minutes,
        )
        _best_effort("save progress", self._progress_store.save, self.topic, state)

    def _global_deadline_elapsed(self) -> bool:
        deadline = _best_effort("read global deadline", self._progress_store.get_global_deadline)
        return deadline is not None and self._clock() >= deadline

    def _start_timer(self) -> None:
        self._timer = self._timer_source.schedule(self._tick_interval_seconds, self.tick)

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _restart_timer(self) -> None:
        self._stop_timer()
        self._start_timer()
