from __future__ import annotations

import pytest

from quiz_session.core.models import Question, QuestionBank
from quiz_session.core.services.key_value_store import InMemoryKeyValueStore
from quiz_session.core.services.progress_store import ProgressStore
from quiz_session.core.services.score_store import ScoreStore
from quiz_session.core.services.session_engine import QuizSessionEngine
from quiz_session.core.services.timer_source import ManualClock, ManualTimerSource

START_MILLIS = 1_700_000_000_000


def build_bank(topic: str = "HTML", size: int = 20, option_count: int = 4) -> QuestionBank:
    questions = tuple(
        Question(
            prompt=f"{topic} question {index + 1}",
            options=tuple(f"Option {letter}" for letter in "ABCDEF"[:option_count]),
            correct_option_index=index % option_count,
        )
        for index in range(size)
    )
    return QuestionBank(topic=topic, questions=questions)


def wrong_option(bank: QuestionBank, index: int) -> int:
    return (bank[index].correct_option_index + 1) % len(bank[index].options)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START_MILLIS)


@pytest.fixture
def timers(clock: ManualClock) -> ManualTimerSource:
    return ManualTimerSource(clock)


@pytest.fixture
def backend() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def progress_store(backend, clock) -> ProgressStore:
    return ProgressStore(backend, clock)


@pytest.fixture
def score_store(backend, clock) -> ScoreStore:
    return ScoreStore(backend, clock)


@pytest.fixture
def bank() -> QuestionBank:
    return build_bank()


@pytest.fixture
def make_engine(progress_store, score_store, timers, clock):
    def factory(bank: QuestionBank, start: bool = True) -> QuizSessionEngine:
        engine = QuizSessionEngine(bank, progress_store, score_store, timers, clock=clock)
        if start:
            engine.start()
        return engine

    return factory
