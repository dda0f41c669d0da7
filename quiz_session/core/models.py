"""Domain models for the quiz session engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto


@dataclass(slots=True, frozen=True)
class Question:
    """Multiple-choice question with a single correct option."""

    prompt: str
    options: tuple[str, ...]
    correct_option_index: int


@dataclass(slots=True, frozen=True)
class QuestionBank:
    """Ordered, fixed-length list of questions for one topic."""

    topic: str
    questions: tuple[Question, ...]

    def __len__(self) -> int:
        return len(self.questions)

    def __getitem__(self, index: int) -> Question:
        return self.questions[index]


class SessionPhase(Enum):
    LOADING = auto()
    ACTIVE = auto()
    FINISHING = auto()
    FINISHED = auto()


@dataclass(slots=True)
class SessionState:
    """In-flight progress of one topic, persisted by the progress store.

    ``answers`` holds one slot per question: ``None`` while unanswered, ``-1``
    once skipped, otherwise the selected option index.
    """

    current_index: int
    answers: list[int | None]
    remaining_seconds: int
    penalties: int = 0
    correct_count: int = 0
    last_saved_at_millis: int = 0
    started_at_millis: int = 0

    @classmethod
    def fresh(cls, question_count: int, remaining_seconds: int, started_at_millis: int) -> SessionState:
        return cls(
            current_index=0,
            answers=[None] * question_count,
            remaining_seconds=remaining_seconds,
            started_at_millis=started_at_millis,
        )

    def answered_count(self) -> int:
        return sum(1 for slot in self.answers if slot is not None)


@dataclass(slots=True, frozen=True)
class Attempt:
    """One finished quiz, immutable once written."""

    score: int
    total: int
    finished_at_millis: int
    taken_seconds: int
    timed_out: bool


@dataclass(slots=True, frozen=True)
class ScoreSnapshot:
    """Most recent result of a topic."""

    score: int
    total: int
    saved_at_millis: int = 0

    def format(self) -> str:
        return f"{self.score}/{self.total}"


@dataclass(slots=True, frozen=True)
class AnswerReveal:
    """Returned by a selection so the caller can show correctness."""

    selected_option_index: int
    correct_option_index: int
    is_correct: bool


@dataclass(slots=True, frozen=True)
class QuizOutcome:
    """Result emitted once a topic session is finalized."""

    topic: str
    score: int
    total: int
    correct: int
    penalties: int
    taken_seconds: int
    timed_out: bool
    finished_at_millis: int


@dataclass(slots=True, frozen=True)
class TopicProgress:
    """Dashboard view of a topic that still has saved progress."""

    topic: str
    current_index: int
    answered: int
    correct: int
    total: int
    estimated_remaining_seconds: int


@dataclass(slots=True, frozen=True)
class DeadlineStatus:
    """Outcome of one global-deadline tick."""

    remaining_seconds: int | None
    expired: bool = False
    finalized: tuple[QuizOutcome, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class TopicView:
    """What a quiz screen needs to render one topic."""

    topic: str
    phase: SessionPhase
    total: int
    current_index: int | None = None
    prompt: str | None = None
    options: tuple[str, ...] = ()
    remaining_seconds: int | None = None
    penalties: int = 0
    correct_count: int = 0
    countdown_running: bool = False
    reveal: AnswerReveal | None = None
    outcome: QuizOutcome | None = None


@dataclass(slots=True, frozen=True)
class DashboardView:
    """Snapshot for the dashboard: global countdown, in-flight topics and history."""

    remaining_seconds: int | None
    session_score: int
    in_progress: tuple[TopicProgress, ...]
    history: dict[str, list[Attempt]]
    latest_scores: dict[str, str]
