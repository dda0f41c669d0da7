"""Key layout of the durable string store."""

from pathlib import Path

PROGRESS_KEY_PREFIX: str = "progress_"
CORRECT_COUNT_KEY_PREFIX: str = "correct_"
FINISHED_AT_KEY_PREFIX: str = "finished_"
ATTEMPTS_KEY_PREFIX: str = "attempts_"
GLOBAL_DEADLINE_KEY: str = "quiz_global_deadline"
SCORES_KEY: str = "quiz_scores"
ATTEMPT_TOPICS_KEY: str = "quiz_attempt_topics"

DEFAULT_STORE_PATH: Path = Path.home() / ".quiz_session" / "store.ini"
