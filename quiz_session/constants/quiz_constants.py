"""Quiz timing and scoring constants shared across the engine and dashboard."""

PER_QUESTION_SECONDS: int = 12
GLOBAL_DEADLINE_MINUTES: int = 30
TICK_INTERVAL_SECONDS: int = 1

SKIPPED_ANSWER: int = -1

CREDENTIAL_MAX_LIFETIME_HOURS: int = 24

DASHBOARD_ATTEMPT_LIMIT: int = 50
SESSION_SCORE_ATTEMPT_LIMIT: int = 200

NOT_RATED_LABEL: str = "Not rated"
