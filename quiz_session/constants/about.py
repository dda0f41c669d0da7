"""Static metadata describing QuizSession."""

APP_NAME = "QuizSession"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "QuizSession drives timed multiple-choice quizzes for a mobile client: "
    "per-question countdowns, one shared deadline across topics, resumable "
    "progress and a scored attempt history."
)
