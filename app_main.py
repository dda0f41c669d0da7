"""Application entry point for the QuizSession service."""

from __future__ import annotations

from quiz_session.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_session.constants.storage_constants import DEFAULT_STORE_PATH
from quiz_session.core.question_bank import load_default_banks
from quiz_session.core.quiz_manager import QuizManager
from quiz_session.core.services.key_value_store import QSettingsKeyValueStore
from quiz_session.core.services.timer_source import AsyncioTimerSource
from quiz_session.server.api_server import run_api_server
from quiz_session.utils.logging_config import configure_logging


def main() -> None:
    """Initialize logging, load the question banks and serve the quiz API."""
    logger = configure_logging()
    logger.info("Starting QuizSession…")

    banks = load_default_banks()
    logger.info("Loaded %d question banks: %s", len(banks), ", ".join(banks))

    store = QSettingsKeyValueStore(DEFAULT_STORE_PATH)
    logger.info("Persisting progress to %s", store.file_path)

    quiz_manager = QuizManager(banks=banks, backend=store, timer_source=AsyncioTimerSource())
    run_api_server(quiz_manager=quiz_manager, host=DEFAULT_HOST, port=DEFAULT_PORT)


if __name__ == "__main__":
    main()
