"""FastAPI server that exposes the quiz engine to a thin client."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field
import uvicorn

from quiz_session.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from quiz_session.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_session.constants.quiz_constants import DASHBOARD_ATTEMPT_LIMIT
from quiz_session.core.credential_window import CredentialWindow
from quiz_session.core.models import AnswerReveal, Attempt, QuizOutcome, TopicProgress, TopicView
from quiz_session.core.quiz_manager import QuizManager


class SelectPayload(BaseModel):
    """Payload schema for an answer tap."""

    option_index: int = Field(ge=0)


def _serialize_reveal(reveal: AnswerReveal | None) -> dict[str, object] | None:
    if reveal is None:
        return None
    return {
        "selected_option_index": reveal.selected_option_index,
        "correct_option_index": reveal.correct_option_index,
        "is_correct": reveal.is_correct,
    }


def _serialize_outcome(outcome: QuizOutcome | None) -> dict[str, object] | None:
    if outcome is None:
        return None
    return {
        "topic": outcome.topic,
        "score": outcome.score,
        "total": outcome.total,
        "correct": outcome.correct,
        "penalties": outcome.penalties,
        "taken_seconds": outcome.taken_seconds,
        "timed_out": outcome.timed_out,
        "finished_at": outcome.finished_at_millis,
    }


def _serialize_view(view: TopicView) -> dict[str, object]:
    return {
        "topic": view.topic,
        "phase": view.phase.name.lower(),
        "total": view.total,
        "current_index": view.current_index,
        "prompt": view.prompt,
        "options": list(view.options),
        "remaining_seconds": view.remaining_seconds,
        "countdown_running": view.countdown_running,
        "penalties": view.penalties,
        "correct_count": view.correct_count,
        "reveal": _serialize_reveal(view.reveal),
        "outcome": _serialize_outcome(view.outcome),
    }


def _serialize_attempt(attempt: Attempt) -> dict[str, object]:
    return {
        "score": attempt.score,
        "total": attempt.total,
        "finished_at": attempt.finished_at_millis,
        "taken_seconds": attempt.taken_seconds,
        "timed_out": attempt.timed_out,
    }


def _serialize_progress(progress: TopicProgress) -> dict[str, object]:
    return {
        "topic": progress.topic,
        "current_index": progress.current_index,
        "answered": progress.answered,
        "correct": progress.correct,
        "total": progress.total,
        "estimated_remaining_seconds": progress.estimated_remaining_seconds,
    }


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


def _translate_errors(func, *args):
    try:
        return func(*args)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0] if exc.args else exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


def create_api_app(quiz_manager: QuizManager, watch_deadline: bool = True) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager.

    With ``watch_deadline`` the dashboard's global tick runs for the lifetime
    of the app, so expired topics are finalized even when no client polls.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if watch_deadline:
            quiz_manager.start_dashboard_watch()
        try:
            yield
        finally:
            quiz_manager.close_all()

    app = FastAPI(
        title=f"{APP_NAME} API",
        description=APP_ABOUT_TEXT,
        version=APP_VERSION,
        license_info={"name": APP_LICENSE},
        lifespan=lifespan,
    )
    quiz_manager_dep = _get_quiz_manager_dependency(quiz_manager)

    @app.get("/topics")
    async def list_topics(manager: QuizManager = Depends(quiz_manager_dep)) -> list[dict[str, object]]:
        return [
            {
                "topic": topic,
                "total": len(manager.get_bank(topic)),
                "open": manager.is_topic_open(topic),
                "has_progress": manager.progress_store.has_progress(topic),
                "latest_score": manager.get_latest_score(topic),
            }
            for topic in manager.get_topics()
        ]

    @app.post("/topics/{topic}/open")
    async def open_topic(topic: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        return _serialize_view(_translate_errors(manager.open_topic, topic))

    @app.get("/topics/{topic}")
    async def get_topic(topic: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        return _serialize_view(_translate_errors(manager.get_topic_view, topic))

    @app.post("/topics/{topic}/select")
    async def select_option(
        topic: str,
        payload: SelectPayload,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        reveal = _translate_errors(manager.select_option, topic, payload.option_index)
        return {
            "accepted": reveal is not None,
            "reveal": _serialize_reveal(reveal),
            "view": _serialize_view(manager.get_topic_view(topic)),
        }

    @app.post("/topics/{topic}/advance")
    async def advance(topic: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        return _serialize_view(_translate_errors(manager.advance, topic))

    @app.post("/topics/{topic}/suspend", status_code=204)
    async def suspend(topic: str, manager: QuizManager = Depends(quiz_manager_dep)) -> None:
        _translate_errors(manager.suspend, topic)

    @app.post("/topics/{topic}/close", status_code=204)
    async def close(topic: str, manager: QuizManager = Depends(quiz_manager_dep)) -> None:
        _translate_errors(manager.get_bank, topic)
        manager.close_topic(topic)

    @app.get("/topics/{topic}/attempts")
    async def get_attempts(
        topic: str,
        limit: int = DASHBOARD_ATTEMPT_LIMIT,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> list[dict[str, object]]:
        attempts = _translate_errors(manager.get_attempts, topic, limit)
        return [_serialize_attempt(attempt) for attempt in attempts]

    @app.get("/dashboard")
    async def get_dashboard(
        iat: str | None = None,
        exp: str | None = None,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        window = CredentialWindow.from_claims({"iat": iat, "exp": exp})
        dashboard = manager.get_dashboard(window)
        return {
            "remaining_seconds": dashboard.remaining_seconds,
            "session_score": dashboard.session_score,
            "in_progress": [_serialize_progress(p) for p in dashboard.in_progress],
            "history": {
                topic: [_serialize_attempt(a) for a in attempts]
                for topic, attempts in dashboard.history.items()
            },
            "latest_scores": dashboard.latest_scores,
        }

    @app.post("/reset", status_code=204)
    async def reset(manager: QuizManager = Depends(quiz_manager_dep)) -> None:
        manager.reset_all_progress()

    return app


def run_api_server(
    quiz_manager: QuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Serve the API on the current thread until interrupted."""
    app = create_api_app(quiz_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    server.run()
