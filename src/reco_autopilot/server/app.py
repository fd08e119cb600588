"""HTTP surface: apply and build-notification endpoints."""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, ValidationError
from starlette.concurrency import run_in_threadpool

from reco_autopilot import __version__
from reco_autopilot.config.models import AutopilotConfig
from reco_autopilot.models import ApplyRequest
from reco_autopilot.orchestrator import ApplyCoordinator, BuildReconciler, CancelToken, decode_build_event
from reco_autopilot.utils.errors import (
    AutopilotError,
    MalformedEventError,
    UnsupportedCategoryError,
    error_handler,
)
from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)

DISCONNECT_POLL_SECONDS = 0.5


class ApplyBody(BaseModel):
    """Request body of ``POST /apply/{category}``."""

    repo: str = Field(..., min_length=1, description="Repository name under the configured account")
    projects: List[str] = Field(..., min_length=1, description="Projects to list recommendations for")


def create_app(
    config: AutopilotConfig,
    apply_coordinator: ApplyCoordinator,
    reconciler: BuildReconciler
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Process configuration
        apply_coordinator: Runs the apply workflow
        reconciler: Runs the build reconciliation workflow

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.start_time = time.time()
        logger.info(f"reco-autopilot {__version__} serving account {config.github.account}")
        yield
        logger.info("reco-autopilot shutting down")

    app = FastAPI(title="reco-autopilot", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.apply_coordinator = apply_coordinator
    app.state.reconciler = reconciler

    deadline = config.server.request_deadline_seconds

    @app.get("/health")
    async def health(request: Request):
        uptime = time.time() - getattr(request.app.state, "start_time", time.time())
        return {
            "status": "healthy",
            "service": "reco-autopilot",
            "version": __version__,
            "uptime_seconds": round(uptime, 2),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/apply/{category}")
    async def apply_recommendations(category: str, body: ApplyBody, request: Request):
        try:
            apply_request = ApplyRequest(
                repository_name=body.repo,
                project_ids=body.projects,
                category=category,
            )
        except ValidationError as e:
            return PlainTextResponse(str(e), status_code=422)

        try:
            outcome = await _run_cancellable(request, deadline, apply_coordinator.apply, apply_request)
        except UnsupportedCategoryError as e:
            logger.warning(e.message)
            return PlainTextResponse(e.message, status_code=400)
        except AutopilotError as e:
            error_handler.log_error(e)
            return PlainTextResponse(e.to_user_message(), status_code=500)
        except Exception as e:
            logger.exception(f"Unexpected error applying {category} recommendations to {body.repo}")
            return PlainTextResponse(str(e), status_code=500)

        logger.info(f"Apply to {outcome.repository_name} finished: {outcome.state.value}")
        return Response(status_code=201)

    @app.post("/ci")
    async def build_notification(request: Request):
        try:
            event = decode_build_event(await _json_body(request))
        except MalformedEventError as e:
            logger.warning(e.message)
            return PlainTextResponse(e.message, status_code=400)

        try:
            outcome = await _run_cancellable(request, deadline, reconciler.reconcile, event)
        except AutopilotError as e:
            error_handler.log_error(e)
            return PlainTextResponse(e.to_user_message(), status_code=500)
        except Exception as e:
            logger.exception(f"Unexpected error reconciling build for {event.repository_name}@{event.commit_id}")
            return PlainTextResponse(str(e), status_code=500)

        if outcome.is_ignored():
            return Response(status_code=200)
        return Response(status_code=201)

    return app


async def _json_body(request: Request) -> Any:
    """Parse the request body, treating undecodable JSON as a malformed event."""
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedEventError(f"body is not valid JSON: {e}")


async def _run_cancellable(request: Request, deadline: Optional[float], func: Callable, *args):
    """Run a coordinator on the threadpool, cancelling it if the client goes away."""
    token = CancelToken(deadline_seconds=deadline)
    watcher = asyncio.create_task(_watch_disconnect(request, token))
    try:
        return await run_in_threadpool(func, *args, cancel_token=token)
    finally:
        watcher.cancel()


async def _watch_disconnect(request: Request, token: CancelToken) -> None:
    while not token.cancelled:
        if await request.is_disconnected():
            token.cancel("client disconnected")
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)
