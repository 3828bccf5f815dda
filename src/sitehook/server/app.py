"""HTTP trigger surface for the rebuild workflow."""

from __future__ import annotations

import logging
import os
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Request, status
from starlette.concurrency import run_in_threadpool

from sitehook import get_version
from sitehook.core import BusyError, RebuildError, RebuildOrchestrator, RunStatus


def create_app(
    orchestrator: RebuildOrchestrator,
    logger: logging.Logger,
    *,
    trigger_path: str = "/trigger",
    exit_on_failure: bool = False,
    manage_server: bool = True,
) -> FastAPI:
    """Build the webhook listener application.

    With ``manage_server`` the supervised site server is started when the app
    starts up and stopped when it shuts down.
    """

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if manage_server:
            logger.info("Starting site server for %s.", orchestrator.repository)
            await run_in_threadpool(orchestrator.start_server)
        try:
            yield
        finally:
            if manage_server:
                stopped = await run_in_threadpool(orchestrator.stop_server)
                if stopped:
                    logger.info("Stopped site server on shutdown.")

    app = FastAPI(title="sitehook", version=get_version(), lifespan=lifespan)

    def _run_rebuild() -> None:
        try:
            orchestrator.rebuild()
        except BusyError:
            logger.warning("Trigger ignored: a rebuild is already in progress.")
        except RebuildError as exc:
            failed = exc.run.failed_step.value if exc.run and exc.run.failed_step else exc.step
            logger.error("Rebuild failed at step %s: %s", failed, exc)
            if exit_on_failure:
                logger.critical("exit_on_failure is enabled; shutting down the listener.")
                os.kill(os.getpid(), signal.SIGTERM)

    @app.post(trigger_path, status_code=status.HTTP_202_ACCEPTED)
    async def trigger(request: Request, background_tasks: BackgroundTasks) -> dict[str, str]:
        body = await request.body()
        logger.info(
            "Received incoming git webhook:\n---\n%s\n---",
            body.decode("utf-8", errors="replace"),
        )
        background_tasks.add_task(_run_rebuild)
        return {"status": "accepted"}

    @app.get("/health")
    def health() -> dict[str, Any]:
        last_run = orchestrator.last_run
        degraded = last_run is not None and last_run.status is RunStatus.FAILED
        return {
            "status": "degraded" if degraded else "ok",
            "busy": orchestrator.busy,
            "server_running": orchestrator.supervisor.is_running,
            "last_run": last_run.to_dict() if last_run is not None else None,
        }

    return app


def serve(app: FastAPI, host: str, port: int) -> None:  # pragma: no cover - blocking server loop
    """Run the listener until interrupted."""

    uvicorn.run(app, host=host, port=port, log_config=None)
