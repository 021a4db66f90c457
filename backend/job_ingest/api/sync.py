"""Sync control surface: health, status and poll trigger."""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from job_ingest.schemas import HealthOut, PollRequest, SyncStatusOut
from job_ingest.sync.controller import AlreadyRunning, SyncController

logger = structlog.get_logger(__name__)
router = APIRouter(tags=["sync"])

CONFLICT_MESSAGE = "A sync is already in progress. Please wait for it to finish."


def get_controller(request: Request) -> SyncController:
    """FastAPI dependency returning the app's sync controller."""
    return request.app.state.controller


def _parse_poll_body(body: bytes) -> PollRequest:
    """Invalid or empty bodies fall back to the defaults."""
    if not body.strip():
        return PollRequest()
    try:
        data = json.loads(body)
        if not isinstance(data, dict):
            return PollRequest()
        return PollRequest.model_validate(data)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        logger.info("poll_body_ignored", size=len(body))
        return PollRequest()


@router.get("/health", response_model=HealthOut)
def health(controller: SyncController = Depends(get_controller)) -> HealthOut:
    return HealthOut(ok=True, running=controller.running)


@router.get("/status", response_model=SyncStatusOut, response_model_by_alias=True)
def status(controller: SyncController = Depends(get_controller)) -> SyncStatusOut:
    return controller.snapshot()


@router.post("/poll", status_code=202)
async def poll(request: Request, controller: SyncController = Depends(get_controller)) -> JSONResponse:
    """Start a sync in the background.

    Body (optional): ``{"syncAll": true}`` lifts the per-identity message cap.

    Returns:
        202 with the initial snapshot, or 409 while another sync is running.
    """
    options = _parse_poll_body(await request.body())
    try:
        snapshot = controller.start(sync_all=options.sync_all)
    except AlreadyRunning as exc:
        logger.info("poll_rejected_already_running")
        return JSONResponse(
            status_code=409,
            content={"error": CONFLICT_MESSAGE, "stats": exc.snapshot.model_dump(mode="json", by_alias=True)},
        )

    mode = "all pending emails" if options.sync_all else "latest emails per integration"
    return JSONResponse(
        status_code=202,
        content={
            "message": f"Sync started ({mode})",
            "stats": snapshot.model_dump(mode="json", by_alias=True),
        },
    )
