"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from job_ingest.api.integrations import router as integrations_router
from job_ingest.api.jobs import router as jobs_router
from job_ingest.api.sync import router as sync_router
from job_ingest.config import AppConfig, get_config
from job_ingest.database import get_session_factory, init_db
from job_ingest.email.client import ImapMailbox
from job_ingest.logging_config import setup_logging
from job_ingest.resume.storage import LocalArtifactStore
from job_ingest.sync.controller import SyncController

logger = structlog.get_logger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    controller: Optional[SyncController] = None,
) -> FastAPI:
    """Application factory: create and configure the FastAPI app.

    Args:
        config: Settings to use instead of the environment.
        controller: Pre-built sync controller; built from *config* on startup
            when omitted.
    """
    config = config or get_config()
    config.artifact_path.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(level=config.log_level, log_file=config.log_file)
        init_db(config)
        if controller is not None:
            app.state.controller = controller
        else:
            app.state.controller = SyncController(
                config,
                get_session_factory(),
                mailbox=ImapMailbox(config),
                artifact_store=LocalArtifactStore(config.artifact_path, config.public_base_url),
            )
        logger.info(
            "server_starting",
            host=config.host,
            port=config.port,
            llm_enabled=config.llm_enabled,
            poll_timeout_sec=config.poll_timeout_sec,
        )
        yield
        app.state.controller.cancel()
        logger.info("server_shutting_down")

    app = FastAPI(
        title="Job Ingest",
        description="Turns job emails into structured opportunities and tailored resumes",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.dependency_overrides[get_config] = lambda: config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sync_router)
    app.include_router(integrations_router)
    app.include_router(jobs_router)

    # Rendered resume PDFs
    app.mount("/artifacts", StaticFiles(directory=str(config.artifact_path)), name="artifacts")

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_config()
    uvicorn.run(
        "job_ingest.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )
