from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dri.api.contracts import HealthResponse
from dri.api.http_setup import register_exception_handlers, register_http_middleware
from dri.auth.postgrest import PostgrestStore
from dri.auth.router import create_auth_router
from dri.core.config import AppConfig
from dri.core.logging import setup_logging
from dri.session.context import ClientContext, build_context

LOGGER = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None, context: ClientContext | None = None
) -> FastAPI:
    """Build the local bridge between the portal UI and the auth client.

    One bridge process is one browsing context: its in-memory tier holds the
    short-lived session snapshot for as long as the process runs.
    """
    if config is None:
        load_dotenv()
        config = context.config if context is not None else AppConfig.from_env()
        setup_logging(config.logging.level)

    if context is None:
        context = build_context(
            config,
            on_logout=lambda page: LOGGER.info("Navigating to entry page %s", page),
        )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        context.close()

    app = FastAPI(title="DRI Portal Auth Bridge", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        if isinstance(context.repo, PostgrestStore):
            backend = "rest"
        elif context.repo.uses_mongo:
            backend = "mongo"
        else:
            backend = "file"
        return HealthResponse(status="ok", backend=backend)

    app.include_router(
        create_auth_router(context.auth, entry_page=config.session.entry_page)
    )
    return app
