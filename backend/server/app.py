"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (the agent session)
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from observability.logger import log_event, set_log_level
from session.agent_session import AgentSession

from server.routes import register_routes


def create_app(config: AppConfig | None = None, session: AgentSession | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    config and session are injectable so tests can run the routes against
    fake collaborators.
    """
    config = config if config is not None else AppConfig.load_from_env()
    set_log_level(config.log_level)

    session = session if session is not None else AgentSession(config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        log_event({"event_type": "server_started", "env": config.env})
        try:
            yield
        finally:
            await session.close()
            log_event({"event_type": "server_stopped"})

    app = FastAPI(title="Jarvis Voice Agent API", lifespan=lifespan)

    app.state.config = config
    app.state.session = session

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # local control UI only
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
