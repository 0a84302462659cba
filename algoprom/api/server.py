"""FastAPI server — runs the agent inside the app lifespan."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from algoprom import __version__
from algoprom.api.routes import router
from algoprom.config import settings
from algoprom.engine.agent import Agent

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build and start the agent unless one was injected beforehand."""
    agent = getattr(app.state, "agent", None)
    if agent is None:
        agent = Agent.from_settings(settings)
        app.state.agent = agent

    await agent.start()
    logger.info("Agent started: %d checks", len(agent.config.checks))
    try:
        yield
    finally:
        await agent.stop()


def create_app(agent: Agent | None = None) -> FastAPI:
    app = FastAPI(
        title="algoprom — metric check agent",
        version=__version__,
        lifespan=lifespan,
    )
    if agent is not None:
        app.state.agent = agent
    app.include_router(router)
    return app


app = create_app()
