"""FastAPI application for Stash Battle."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from stashbattle.battle.engine import BattleEngine
from stashbattle.config import get_settings
from stashbattle.db.migrate import migrate
from stashbattle.gateway.stash import StashGateway
from stashbattle.web.routes import api

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Run migrations on startup
    migrate()

    gateway = StashGateway.from_settings(settings)
    engine = BattleEngine.from_settings(gateway, settings)
    engine.load()
    app.state.engine = engine
    logger.info("Battle engine ready (Stash at %s)", settings.stash_url)

    yield

    logger.info("Waiting for pending rating writes")
    await engine.aclose()
    await gateway.aclose()


app = FastAPI(
    title="Stash Battle",
    description="Pairwise scene rating for a Stash collection",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api.router, prefix="/api")


@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    """Health check endpoint for readiness probes."""
    return "ok"
