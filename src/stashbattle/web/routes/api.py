"""JSON API for the battle UI."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from stashbattle.battle.engine import BattleEngine
from stashbattle.battle.errors import (
    NoActivePairError,
    SkipNotAllowedError,
    UnknownSceneError,
)
from stashbattle.gateway.filters import parse_search_params
from stashbattle.models.session import (
    BattleMode,
    DecisionResult,
    SessionState,
    TurnResult,
)

router = APIRouter(tags=["api"])
logger = logging.getLogger(__name__)


def get_engine(request: Request) -> BattleEngine:
    """The engine created at startup."""
    engine: BattleEngine = request.app.state.engine
    return engine


Engine = Annotated[BattleEngine, Depends(get_engine)]


class ChooseRequest(BaseModel):
    """Request body for picking a winner."""

    winner_id: str


class ModeRequest(BaseModel):
    """Request body for switching modes."""

    mode: BattleMode


class FilterRequest(BaseModel):
    """Request body for applying a Stash scenes-page filter.

    ``search`` is the query string of the Stash scenes page
    (``?c=...&q=...``); empty means no filter.
    """

    search: str = ""


@router.get("/turn", response_model=TurnResult)
async def get_turn(engine: Engine) -> TurnResult:
    """Current pair (restored after a reload) or a new one."""
    return await engine.current_turn()


@router.post("/turn/skip", response_model=TurnResult)
async def skip_turn(engine: Engine) -> TurnResult:
    """Show a different pair without deciding."""
    try:
        return await engine.skip()
    except SkipNotAllowedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.post("/choose", response_model=DecisionResult)
async def choose(body: ChooseRequest, engine: Engine) -> DecisionResult:
    """Record the user's pick; the next GET /turn shows a new pair."""
    try:
        return await engine.choose(body.winner_id)
    except NoActivePairError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except UnknownSceneError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/mode", response_model=TurnResult)
async def set_mode(body: ModeRequest, engine: Engine) -> TurnResult:
    return await engine.set_mode(body.mode)


@router.post("/filter", response_model=TurnResult)
async def set_filter(body: FilterRequest, engine: Engine) -> TurnResult:
    query = parse_search_params(body.search)
    logger.info("Applying filter %s", query.key)
    return await engine.set_filter(query)


@router.post("/run/new", response_model=TurnResult)
async def new_run(engine: Engine) -> TurnResult:
    """Start another gauntlet/champion run."""
    return await engine.new_run()


@router.post("/reset", response_model=TurnResult)
async def reset(engine: Engine) -> TurnResult:
    return await engine.reset()


@router.post("/cache/refresh", response_model=TurnResult)
async def refresh_cache(engine: Engine) -> TurnResult:
    """Drop cached listings and refetch from Stash."""
    return await engine.refresh()


@router.get("/state", response_model=SessionState)
async def get_state(engine: Engine) -> SessionState:
    """Saved session snapshot (for debugging)."""
    return engine.state
