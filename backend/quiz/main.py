import logging
from contextlib import asynccontextmanager
from typing import Awaitable

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .db import settings
from .errors import GameRejection
from .game import controller
from .models import GameState
from .schemas import (
    BetIn,
    EliminateThemeIn,
    EventsOut,
    GameStateOut,
    MarkAnswerIn,
    PlayerIn,
    PointsIn,
    ResetIn,
    SelectQuestionIn,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # A broken catalog raises CatalogError here and the server refuses to start.
    await controller.load()
    logger.info("Quiz API ready, game %s", settings.GAME_ID)
    yield
    await controller.close()


app = FastAPI(title="New Year Quiz API", lifespan=lifespan)

origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
origin_regex = settings.CORS_ORIGIN_REGEX or None

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_origin_regex=origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _respond(action: Awaitable[GameState]) -> GameStateOut:
    try:
        state = await action
    except GameRejection as exc:
        raise HTTPException(status_code=409, detail=exc.to_dict()) from exc
    return GameStateOut.from_state(state)


@app.get("/api/state", response_model=GameStateOut)
async def get_state():
    return GameStateOut.from_state(await controller.get_state())


@app.get("/api/events", response_model=EventsOut)
async def list_events(after: int | None = None, limit: int = 200):
    events = await controller.events.list(after=after, limit=limit)
    latest_seq = events[-1]["seq"] if events else after
    return {"events": events, "latest_seq": latest_seq}


@app.post("/api/question/select", response_model=GameStateOut)
async def select_question(payload: SelectQuestionIn):
    return await _respond(controller.select_question(payload.theme_index, payload.question_index))


@app.post("/api/question/close", response_model=GameStateOut)
async def close_question():
    return await _respond(controller.close_question())


@app.post("/api/player/select", response_model=GameStateOut)
async def select_player(payload: PlayerIn):
    return await _respond(controller.select_player(payload.player_id))


@app.post("/api/timer/start", response_model=GameStateOut)
async def start_timer():
    return await _respond(controller.start_timer())


@app.post("/api/timer/stop", response_model=GameStateOut)
async def stop_timer():
    return await _respond(controller.stop_timer())


@app.post("/api/points/award", response_model=GameStateOut)
async def award_points(payload: PointsIn):
    return await _respond(controller.award_points(payload.player_id, payload.amount))


@app.post("/api/points/deduct", response_model=GameStateOut)
async def deduct_points(payload: PointsIn):
    return await _respond(controller.deduct_points(payload.player_id, payload.amount))


@app.post("/api/redirect/target", response_model=GameStateOut)
async def choose_redirect_target(payload: PlayerIn):
    return await _respond(controller.choose_redirect_target(payload.player_id))


@app.post("/api/super-game/start", response_model=GameStateOut)
async def start_super_game():
    return await _respond(controller.start_super_game())


@app.post("/api/super-game/eliminate", response_model=GameStateOut)
async def eliminate_theme(payload: EliminateThemeIn):
    return await _respond(controller.eliminate_theme(payload.theme))


@app.post("/api/super-game/complete-elimination", response_model=GameStateOut)
async def complete_elimination():
    return await _respond(controller.complete_elimination())


@app.post("/api/super-game/bet", response_model=GameStateOut)
async def place_bet(payload: BetIn):
    return await _respond(controller.place_bet(payload.player_id, payload.amount))


@app.post("/api/super-game/complete-betting", response_model=GameStateOut)
async def complete_betting():
    return await _respond(controller.complete_betting())


@app.post("/api/super-game/answer", response_model=GameStateOut)
async def mark_answer(payload: MarkAnswerIn):
    return await _respond(controller.mark_answer(payload.player_id, payload.correct))


@app.post("/api/super-game/complete-answering", response_model=GameStateOut)
async def complete_answering():
    return await _respond(controller.complete_answering())


@app.post("/api/super-game/complete", response_model=GameStateOut)
async def complete_super_game():
    return await _respond(controller.complete_super_game())


@app.post("/api/reset", response_model=GameStateOut)
async def reset(payload: ResetIn):
    return await _respond(controller.reset_game(payload.confirm))
