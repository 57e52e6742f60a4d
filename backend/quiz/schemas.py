from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from . import machine, redirect, super_game
from .models import GameState, Player, SuperGameTheme
from .utils import standings


class SelectQuestionIn(BaseModel):
    theme_index: int
    question_index: int


class PlayerIn(BaseModel):
    player_id: int


class PointsIn(BaseModel):
    player_id: int
    amount: int = Field(ge=0)


class EliminateThemeIn(BaseModel):
    theme: str


class BetIn(BaseModel):
    player_id: int
    amount: int


class MarkAnswerIn(BaseModel):
    player_id: int
    correct: bool


class ResetIn(BaseModel):
    confirm: bool = False


class GameStateOut(GameState):
    """Full game state plus the derived values the presenter screen needs."""

    round_complete: Dict[int, bool]
    can_start_super_game: bool
    awaiting_redirect_target: bool
    redirect_candidates: List[Player]
    eligible_players: List[Player]
    remaining_themes: List[SuperGameTheme]
    elimination_finished: bool
    current_super_game_player_id: Optional[int]
    standings: List[Player]

    @classmethod
    def from_state(cls, state: GameState) -> "GameStateOut":
        current = super_game.current_player(state)
        return cls(
            **state.model_dump(),
            round_complete={r: machine.round_complete(state, r) for r in (1, 2)},
            can_start_super_game=machine.can_start_super_game(state),
            awaiting_redirect_target=redirect.awaiting_target(state),
            redirect_candidates=redirect.redirect_candidates(state),
            eligible_players=super_game.eligible_players(state),
            remaining_themes=super_game.remaining_themes(state),
            elimination_finished=super_game.elimination_finished(state),
            current_super_game_player_id=current.id if current else None,
            standings=standings(state.players),
        )


class EventsOut(BaseModel):
    events: List[Dict[str, Any]]
    latest_seq: Optional[int]
