"""Hidden question ("cat in the bag") handling.

Selecting a hidden question does not open it. The presenter first has to hand
it to a player other than the one who picked it; only then does the question
open, credited to that player.
"""
from __future__ import annotations

from typing import List

from . import timer
from .errors import InvalidRedirectTarget, NoPendingRedirect, UnknownPlayer
from .models import CurrentQuestion, GameState, Player, PlayerId, RedirectState


def begin_redirect(state: GameState, theme_index: int, question_index: int, point_value: int) -> GameState:
    state.redirect_state = RedirectState(
        original_player_id=state.active_player_id,
        theme_index=theme_index,
        question_index=question_index,
        point_value=point_value,
    )
    state.current_question = None
    return state


def awaiting_target(state: GameState) -> bool:
    return state.redirect_state is not None and state.redirect_state.awaiting_target


def redirect_candidates(state: GameState) -> List[Player]:
    if state.redirect_state is None:
        return []
    original = state.redirect_state.original_player_id
    return [p for p in state.players if p.id != original]


def choose_redirect_target(state: GameState, player_id: PlayerId) -> GameState:
    if not awaiting_target(state):
        raise NoPendingRedirect("No hidden question is waiting for a player")
    if state.player(player_id) is None:
        raise UnknownPlayer(f"No player with id {player_id}")
    if player_id == state.redirect_state.original_player_id:
        raise InvalidRedirectTarget("The hidden question must go to another player")

    state = state.model_copy(deep=True)
    redirect = state.redirect_state
    redirect.selected_player_id = player_id
    state.active_player_id = player_id
    state.current_question = CurrentQuestion(
        theme_index=redirect.theme_index,
        question_index=redirect.question_index,
        point_value=redirect.point_value,
    )
    return timer.reset(state)
