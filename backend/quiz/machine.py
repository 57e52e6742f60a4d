"""Game state transitions.

Every public transition takes the current :class:`GameState` plus primitive
arguments and returns the next state. Rejected intents raise a
:class:`~.errors.GameRejection` before anything is copied, so the caller's
state is never touched.
"""
from __future__ import annotations

import random
from typing import Dict, List, Sequence

from . import redirect, scoring, super_game, timer
from .catalog import QuestionsData, build_themes, points_for_round
from .errors import (
    AlreadyAnswered,
    ConfirmationRequired,
    InvalidQuestion,
    NoEligiblePlayers,
    NoOpenQuestion,
    QuestionInProgress,
    UnknownPlayer,
    WrongPhase,
)
from .models import CurrentQuestion, GameState, Player, PlayerId, SuperGameState, SuperGameTheme


def make_roster(names: Sequence[str]) -> List[Player]:
    return [Player(id=i, name=name, score=0) for i, name in enumerate(names, start=1)]


def initial_state(catalog: QuestionsData, names: Sequence[str], rng: random.Random | None = None) -> GameState:
    return GameState(themes=build_themes(catalog, rng), players=make_roster(names))


def reset_game(
    catalog: QuestionsData,
    names: Sequence[str],
    rng: random.Random | None = None,
    confirmed: bool = False,
) -> GameState:
    if not confirmed:
        raise ConfirmationRequired("Resetting wipes all scores and answered questions; confirm to continue")
    return initial_state(catalog, names, rng)


def _require_board(state: GameState) -> None:
    if state.super_game_state is not None or state.current_round == "super":
        raise WrongPhase("The board is closed during the super game")


def select_question(state: GameState, theme_index: int, question_index: int) -> GameState:
    _require_board(state)
    if state.current_question is not None or redirect.awaiting_target(state):
        raise QuestionInProgress("Close the current question first")
    if not 0 <= theme_index < len(state.themes):
        raise InvalidQuestion(f"No theme at index {theme_index}")
    theme = state.themes[theme_index]
    if theme.round != state.current_round:
        raise InvalidQuestion(f"{theme.name!r} belongs to round {theme.round}, not the current board")
    if not 0 <= question_index < len(theme.questions):
        raise InvalidQuestion(f"No question at index {question_index} in {theme.name!r}")
    question = theme.questions[question_index]
    if question.answered:
        raise AlreadyAnswered(f"{theme.name} {question_index + 1} has already been played")

    point_value = points_for_round(theme.round)[question_index]
    state = state.model_copy(deep=True)
    if question.is_hidden:
        return redirect.begin_redirect(state, theme_index, question_index, point_value)

    state.current_question = CurrentQuestion(
        theme_index=theme_index,
        question_index=question_index,
        point_value=point_value,
    )
    return timer.reset(state)


def select_player(state: GameState, player_id: PlayerId) -> GameState:
    if state.player(player_id) is None:
        raise UnknownPlayer(f"No player with id {player_id}")
    state = state.model_copy(deep=True)
    state.active_player_id = player_id
    return state


def start_timer(state: GameState) -> GameState:
    if state.current_question is None:
        raise NoOpenQuestion("The countdown only runs while a question is open")
    return timer.start(state.model_copy(deep=True))


def stop_timer(state: GameState) -> GameState:
    return timer.stop(state.model_copy(deep=True))


def tick_timer(state: GameState) -> GameState:
    return timer.tick(state.model_copy(deep=True))


def _require_open_question(state: GameState, player_id: PlayerId) -> None:
    if state.current_question is None:
        raise NoOpenQuestion("Points can only be changed while a question is open")
    if state.player(player_id) is None:
        raise UnknownPlayer(f"No player with id {player_id}")


def award_points(state: GameState, player_id: PlayerId, amount: int) -> GameState:
    _require_open_question(state, player_id)
    state = state.model_copy(deep=True)
    scoring.award(state.players, player_id, amount)
    return state


def deduct_points(state: GameState, player_id: PlayerId, amount: int) -> GameState:
    _require_open_question(state, player_id)
    state = state.model_copy(deep=True)
    scoring.deduct(state.players, player_id, amount)
    return state


def close_question(state: GameState) -> GameState:
    if state.current_question is None:
        return state
    state = state.model_copy(deep=True)
    cq = state.current_question
    state.themes[cq.theme_index].questions[cq.question_index].answered = True
    state.current_question = None
    state.redirect_state = None
    return timer.reset(state)


def round_complete(state: GameState, round_no: int) -> bool:
    themes = [t for t in state.themes if t.round == round_no]
    return bool(themes) and all(q.answered for t in themes for q in t.questions)


def should_advance_round(state: GameState) -> bool:
    return (
        state.current_round == 1
        and state.current_question is None
        and not redirect.awaiting_target(state)
        and round_complete(state, 1)
    )


def advance_round_if_complete(state: GameState) -> GameState:
    if not should_advance_round(state):
        return state
    state = state.model_copy(deep=True)
    state.current_round = 2
    return state


def can_start_super_game(state: GameState) -> bool:
    return state.current_round == 2 and round_complete(state, 2)


def start_super_game(state: GameState, finale_themes: Sequence[SuperGameTheme]) -> GameState:
    if state.super_game_state is not None:
        raise WrongPhase("The super game is already running")
    if state.current_question is not None or redirect.awaiting_target(state):
        raise QuestionInProgress("Close the current question first")
    if not super_game.eligible_players(state):
        raise NoEligiblePlayers("No player has a positive score, nobody can play the super game")

    state = state.model_copy(deep=True)
    state.current_round = "super"
    state.super_game_state = SuperGameState(
        phase="elimination",
        themes=[t.model_copy(deep=True) for t in finale_themes],
    )
    return timer.reset(state)


def complete_super_game(state: GameState) -> tuple[GameState, Dict[PlayerId, int]]:
    """Settle the finale and drop the super game overlay.

    ``current_round`` is left untouched. Returns the new state together with
    the score delta applied to each player.
    """
    sg = state.super_game_state
    if sg is None or sg.phase != "completed":
        raise WrongPhase("The super game has not finished yet")

    state = state.model_copy(deep=True)
    deltas = scoring.apply_super_game_results(
        state.players, state.super_game_state.bets, state.super_game_state.answers
    )
    state.super_game_state = None
    return state, deltas
