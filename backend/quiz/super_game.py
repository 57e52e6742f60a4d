"""Super game (finale) phases.

elimination -> betting -> answering -> completed, strictly in that order.
Only players with a positive score take part. Settling the bets happens in
``machine.complete_super_game`` once the completed phase has been shown.
"""
from __future__ import annotations

from typing import List, Optional

from .errors import InvalidBet, InvalidTheme, PhaseIncomplete, UnknownPlayer, WrongPhase
from .models import GameState, Player, PlayerId, SuperGameState, SuperGameTheme


def eligible_players(state: GameState) -> List[Player]:
    return [p for p in state.players if p.score > 0]


def _require_phase(state: GameState, phase: str) -> SuperGameState:
    sg = state.super_game_state
    if sg is None:
        raise WrongPhase("The super game is not running")
    if sg.phase != phase:
        raise WrongPhase(f"The super game is in the {sg.phase} phase, not {phase}")
    return sg


def _eligible(state: GameState, player_id: PlayerId) -> Optional[Player]:
    return next((p for p in eligible_players(state) if p.id == player_id), None)


def remaining_themes(state: GameState) -> List[SuperGameTheme]:
    sg = state.super_game_state
    if sg is None:
        return []
    return [t for t in sg.themes if t.name not in sg.eliminated_themes]


def elimination_finished(state: GameState) -> bool:
    sg = state.super_game_state
    return sg is not None and sg.phase == "elimination" and len(remaining_themes(state)) == 1


def current_player(state: GameState) -> Optional[Player]:
    sg = state.super_game_state
    players = eligible_players(state)
    if sg is None or not players:
        return None
    return players[sg.current_player_index % len(players)]


def eliminate_theme(state: GameState, name: str) -> GameState:
    sg = _require_phase(state, "elimination")
    if name not in {t.name for t in sg.themes}:
        raise InvalidTheme(f"Unknown theme {name!r}")
    if name in sg.eliminated_themes:
        raise InvalidTheme(f"Theme {name!r} is already eliminated")
    if len(remaining_themes(state)) <= 1:
        raise InvalidTheme(f"Theme {name!r} is the last one left and cannot be eliminated")

    state = state.model_copy(deep=True)
    sg = state.super_game_state
    sg.eliminated_themes.append(name)
    count = len(eligible_players(state))
    sg.current_player_index = (sg.current_player_index + 1) % count if count else 0
    return state


def complete_elimination(state: GameState) -> GameState:
    _require_phase(state, "elimination")
    remaining = remaining_themes(state)
    if len(remaining) != 1:
        raise PhaseIncomplete(f"{len(remaining)} themes remain; eliminate until one is left")

    state = state.model_copy(deep=True)
    sg = state.super_game_state
    sg.selected_theme = remaining[0].model_copy(deep=True)
    sg.phase = "betting"
    sg.current_player_index = 0
    return state


def place_bet(state: GameState, player_id: PlayerId, amount: int) -> GameState:
    _require_phase(state, "betting")
    player = _eligible(state, player_id)
    if player is None:
        raise InvalidBet(f"Player {player_id} is not taking part in the super game")
    if amount < 1:
        raise InvalidBet("The minimum bet is 1 point")
    if amount > player.score:
        raise InvalidBet(f"{player.name} only has {player.score} points")

    state = state.model_copy(deep=True)
    state.super_game_state.bets[player_id] = amount
    return state


def complete_betting(state: GameState) -> GameState:
    sg = _require_phase(state, "betting")
    missing = [p.name for p in eligible_players(state) if p.id not in sg.bets]
    if missing:
        raise PhaseIncomplete(f"Waiting for bets from: {', '.join(missing)}")

    state = state.model_copy(deep=True)
    state.super_game_state.phase = "answering"
    state.super_game_state.current_player_index = 0
    return state


def mark_answer(state: GameState, player_id: PlayerId, correct: bool) -> GameState:
    _require_phase(state, "answering")
    if _eligible(state, player_id) is None:
        raise UnknownPlayer(f"Player {player_id} is not taking part in the super game")

    state = state.model_copy(deep=True)
    state.super_game_state.answers[player_id] = correct
    return state


def complete_answering(state: GameState) -> GameState:
    sg = _require_phase(state, "answering")
    missing = [p.name for p in eligible_players(state) if sg.answers.get(p.id) is None]
    if missing:
        raise PhaseIncomplete(f"Waiting for answers from: {', '.join(missing)}")

    state = state.model_copy(deep=True)
    state.super_game_state.phase = "completed"
    return state
