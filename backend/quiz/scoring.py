from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from .errors import UnknownPlayer
from .models import Player, PlayerId


def _find(players: List[Player], player_id: PlayerId) -> Player:
    for p in players:
        if p.id == player_id:
            return p
    raise UnknownPlayer(f"No player with id {player_id}")


def award(players: List[Player], player_id: PlayerId, amount: int) -> Player:
    player = _find(players, player_id)
    player.score += amount
    return player


def deduct(players: List[Player], player_id: PlayerId, amount: int) -> Player:
    player = _find(players, player_id)
    player.score -= amount
    return player


def apply_super_game_results(
    players: List[Player],
    bets: Mapping[PlayerId, int],
    answers: Mapping[PlayerId, Optional[bool]],
) -> Dict[PlayerId, int]:
    """Settle finale bets: +bet for a correct answer, -bet otherwise.

    Players without both a bet and a recorded answer are left alone.
    Returns the applied delta per player.
    """
    deltas: Dict[PlayerId, int] = {}
    for p in players:
        bet = bets.get(p.id)
        answer = answers.get(p.id)
        if bet is None or answer is None:
            continue
        delta = bet if answer else -bet
        p.score += delta
        deltas[p.id] = delta
    return deltas
