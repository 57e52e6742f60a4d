"""Per-question countdown.

These helpers mutate the given state in place; callers in ``machine`` always
hand them a private copy.
"""
from __future__ import annotations

from .models import GameState

TIMER_SECONDS = 15


def reset(state: GameState) -> GameState:
    state.timer_seconds = TIMER_SECONDS
    state.timer_active = False
    return state


def start(state: GameState) -> GameState:
    if state.timer_seconds > 0:
        state.timer_active = True
    return state


def stop(state: GameState) -> GameState:
    state.timer_active = False
    return state


def tick(state: GameState) -> GameState:
    if state.timer_active and state.timer_seconds > 0:
        state.timer_seconds -= 1
    if state.timer_seconds == 0:
        state.timer_active = False
    return state
