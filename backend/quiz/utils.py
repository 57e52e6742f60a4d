import time

from .models import Player


def now_ts() -> float:
    return time.time()


def standings(players: list[Player]) -> list[Player]:
    return sorted(players, key=lambda p: (-p.score, p.name.lower()))
