from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Dict, List, Optional, Set

from . import machine, redirect, super_game
from .catalog import QuestionsData, build_finale, load_catalog
from .db import Settings, db, settings as default_settings
from .errors import GameRejection
from .events import EventStore
from .models import GameState, PlayerId, SuperGameTheme
from .storage import SnapshotStore

logger = logging.getLogger(__name__)

Transition = Callable[[GameState], GameState]


def _question_key(state: GameState) -> Optional[tuple[int, int]]:
    cq = state.current_question
    return (cq.theme_index, cq.question_index) if cq else None


class GameController:
    """Owns the single game state and serializes every intent against it.

    Each accepted transition replaces ``self.state``, schedules a snapshot
    save without waiting for it, appends an event and re-arms the delayed
    callbacks (timer tick, round advance, super game settlement). Those
    callbacks remember the generation they were scheduled in; closing a
    question or resetting the game bumps it so stale callbacks do nothing.
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        catalog: QuestionsData | None = None,
        rng: random.Random | None = None,
        store: SnapshotStore | None = None,
        events: EventStore | None = None,
        database: Any = None,
    ):
        self.settings = config or default_settings
        database = database or db
        self.store = store or SnapshotStore(database, self.settings.GAME_ID)
        self.events = events or EventStore(database, self.settings.GAME_ID, self.settings.EVENT_LOG_LIMIT)
        self.catalog = catalog
        self.rng = rng or random.Random()
        self.state: GameState | None = None
        self.lock = asyncio.Lock()
        self.revision = 0
        self.generation = 0
        self._timer_task: asyncio.Task | None = None
        self._advance_task: asyncio.Task | None = None
        self._finale_task: asyncio.Task | None = None
        self._pending_saves: Set[asyncio.Task] = set()
        self.finale: List[SuperGameTheme] = []

    # -- lifecycle ---------------------------------------------------------

    async def load(self) -> GameState:
        async with self.lock:
            return await self._ensure_loaded()

    async def _ensure_loaded(self) -> GameState:
        if self.state is not None:
            return self.state

        if self.catalog is None:
            self.catalog = load_catalog(self.settings.CATALOG_PATH)
        self.finale = build_finale(self.catalog)

        state, self.revision = await self.store.load()
        if state is None:
            logger.info("[load] starting a fresh game")
            self._commit(machine.initial_state(self.catalog, self.settings.player_names, self.rng))
        else:
            logger.info("[load] restored game at revision %s, round=%s", self.revision, state.current_round)
            self.state = state
        self._rearm()
        return self.state

    async def get_state(self) -> GameState:
        async with self.lock:
            return await self._ensure_loaded()

    async def drain(self) -> None:
        """Wait for every scheduled snapshot save to land."""
        while self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)

    async def close(self) -> None:
        for task in (self._timer_task, self._advance_task, self._finale_task):
            if task and not task.done():
                task.cancel()
        await self.drain()

    # -- plumbing ----------------------------------------------------------

    def _commit(self, new_state: GameState) -> None:
        if new_state is self.state:
            return
        self.state = new_state
        self.revision += 1
        task = asyncio.create_task(self.store.save(new_state, self.revision))
        self._pending_saves.add(task)
        task.add_done_callback(self._save_done)

    def _save_done(self, task: asyncio.Task) -> None:
        self._pending_saves.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("[save-failed] %s", task.exception())

    async def _apply(
        self,
        intent: str,
        transition: Transition,
        *,
        bump: bool = False,
        reset_log: bool = False,
        **details,
    ) -> GameState:
        async with self.lock:
            current = await self._ensure_loaded()
            try:
                new_state = transition(current)
            except GameRejection as exc:
                logger.warning("[rejected] intent=%s code=%s %s", intent, exc.code, exc.message)
                await self.events.append({"type": "rejected", "intent": intent, **exc.to_dict()})
                raise

            if bump and new_state is not current:
                self.generation += 1
            self._commit(new_state)
            if reset_log:
                await self.events.reset()
            logger.info("[%s] %s round=%s", intent, details or "", new_state.current_round)
            await self.events.append({"type": intent, **details, "state": new_state.model_dump(mode="json")})
            self._rearm()
            return new_state

    def _rearm(self) -> None:
        state = self.state
        if state is None:
            return
        current = asyncio.current_task()

        if state.timer_active and state.current_question is not None:
            if self._timer_task is None or self._timer_task.done():
                self._timer_task = asyncio.create_task(
                    self._run_timer(self.generation, _question_key(state))
                )
        elif self._timer_task is not None and self._timer_task is not current:
            self._timer_task.cancel()
            self._timer_task = None

        if machine.should_advance_round(state) and (self._advance_task is None or self._advance_task.done()):
            self._advance_task = asyncio.create_task(self._advance_round_later(self.generation))

        sg = state.super_game_state
        if sg is not None and sg.phase == "completed" and (self._finale_task is None or self._finale_task.done()):
            self._finale_task = asyncio.create_task(self._complete_super_game_later(self.generation))

    # -- delayed callbacks -------------------------------------------------

    async def _run_timer(self, generation: int, key: Optional[tuple[int, int]]) -> None:
        while True:
            await asyncio.sleep(self.settings.TICK_INTERVAL_SEC)
            async with self.lock:
                state = self.state
                if (
                    state is None
                    or generation != self.generation
                    or _question_key(state) != key
                    or not state.timer_active
                ):
                    return
                new_state = machine.tick_timer(state)
                self._commit(new_state)
                await self.events.append(
                    {
                        "type": "timer_tick",
                        "timer_seconds": new_state.timer_seconds,
                        "timer_active": new_state.timer_active,
                    }
                )
                if not new_state.timer_active:
                    logger.info("[timer-expired] question=%s", key)
                    return

    async def _advance_round_later(self, generation: int) -> None:
        await asyncio.sleep(self.settings.ROUND_ADVANCE_DELAY_SEC)
        async with self.lock:
            if generation != self.generation or self.state is None or not machine.should_advance_round(self.state):
                logger.info("[advance-abort] state changed before the round switch")
                return
            new_state = machine.advance_round_if_complete(self.state)
            self._commit(new_state)
            logger.info("[round-advanced] round=%s", new_state.current_round)
            await self.events.append({"type": "round_advanced", "state": new_state.model_dump(mode="json")})

    async def _complete_super_game_later(self, generation: int) -> None:
        await asyncio.sleep(self.settings.SUPER_GAME_RESULT_DELAY_SEC)
        async with self.lock:
            state = self.state
            sg = state.super_game_state if state else None
            if generation != self.generation or sg is None or sg.phase != "completed":
                return
            new_state, deltas = machine.complete_super_game(state)
            self._commit(new_state)
            logger.info("[super-game-completed] deltas=%s", deltas)
            await self.events.append(
                {
                    "type": "super_game_completed",
                    "deltas": deltas,
                    "state": new_state.model_dump(mode="json"),
                }
            )

    # -- board intents -----------------------------------------------------

    async def select_question(self, theme_index: int, question_index: int) -> GameState:
        return await self._apply(
            "select_question",
            lambda s: machine.select_question(s, theme_index, question_index),
            theme_index=theme_index,
            question_index=question_index,
        )

    async def select_player(self, player_id: PlayerId) -> GameState:
        return await self._apply(
            "select_player", lambda s: machine.select_player(s, player_id), player_id=player_id
        )

    async def start_timer(self) -> GameState:
        return await self._apply("start_timer", machine.start_timer)

    async def stop_timer(self) -> GameState:
        return await self._apply("stop_timer", machine.stop_timer)

    async def award_points(self, player_id: PlayerId, amount: int) -> GameState:
        return await self._apply(
            "award_points",
            lambda s: machine.award_points(s, player_id, amount),
            player_id=player_id,
            amount=amount,
        )

    async def deduct_points(self, player_id: PlayerId, amount: int) -> GameState:
        return await self._apply(
            "deduct_points",
            lambda s: machine.deduct_points(s, player_id, amount),
            player_id=player_id,
            amount=amount,
        )

    async def close_question(self) -> GameState:
        return await self._apply("close_question", machine.close_question, bump=True)

    async def choose_redirect_target(self, player_id: PlayerId) -> GameState:
        return await self._apply(
            "choose_redirect_target",
            lambda s: redirect.choose_redirect_target(s, player_id),
            player_id=player_id,
        )

    async def reset_game(self, confirmed: bool) -> GameState:
        return await self._apply(
            "reset_game",
            lambda s: machine.reset_game(self.catalog, self.settings.player_names, self.rng, confirmed),
            bump=True,
            reset_log=True,
        )

    # -- super game intents ------------------------------------------------

    async def start_super_game(self) -> GameState:
        return await self._apply("start_super_game", lambda s: machine.start_super_game(s, self.finale))

    async def eliminate_theme(self, name: str) -> GameState:
        return await self._apply(
            "eliminate_theme", lambda s: super_game.eliminate_theme(s, name), theme=name
        )

    async def complete_elimination(self) -> GameState:
        return await self._apply("complete_elimination", super_game.complete_elimination)

    async def place_bet(self, player_id: PlayerId, amount: int) -> GameState:
        return await self._apply(
            "place_bet",
            lambda s: super_game.place_bet(s, player_id, amount),
            player_id=player_id,
            amount=amount,
        )

    async def complete_betting(self) -> GameState:
        return await self._apply("complete_betting", super_game.complete_betting)

    async def mark_answer(self, player_id: PlayerId, correct: bool) -> GameState:
        return await self._apply(
            "mark_answer",
            lambda s: super_game.mark_answer(s, player_id, correct),
            player_id=player_id,
            correct=correct,
        )

    async def complete_answering(self) -> GameState:
        return await self._apply("complete_answering", super_game.complete_answering)

    async def complete_super_game(self) -> GameState:
        deltas: Dict[PlayerId, int] = {}

        def settle(state: GameState) -> GameState:
            new_state, applied = machine.complete_super_game(state)
            deltas.update(applied)
            return new_state

        return await self._apply("complete_super_game", settle, deltas=deltas)


controller = GameController()
