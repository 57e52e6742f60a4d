from __future__ import annotations

import asyncio
import random
from typing import Callable, Optional
from unittest import IsolatedAsyncioTestCase

from backend.quiz import catalog, machine
from backend.quiz.db import InMemoryDatabase, Settings
from backend.quiz.errors import AlreadyAnswered, ConfirmationRequired, NoEligiblePlayers, NoOpenQuestion
from backend.quiz.game import GameController
from backend.quiz.models import GameState
from backend.quiz.storage import SnapshotStore

CATALOG = catalog.load_catalog()

FAST = dict(
    GAME_ID="test-game",
    PLAYER_NAMES="Anna,Boris,Clara",
    TICK_INTERVAL_SEC=0.01,
    ROUND_ADVANCE_DELAY_SEC=0.02,
    SUPER_GAME_RESULT_DELAY_SEC=0.02,
)
SETTINGS = Settings(**FAST)


def open_board(prepare: Optional[Callable[[GameState], None]] = None) -> GameState:
    """A new game with no hidden questions, so every tile opens directly."""
    state = machine.initial_state(CATALOG, SETTINGS.player_names, random.Random(11))
    for theme in state.themes:
        for q in theme.questions:
            q.is_hidden = False
    if prepare is not None:
        prepare(state)
    return state


class ControllerTestCase(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.controller = await self._seed(open_board())

    async def asyncTearDown(self) -> None:
        await self.controller.close()

    async def _seed(self, board: GameState) -> GameController:
        """Store ``board`` as the saved game of a new database and load it."""
        self.database = InMemoryDatabase()
        await SnapshotStore(self.database, SETTINGS.GAME_ID).save(board, 1)
        return await self._controller()

    async def _reseed(self, prepare: Callable[[GameState], None]) -> None:
        await self.controller.close()
        self.controller = await self._seed(open_board(prepare))

    async def _controller(self) -> GameController:
        controller = GameController(SETTINGS, catalog=CATALOG, rng=random.Random(11), database=self.database)
        await controller.load()
        return controller

    async def _event_types(self):
        return [e["payload"]["type"] for e in await self.controller.events.list()]


class LoadAndPersistTests(ControllerTestCase):
    async def test_fresh_game_is_saved(self):
        self.database = InMemoryDatabase()
        fresh = await self._controller()
        try:
            await fresh.drain()
            stored, revision = await fresh.store.load()
            self.assertEqual(stored, fresh.state)
            self.assertEqual([p.name for p in stored.players], ["Anna", "Boris", "Clara"])
            self.assertEqual(revision, 1)
        finally:
            await fresh.close()

    async def test_seeded_board_is_loaded_as_stored(self):
        stored, revision = await self.controller.store.load()
        self.assertEqual(stored, self.controller.state)
        self.assertEqual((revision, self.controller.revision), (1, 1))

    async def test_every_transition_is_saved(self):
        await self.controller.select_player(2)
        state = await self.controller.select_question(0, 0)
        await self.controller.drain()
        stored, _ = await self.controller.store.load()
        self.assertEqual(stored, state)

    async def test_restart_restores_snapshot(self):
        await self.controller.select_question(1, 2)
        await self.controller.award_points(3, 300)
        await self.controller.drain()

        restarted = await self._controller()
        try:
            self.assertEqual(restarted.state, self.controller.state)
            self.assertEqual(restarted.state.player(3).score, 300)
        finally:
            await restarted.close()

    async def test_unreadable_snapshot_starts_fresh(self):
        await self.controller.drain()
        await self.database.game_state.update_one({"id": "test-game"}, {"$set": {"snapshot": {"themes": 5}}})
        restarted = await self._controller()
        try:
            self.assertEqual(restarted.state.current_round, 1)
            await restarted.drain()
            stored, _ = await restarted.store.load()
            self.assertEqual(stored, restarted.state)
        finally:
            await restarted.close()


class TimerTests(ControllerTestCase):
    async def test_counts_down_to_zero(self):
        await self.controller.select_question(0, 0)
        await self.controller.start_timer()
        await asyncio.sleep(0.5)
        state = self.controller.state
        self.assertEqual((state.timer_seconds, state.timer_active), (0, False))
        self.assertIn("timer_tick", await self._event_types())

    async def test_stop_freezes_countdown(self):
        await self.controller.select_question(0, 0)
        await self.controller.start_timer()
        await asyncio.sleep(0.06)
        frozen = (await self.controller.stop_timer()).timer_seconds
        self.assertLess(frozen, 15)
        await asyncio.sleep(0.05)
        self.assertEqual(self.controller.state.timer_seconds, frozen)
        self.assertFalse(self.controller.state.timer_active)

    async def test_close_stops_pending_tick(self):
        await self.controller.select_question(0, 0)
        await self.controller.start_timer()
        await self.controller.close_question()
        await asyncio.sleep(0.05)
        state = self.controller.state
        self.assertEqual((state.timer_seconds, state.timer_active), (15, False))
        self.assertIsNone(state.current_question)
        self.assertNotIn("timer_tick", await self._event_types())

    async def test_restart_resumes_running_timer(self):
        await self.controller.select_question(0, 0)
        await self.controller.start_timer()
        await self.controller.close()

        restarted = await self._controller()
        try:
            await asyncio.sleep(0.5)
            self.assertEqual(restarted.state.timer_seconds, 0)
        finally:
            await restarted.close()

    async def test_start_without_question_is_rejected(self):
        before = self.controller.state
        with self.assertRaises(NoOpenQuestion):
            await self.controller.start_timer()
        await asyncio.sleep(0.05)
        self.assertIs(self.controller.state, before)
        self.assertFalse(self.controller.state.timer_active)
        self.assertNotIn("timer_tick", await self._event_types())

    async def test_start_rejected_while_redirect_awaits_target(self):
        def hide_first(state: GameState) -> None:
            state.themes[0].questions[0].is_hidden = True

        await self._reseed(hide_first)
        await self.controller.select_question(0, 0)
        with self.assertRaises(NoOpenQuestion):
            await self.controller.start_timer()
        await self.controller.drain()
        stored, _ = await self.controller.store.load()
        self.assertFalse(stored.timer_active)


def answer_round_but_first(round_no: int, theme_index: int) -> Callable[[GameState], None]:
    def prepare(state: GameState) -> None:
        state.current_round = round_no
        for theme in state.themes:
            if theme.round == round_no:
                for q in theme.questions:
                    q.answered = True
        state.themes[theme_index].questions[0].answered = False

    return prepare


class RoundAdvanceTests(ControllerTestCase):
    async def test_switches_to_round_two_after_delay(self):
        await self._reseed(answer_round_but_first(1, 0))
        await self.controller.select_question(0, 0)
        state = await self.controller.close_question()
        self.assertEqual(state.current_round, 1)
        await asyncio.sleep(0.2)
        self.assertEqual(self.controller.state.current_round, 2)
        self.assertIn("round_advanced", await self._event_types())

    async def test_reset_supersedes_pending_switch(self):
        await self._reseed(answer_round_but_first(1, 0))
        await self.controller.select_question(0, 0)
        await self.controller.close_question()
        state = await self.controller.reset_game(True)
        await asyncio.sleep(0.2)
        self.assertIs(self.controller.state, state)
        self.assertEqual(state.current_round, 1)
        self.assertEqual(await self._event_types(), ["game_reset", "reset_game"])

    async def test_round_two_stays(self):
        await self._reseed(answer_round_but_first(2, 5))
        await self.controller.select_question(5, 0)
        await self.controller.close_question()
        await asyncio.sleep(0.1)
        self.assertEqual(self.controller.state.current_round, 2)


class RejectionTests(ControllerTestCase):
    async def test_rejection_keeps_state_and_is_reported(self):
        await self.controller.select_question(0, 0)
        await self.controller.close_question()
        before = self.controller.state
        with self.assertLogs("backend.quiz.game", level="WARNING"):
            with self.assertRaises(AlreadyAnswered):
                await self.controller.select_question(0, 0)
        self.assertIs(self.controller.state, before)
        events = await self.controller.events.list()
        self.assertEqual(events[-1]["payload"]["code"], "already_answered")

    async def test_reset_needs_confirmation(self):
        await self.controller.select_player(1)
        with self.assertRaises(ConfirmationRequired):
            await self.controller.reset_game(False)
        self.assertEqual(self.controller.state.active_player_id, 1)

    async def test_super_game_needs_positive_score(self):
        before = self.controller.state
        with self.assertRaises(NoEligiblePlayers):
            await self.controller.start_super_game()
        self.assertIs(self.controller.state, before)


class SuperGameFlowTests(ControllerTestCase):
    async def test_finale_settles_after_display_delay(self):
        await self.controller.select_question(0, 4)
        await self.controller.award_points(1, 500)
        await self.controller.close_question()

        state = await self.controller.start_super_game()
        self.assertEqual(state.current_round, "super")
        for theme in state.super_game_state.themes[:-1]:
            await self.controller.eliminate_theme(theme.name)
        state = await self.controller.complete_elimination()
        self.assertEqual(state.super_game_state.selected_theme.name, "Languages")

        await self.controller.place_bet(1, 300)
        await self.controller.complete_betting()
        await self.controller.mark_answer(1, True)
        state = await self.controller.complete_answering()
        self.assertEqual(state.super_game_state.phase, "completed")

        await asyncio.sleep(0.2)
        state = self.controller.state
        self.assertIsNone(state.super_game_state)
        self.assertEqual([p.score for p in state.players], [800, 0, 0])
        self.assertEqual(state.current_round, "super")
        self.assertIn("super_game_completed", await self._event_types())

    async def test_presenter_can_settle_before_the_delay(self):
        await self.controller.select_question(0, 0)
        await self.controller.award_points(2, 100)
        await self.controller.close_question()
        state = await self.controller.start_super_game()
        for theme in state.super_game_state.themes[:-1]:
            await self.controller.eliminate_theme(theme.name)
        await self.controller.complete_elimination()
        await self.controller.place_bet(2, 100)
        await self.controller.complete_betting()
        await self.controller.mark_answer(2, False)
        await self.controller.complete_answering()
        state = await self.controller.complete_super_game()
        self.assertEqual(state.player(2).score, 0)

        await asyncio.sleep(0.1)
        self.assertIs(self.controller.state, state)
