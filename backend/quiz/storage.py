from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from .db import db as default_db, settings
from .models import GameState

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Keeps the latest full GameState snapshot under a single key.

    Saves are fired without being awaited, so they may land out of order;
    each carries a revision and an older revision never overwrites a newer one.
    """

    def __init__(self, database: Any = None, key: str | None = None):
        self.collection = (database or default_db).game_state
        self.key = key or settings.GAME_ID
        self._lock = asyncio.Lock()

    async def save(self, state: GameState, revision: int) -> bool:
        doc = {"id": self.key, "revision": revision, "snapshot": state.model_dump(mode="json")}
        async with self._lock:
            written = await self.collection.update_one(
                {"id": self.key, "revision": {"$lt": revision}}, {"$set": doc}
            )
            if written:
                return True
            if await self.collection.find_one({"id": self.key}) is None:
                await self.collection.insert_one(doc)
                return True
        logger.debug("Skipped stale snapshot revision %s", revision)
        return False

    async def load(self) -> tuple[Optional[GameState], int]:
        """Return the stored state and its revision, or ``(None, 0)``.

        A snapshot that no longer validates is discarded so the game can
        start fresh instead of failing.
        """
        doc = await self.collection.find_one({"id": self.key})
        if not doc:
            return None, 0
        revision = int(doc.get("revision") or 0)
        try:
            return GameState.model_validate(doc.get("snapshot")), revision
        except ValidationError as exc:
            logger.warning("Discarding unreadable game snapshot %s: %s", self.key, exc)
            return None, revision
