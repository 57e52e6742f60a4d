from __future__ import annotations

from typing import Any, List

from pymongo import ReturnDocument

from .db import db as default_db, settings
from .utils import now_ts


class EventStore:
    """Log of game transitions so the presenter screen can poll via HTTP."""

    def __init__(self, database: Any = None, game_id: str | None = None, max_events: int | None = None):
        database = database or default_db
        self.counters_collection = database.game_event_counters
        self.events_collection = database.game_events
        self.game_id = game_id or settings.GAME_ID
        self.max_events = settings.EVENT_LOG_LIMIT if max_events is None else max_events

    async def append(self, payload: dict[str, Any]) -> int:
        """Store a new event and return its sequence number."""

        counter_doc = await self.counters_collection.find_one_and_update(
            {"_id": self.game_id},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        seq = int(counter_doc["seq"]) if counter_doc and "seq" in counter_doc else 1

        await self.events_collection.insert_one(
            {
                "game_id": self.game_id,
                "seq": seq,
                "timestamp": now_ts(),
                "payload": payload,
            }
        )
        if self.max_events and seq > self.max_events:
            await self.events_collection.delete_many(
                {"game_id": self.game_id, "seq": {"$lt": seq - self.max_events + 1}}
            )
        return seq

    async def list(self, after: int | None = None, limit: int = 200) -> List[dict[str, Any]]:
        """Return events that occur after the given sequence."""

        query: dict[str, Any] = {"game_id": self.game_id}
        if after is not None:
            query["seq"] = {"$gt": after}

        cursor = self.events_collection.find(query).sort("seq", 1).limit(limit)

        events: List[dict[str, Any]] = []
        async for doc in cursor:
            events.append(
                {
                    "seq": doc["seq"],
                    "timestamp": doc.get("timestamp"),
                    "payload": doc.get("payload", {}),
                }
            )
        return events

    async def reset(self) -> None:
        """Drop the history and emit a reset marker.

        The counter is kept so sequence numbers keep increasing and pollers
        holding an old ``after`` still see the marker.
        """

        await self.events_collection.delete_many({"game_id": self.game_id})
        await self.append({"type": "game_reset"})
