from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo import ReturnDocument

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:8080"
    CORS_ORIGIN_REGEX: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    GAME_ID: str = "new-year-quiz-state"
    CATALOG_PATH: Optional[str] = None
    # Where the game state snapshot survives restarts. Unset keeps it in memory only.
    DATA_DIR: Optional[str] = None
    PLAYER_NAMES: str = "Dasha,Nastya,Ira,Artyom,Maxim"

    TICK_INTERVAL_SEC: float = 1.0
    ROUND_ADVANCE_DELAY_SEC: float = 0.5
    SUPER_GAME_RESULT_DELAY_SEC: float = 1.0
    # Oldest events beyond this count are dropped.
    EVENT_LOG_LIMIT: int = 500

    @property
    def player_names(self) -> List[str]:
        return [n.strip() for n in self.PLAYER_NAMES.split(",") if n.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


class InMemoryCursor:
    def __init__(self, collection: "InMemoryCollection", query: Dict[str, Any]):
        self._collection = collection
        self._query = query or {}
        self._sort_key: Optional[str] = None
        self._sort_direction: int = 1
        self._limit: Optional[int] = None
        self._materialised: Optional[Iterator[Dict[str, Any]]] = None

    def sort(self, key: str, direction: int):
        self._sort_key = key
        self._sort_direction = direction
        return self

    def limit(self, limit: int):
        self._limit = limit
        return self

    async def _ensure_materialised(self):
        if self._materialised is not None:
            return

        docs = await self._collection._find_all(self._query)
        if self._sort_key is not None:
            docs.sort(key=lambda d: d.get(self._sort_key), reverse=self._sort_direction < 0)
        if self._limit is not None:
            docs = docs[: self._limit]
        self._materialised = iter(docs)

    def __aiter__(self):
        return self

    async def __anext__(self):
        await self._ensure_materialised()
        assert self._materialised is not None
        try:
            return next(self._materialised)
        except StopIteration as exc:
            raise StopAsyncIteration from exc


class InMemoryCollection:
    """Mongo-shaped document collection.

    With ``path`` set, every write rewrites the whole collection to that JSON
    file (temp file + rename, so readers never see half a file) and the file
    is read back on construction.
    """

    def __init__(self, path: Optional[Path] = None):
        self._docs: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()
        self._path = path
        if path is not None:
            self._docs = self._read_file(path)

    @staticmethod
    def _read_file(path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        try:
            docs = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable collection file %s: %s", path, exc)
            return []
        if not isinstance(docs, list):
            logger.warning("Ignoring collection file %s: expected a list of documents", path)
            return []
        return docs

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=self._path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._docs, fh, ensure_ascii=False)
            os.replace(tmp, self._path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    async def _find_all(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        async with self._lock:
            return [copy.deepcopy(doc) for doc in self._docs if self._matches(doc, query)]

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            for doc in self._docs:
                if self._matches(doc, query):
                    return copy.deepcopy(doc)
        return None

    def find(self, query: Dict[str, Any]):
        return InMemoryCursor(self, query)

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any]) -> bool:
        """Apply ``update`` to the first match. Returns whether anything was written."""

        async with self._lock:
            for idx, doc in enumerate(self._docs):
                if self._matches(doc, query):
                    self._docs[idx] = self._apply_update(copy.deepcopy(doc), update)
                    self._flush()
                    return True
        return False

    async def insert_one(self, document: Dict[str, Any]):
        async with self._lock:
            self._docs.append(copy.deepcopy(document))
            self._flush()

    async def delete_many(self, query: Dict[str, Any]):
        async with self._lock:
            self._docs = [doc for doc in self._docs if not self._matches(doc, query)]
            self._flush()

    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        *,
        upsert: bool = False,
        return_document: bool = ReturnDocument.BEFORE,
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            for idx, doc in enumerate(self._docs):
                if self._matches(doc, query):
                    original = copy.deepcopy(doc)
                    updated = self._apply_update(copy.deepcopy(doc), update)
                    self._docs[idx] = updated
                    self._flush()
                    return copy.deepcopy(updated if return_document == ReturnDocument.AFTER else original)

            if upsert:
                new_doc = self._apply_update(self._upsert_base(query), update)
                self._docs.append(new_doc)
                self._flush()
                if return_document == ReturnDocument.AFTER:
                    return copy.deepcopy(new_doc)
        return None

    @staticmethod
    def _upsert_base(query: Dict[str, Any]) -> Dict[str, Any]:
        # operator clauses ({"$lt": ...}) describe the match, not the new document
        return {k: copy.deepcopy(v) for k, v in query.items() if not isinstance(v, dict)}

    def _apply_update(self, doc: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        for op, payload in update.items():
            if op == "$set":
                for key, value in payload.items():
                    doc[key] = copy.deepcopy(value)
            elif op == "$inc":
                for key, value in payload.items():
                    doc[key] = doc.get(key, 0) + value
            else:  # pragma: no cover - only the above operators are used today
                raise ValueError(f"Unsupported update operator: {op}")
        return doc

    def _matches(self, doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        for key, expected in (query or {}).items():
            actual = doc.get(key)
            if isinstance(expected, dict):
                for op, operand in expected.items():
                    if op == "$gt":
                        if actual is None or actual <= operand:
                            return False
                    elif op == "$lt":
                        if actual is None or actual >= operand:
                            return False
                    else:  # pragma: no cover - extend as new operators are required
                        raise ValueError(f"Unsupported query operator: {op}")
            elif actual != expected:
                return False
        return True


class InMemoryDatabase:
    def __init__(self, data_dir: Optional[str] = None):
        state_path = Path(data_dir) / "game_state.json" if data_dir else None
        self.game_state = InMemoryCollection(state_path)
        self.game_event_counters = InMemoryCollection()
        self.game_events = InMemoryCollection()


db: Any = InMemoryDatabase(settings.DATA_DIR)
