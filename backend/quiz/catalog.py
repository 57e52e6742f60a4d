"""Question catalog loading.

The catalog is static JSON shaped like::

    {"themes": [{"name": ..., "round": 1, "questions": [{"text", "media"?, "answer"}]}],
     "superGame": {"themes": [{"name", "question", "media"?, "answer"}]}}

``answer`` may be a plain string or ``{"text", "media"?}``; it is normalized
into :class:`~.models.Answer` here so nothing downstream has to care.
"""
from __future__ import annotations

import json
import logging
import random
from pathlib import Path
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import CatalogError
from .models import Answer, Media, Question, Round, SuperGameTheme, Theme, coerce_answer

logger = logging.getLogger(__name__)

ROUND_1_POINTS = [100, 200, 300, 400, 500]
ROUND_2_POINTS = [200, 400, 600, 800, 1000]
QUESTIONS_PER_THEME = 5
HIDDEN_QUESTIONS_PER_ROUND = 2

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "questions.json"


def points_for_round(round_no: int) -> List[int]:
    return list(ROUND_1_POINTS if round_no == 1 else ROUND_2_POINTS)


class QuestionData(BaseModel):
    text: str
    media: Optional[Media] = None
    answer: Answer

    @field_validator("answer", mode="before")
    @classmethod
    def normalize_answer(cls, value):
        return coerce_answer(value)


class ThemeData(BaseModel):
    name: str = Field(min_length=1)
    round: Round
    questions: List[QuestionData] = Field(
        min_length=QUESTIONS_PER_THEME, max_length=QUESTIONS_PER_THEME
    )


class SuperGameData(BaseModel):
    themes: List[SuperGameTheme] = Field(min_length=1)

    @model_validator(mode="after")
    def unique_names(self):
        names = [t.name for t in self.themes]
        if len(set(names)) != len(names):
            raise ValueError("super game theme names must be unique")
        return self


class QuestionsData(BaseModel):
    themes: List[ThemeData]
    super_game: SuperGameData = Field(alias="superGame")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_rounds(self):
        for round_no in (1, 2):
            names = [t.name for t in self.themes if t.round == round_no]
            if not names:
                raise ValueError(f"round {round_no} has no themes")
            if len(set(names)) != len(names):
                raise ValueError(f"theme names in round {round_no} must be unique")
        return self


def parse_catalog(data: Mapping[str, Any]) -> QuestionsData:
    try:
        return QuestionsData.model_validate(data)
    except ValidationError as exc:
        raise CatalogError(f"Malformed question catalog: {exc}") from exc


def load_catalog(path: str | Path | None = None) -> QuestionsData:
    path = Path(path) if path else DEFAULT_CATALOG_PATH
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"Cannot read question catalog {path}: {exc}") from exc
    catalog = parse_catalog(raw)
    logger.info(
        "Loaded catalog %s: %d themes, %d super game themes",
        path,
        len(catalog.themes),
        len(catalog.super_game.themes),
    )
    return catalog


def build_themes(catalog: QuestionsData, rng: random.Random | None = None) -> List[Theme]:
    """Build a fresh board and draw the hidden questions for each round."""

    rng = rng or random.Random()
    themes = [
        Theme(
            name=t.name,
            round=t.round,
            questions=[
                Question(
                    id=f"{t.round}-{t.name}-{i}",
                    text=q.text,
                    media=q.media,
                    answer=q.answer,
                )
                for i, q in enumerate(t.questions)
            ],
        )
        for t in catalog.themes
    ]

    for round_no in (1, 2):
        slots = [
            (ti, qi)
            for ti, theme in enumerate(themes)
            if theme.round == round_no
            for qi in range(len(theme.questions))
        ]
        for ti, qi in rng.sample(slots, min(HIDDEN_QUESTIONS_PER_ROUND, len(slots))):
            themes[ti].questions[qi].is_hidden = True

    return themes


def build_finale(catalog: QuestionsData) -> List[SuperGameTheme]:
    return [t.model_copy(deep=True) for t in catalog.super_game.themes]
