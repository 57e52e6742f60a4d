from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator

PlayerId = int
Round = Literal[1, 2]


class Media(BaseModel):
    type: Optional[Literal["image", "video"]] = None
    src: Optional[str] = None


class Answer(BaseModel):
    text: str
    media: Optional[Media] = None


def coerce_answer(value: Union[str, dict, Answer]) -> Union[dict, Answer]:
    # catalog answers are either a bare string or {text, media}
    if isinstance(value, str):
        return {"text": value}
    return value


class Player(BaseModel):
    id: PlayerId
    name: str
    score: int = 0


class Question(BaseModel):
    id: str
    text: str
    media: Optional[Media] = None
    answer: Answer
    answered: bool = False
    is_hidden: bool = False


class Theme(BaseModel):
    name: str
    round: Round
    questions: List[Question]


class CurrentQuestion(BaseModel):
    theme_index: int
    question_index: int
    point_value: int


class RedirectState(BaseModel):
    active: bool = True
    original_player_id: Optional[PlayerId] = None
    # None while the presenter still has to pick who answers
    selected_player_id: Optional[PlayerId] = None
    theme_index: int
    question_index: int
    point_value: int

    @property
    def awaiting_target(self) -> bool:
        return self.active and self.selected_player_id is None


class SuperGameTheme(BaseModel):
    name: str
    question: str
    media: Optional[Media] = None
    answer: Answer

    @field_validator("answer", mode="before")
    @classmethod
    def normalize_answer(cls, value):
        return coerce_answer(value)


# Phases: elimination -> betting -> answering -> completed
class SuperGameState(BaseModel):
    phase: Literal["elimination", "betting", "answering", "completed"] = "elimination"
    themes: List[SuperGameTheme] = Field(default_factory=list)
    eliminated_themes: List[str] = Field(default_factory=list)
    selected_theme: Optional[SuperGameTheme] = None
    bets: Dict[PlayerId, int] = Field(default_factory=dict)
    answers: Dict[PlayerId, Optional[bool]] = Field(default_factory=dict)
    current_player_index: int = 0


class GameState(BaseModel):
    themes: List[Theme] = Field(default_factory=list)
    players: List[Player] = Field(default_factory=list)
    active_player_id: Optional[PlayerId] = None
    current_question: Optional[CurrentQuestion] = None
    timer_seconds: int = Field(default=15, ge=0)
    timer_active: bool = False
    current_round: Literal[1, 2, "super"] = 1
    super_game_state: Optional[SuperGameState] = None
    redirect_state: Optional[RedirectState] = None

    def player(self, player_id: PlayerId) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)
