from __future__ import annotations


class CatalogError(RuntimeError):
    """The question catalog could not be loaded; the game cannot start."""


class GameRejection(ValueError):
    """An intent was refused. State is left exactly as it was."""

    code = "rejected"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class AlreadyAnswered(GameRejection):
    code = "already_answered"


class InvalidQuestion(GameRejection):
    code = "invalid_question"


class QuestionInProgress(GameRejection):
    code = "question_in_progress"


class NoOpenQuestion(GameRejection):
    code = "no_open_question"


class UnknownPlayer(GameRejection):
    code = "unknown_player"


class InvalidRedirectTarget(GameRejection):
    code = "invalid_redirect_target"


class NoPendingRedirect(GameRejection):
    code = "no_pending_redirect"


class NoEligiblePlayers(GameRejection):
    code = "no_eligible_players"


class WrongPhase(GameRejection):
    code = "wrong_phase"


class PhaseIncomplete(GameRejection):
    code = "phase_incomplete"


class InvalidTheme(GameRejection):
    code = "invalid_theme"


class InvalidBet(GameRejection):
    code = "invalid_bet"


class ConfirmationRequired(GameRejection):
    code = "confirmation_required"
