"""
Error taxonomy for the progression engine.

Every failure carries a machine-readable ``code`` and a human-readable
message. The HTTP layer maps the category (the direct subclass of
``TournamentEngineError``) to a status code; services never raise
``HTTPException`` themselves.
"""
from typing import Any, Dict, Optional


class TournamentEngineError(Exception):
    code = "TOURNAMENT_ENGINE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# --- Categories ---

class ValidationError(TournamentEngineError):
    """Input that can never succeed as given."""
    code = "VALIDATION_ERROR"


class StateError(TournamentEngineError):
    """Operation not allowed in the current lifecycle state."""
    code = "INVALID_STATE"


class DataIntegrityError(TournamentEngineError):
    """Stored data does not support the requested computation."""
    code = "DATA_INTEGRITY_ERROR"


class NotConfiguredError(TournamentEngineError):
    code = "NOT_CONFIGURED"


class NotFoundError(TournamentEngineError):
    code = "NOT_FOUND"


# --- Validation ---

class InsufficientTeams(ValidationError):
    code = "INSUFFICIENT_TEAMS"


class InvalidGroupConfiguration(ValidationError):
    code = "INVALID_GROUP_CONFIGURATION"


class NoTeamsInStage(ValidationError):
    code = "NO_TEAMS_IN_STAGE"


class UnsupportedStageType(ValidationError):
    code = "UNSUPPORTED_STAGE_TYPE"


class InvalidFixtureResult(ValidationError):
    code = "INVALID_FIXTURE_RESULT"


class InvalidSettings(ValidationError):
    code = "INVALID_SETTINGS"


class DuplicateTeam(ValidationError):
    code = "DUPLICATE_TEAM"


# --- State ---

class StageNotCompleted(StateError):
    code = "STAGE_NOT_COMPLETED"


class FixturesAlreadyGenerated(StateError):
    code = "FIXTURES_ALREADY_GENERATED"


class InvalidStageTransition(StateError):
    code = "STATE_TRANSITION_INVALID"


class StageNotEditable(StateError):
    code = "STAGE_NOT_EDITABLE"


class StageNotActive(StateError):
    code = "STAGE_NOT_ACTIVE"


class RoundNotComplete(StateError):
    code = "ROUND_NOT_COMPLETE"


class AllRoundsGenerated(StateError):
    code = "ALL_ROUNDS_GENERATED"


# --- Data integrity ---

class CannotPromoteIncompleteKnockout(DataIntegrityError):
    code = "KNOCKOUT_INCOMPLETE"


class AmbiguousRankingScope(DataIntegrityError):
    code = "AMBIGUOUS_RANKING_SCOPE"


class RankingTieUnresolved(DataIntegrityError):
    code = "RANKING_TIE_UNRESOLVED"


# --- Configuration ---

class NoPromotionConfigured(NotConfiguredError):
    code = "NO_PROMOTION_CONFIGURED"


class PromotionHandlerNotFound(NotConfiguredError):
    code = "PROMOTION_HANDLER_NOT_FOUND"


# --- Lookup ---

class TournamentNotFound(NotFoundError):
    code = "TOURNAMENT_NOT_FOUND"


class StageNotFound(NotFoundError):
    code = "STAGE_NOT_FOUND"


class FixtureNotFound(NotFoundError):
    code = "FIXTURE_NOT_FOUND"


class TeamNotFound(NotFoundError):
    code = "TEAM_NOT_FOUND"
