"""Roundflow data models: all Pydantic v2, all frozen (immutable)."""

from roundflow.models.envelopes import (
    META_DISCORD_MESSAGE_ID,
    META_SUBMITTED_AT,
    Envelope,
    Result,
)
from roundflow.models.imports import (
    IMPORT_TRANSITIONS,
    ImportedScore,
    ImportJob,
    ImportStatus,
    MatchedPlayerScore,
    ParsedPlayerScore,
)
from roundflow.models.results import OperationResult
from roundflow.models.rounds import (
    SCORING_RESPONSES,
    VALID_TRANSITIONS,
    Participant,
    Response,
    Round,
    RoundMode,
    RoundState,
    ScoreInfo,
)

__all__ = [
    # envelopes
    "Envelope",
    "Result",
    "META_DISCORD_MESSAGE_ID",
    "META_SUBMITTED_AT",
    # results
    "OperationResult",
    # rounds
    "Round",
    "RoundState",
    "RoundMode",
    "VALID_TRANSITIONS",
    "Participant",
    "Response",
    "SCORING_RESPONSES",
    "ScoreInfo",
    # imports
    "ImportJob",
    "ImportStatus",
    "IMPORT_TRANSITIONS",
    "ParsedPlayerScore",
    "MatchedPlayerScore",
    "ImportedScore",
]
