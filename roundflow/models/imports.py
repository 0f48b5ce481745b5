"""Scorecard import job models (idempotent by guild and ``import_id``)."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ImportStatus(str, Enum):
    """Pipeline status of a scorecard import."""

    UPLOADED = "uploaded"
    PARSED = "parsed"
    NORMALIZED = "normalized"
    MATCHED = "matched"
    INGESTED = "ingested"
    APPLIED = "applied"
    FAILED = "failed"


# Forward-only progression; FAILED is reachable from every live status.
# APPLIED and FAILED are terminal; a terminal job is never resumed.
IMPORT_TRANSITIONS: dict[ImportStatus, set[ImportStatus]] = {
    ImportStatus.UPLOADED: {ImportStatus.PARSED, ImportStatus.FAILED},
    ImportStatus.PARSED: {ImportStatus.NORMALIZED, ImportStatus.FAILED},
    ImportStatus.NORMALIZED: {ImportStatus.MATCHED, ImportStatus.FAILED},
    ImportStatus.MATCHED: {ImportStatus.INGESTED, ImportStatus.FAILED},
    ImportStatus.INGESTED: {ImportStatus.APPLIED, ImportStatus.FAILED},
    ImportStatus.APPLIED: set(),  # terminal
    ImportStatus.FAILED: set(),  # terminal
}


class ImportJob(BaseModel):
    """Tracks one scorecard import through the pipeline."""

    model_config = ConfigDict(frozen=True)

    import_id: str
    guild_id: str
    round_id: str
    user_id: str = ""
    file_name: str = ""
    file_url: str = ""
    file_checksum: str = ""  # "sha256:<hex>" of the uploaded bytes
    status: ImportStatus = ImportStatus.UPLOADED
    error: str = ""
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_terminal(self) -> bool:
        return not IMPORT_TRANSITIONS[self.status]


class ParsedPlayerScore(BaseModel):
    """A row read from a scorecard, before user matching."""

    model_config = ConfigDict(frozen=True)

    raw_name: str
    normalized_name: str
    score: int
    hole_scores: list[int] = []


class MatchedPlayerScore(BaseModel):
    """A parsed row after the user-matching collaborator resolved it."""

    model_config = ConfigDict(frozen=True)

    raw_name: str
    normalized_name: str = ""
    user_id: str | None = None  # None for unmatched guests
    score: int


class ImportedScore(BaseModel):
    """A matched score ready to be applied to a round."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    score: int
    raw_name: str = ""
