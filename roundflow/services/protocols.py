"""Collaborator contracts the sagas depend on.

Sagas only ever talk to these Protocols; the reference implementations in
this package are conforming stand-ins for tests, the CLI demo and local
development.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from roundflow.models.events import (
    AllScoresSubmittedPayload,
    CreateRoundRequestedPayload,
    GetRoundRequestPayload,
    ImportCompletedPayload,
    ParticipantJoinRequestPayload,
    ParticipantRemovalRequestPayload,
    ParticipantScoreUpdatedPayload,
    RoundDeleteAuthorizedPayload,
    RoundDeleteRequestedPayload,
    RoundEntityCreatedPayload,
    RoundFinalizedPayload,
    RoundMessageIDUpdateRequestedPayload,
    RoundStartRequestedPayload,
    RoundUpdateValidatedPayload,
    ScheduledRoundTagUpdatePayload,
    ScorecardIngestRequestedPayload,
    ScorecardUploadedPayload,
    ScorecardURLRequestedPayload,
    ScoreUpdateRequestPayload,
    ScoreUpdateValidatedPayload,
    UpdateRoundRequestedPayload,
)
from roundflow.models.imports import ImportJob, ParsedPlayerScore
from roundflow.models.results import OperationResult
from roundflow.models.rounds import Round

Outcome = OperationResult[Any, Any]


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


@runtime_checkable
class Clock(Protocol):
    """Source of "now" (timezone-aware, UTC)."""

    def now(self) -> datetime:
        ...


@runtime_checkable
class TimeParser(Protocol):
    """Turns free-text start times into UTC datetimes."""

    def parse(self, text: str, tz_name: str, clock: Clock) -> datetime:
        """Parse *text* as a local time in *tz_name*, relative to *clock*.

        Raises ``TimeParseError`` for input it cannot understand.
        """
        ...


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@runtime_checkable
class RoundRepository(Protocol):
    """Per-guild storage for rounds and import jobs.

    Raises ``RoundNotFoundError`` / ``ImportJobNotFoundError`` for missing
    rows and ``NoRowsAffectedError`` when an optimistic write loses a race.
    Any other exception is an infrastructure fault.
    """

    def create_round(self, round_: Round) -> Round:
        ...

    def get_round(self, guild_id: str, round_id: str) -> Round:
        ...

    def update_round(self, round_: Round) -> Round:
        """Store *round_* if its ``version`` matches the stored one."""
        ...

    def list_rounds(self, guild_id: str) -> list[Round]:
        ...

    def get_import_job(self, guild_id: str, import_id: str) -> ImportJob:
        ...

    def find_import_job(self, guild_id: str, import_id: str) -> ImportJob | None:
        ...

    def save_import_job(self, job: ImportJob) -> ImportJob:
        ...


# ---------------------------------------------------------------------------
# Scorecards
# ---------------------------------------------------------------------------


@runtime_checkable
class ScorecardParser(Protocol):
    def parse(self, file_name: str, data: bytes) -> list[ParsedPlayerScore]:
        """Read player rows; raises ``ScorecardParseError``."""
        ...


@runtime_checkable
class ScorecardFetcher(Protocol):
    def fetch(self, url: str) -> bytes:
        """Download a scorecard; raises ``ScorecardFetchError``."""
        ...


# ---------------------------------------------------------------------------
# Round service: one call per saga step
# ---------------------------------------------------------------------------


@runtime_checkable
class RoundService(Protocol):
    """The collaborating call behind every saga step.

    Business rejections come back in ``OperationResult.failure``; faults are
    raised.
    """

    # lifecycle
    def validate_and_process_round(
        self, payload: CreateRoundRequestedPayload, clock: Clock
    ) -> Outcome: ...

    def store_round(self, payload: RoundEntityCreatedPayload) -> Outcome: ...

    def validate_round_update(
        self, payload: UpdateRoundRequestedPayload, clock: Clock
    ) -> Outcome: ...

    def update_round_entity(self, payload: RoundUpdateValidatedPayload) -> Outcome: ...

    def validate_round_delete(self, payload: RoundDeleteRequestedPayload) -> Outcome: ...

    def delete_round(self, payload: RoundDeleteAuthorizedPayload) -> Outcome: ...

    def process_round_start(self, payload: RoundStartRequestedPayload) -> Outcome: ...

    def finalize_round(self, payload: AllScoresSubmittedPayload) -> Outcome: ...

    def notify_score_module(self, payload: RoundFinalizedPayload) -> Outcome: ...

    def update_event_message_id(
        self, payload: RoundMessageIDUpdateRequestedPayload
    ) -> Outcome: ...

    def get_round(self, payload: GetRoundRequestPayload) -> Outcome: ...

    # participants
    def check_participant_status(
        self, payload: ParticipantJoinRequestPayload
    ) -> Outcome: ...

    def validate_participant_join(
        self, payload: ParticipantJoinRequestPayload
    ) -> Outcome: ...

    def update_participant_status(
        self, payload: ParticipantJoinRequestPayload
    ) -> Outcome: ...

    def remove_participant(
        self, payload: ParticipantRemovalRequestPayload
    ) -> Outcome: ...

    def update_scheduled_round_tags(
        self, payload: ScheduledRoundTagUpdatePayload
    ) -> Outcome: ...

    # scoring
    def validate_score_update(self, payload: ScoreUpdateRequestPayload) -> Outcome: ...

    def update_participant_score(
        self, payload: ScoreUpdateValidatedPayload
    ) -> Outcome: ...

    def check_all_scores_submitted(
        self, payload: ParticipantScoreUpdatedPayload
    ) -> Outcome: ...

    # scorecard import
    def create_import_job(self, payload: ScorecardUploadedPayload) -> Outcome: ...

    def handle_scorecard_url_requested(
        self, payload: ScorecardURLRequestedPayload
    ) -> Outcome: ...

    def parse_scorecard(self, payload: ScorecardUploadedPayload) -> Outcome: ...

    def ingest_scorecard(self, payload: ScorecardIngestRequestedPayload) -> Outcome: ...

    def apply_imported_scores(self, payload: ImportCompletedPayload) -> Outcome: ...
