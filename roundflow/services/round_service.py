"""Reference ``RoundService``: the collaborating call behind each saga step.

Every method answers with an ``OperationResult``.  Expected business
rejections (bad input, wrong state, not the creator, round full) populate
``failure``; repository faults such as ``NoRowsAffectedError`` are raised
so the saga layer retries the message.

Each write is replay-safe: a step that finds its effect already applied
answers with the same success it gave the first time.
"""

from __future__ import annotations

import logging
import uuid

from roundflow.core.hasher import canonical_json_bytes, content_address, file_checksum
from roundflow.core.round_machine import advance_import, transition_round
from roundflow.errors import (
    InvalidTransitionError,
    RoundNotFoundError,
    ScorecardFetchError,
    ScorecardParseError,
    TimeParseError,
)
from roundflow.models.events import (
    AllScoresSubmittedPayload,
    CreateRoundRequestedPayload,
    DiscordRoundStartPayload,
    GetRoundRequestPayload,
    ImportCompletedPayload,
    ImportFailedPayload,
    ParticipantJoinErrorPayload,
    ParticipantJoinedPayload,
    ParticipantJoinRequestPayload,
    ParticipantRemovalErrorPayload,
    ParticipantRemovalRequestPayload,
    ParticipantRemovedPayload,
    ParticipantScoreUpdatedPayload,
    ParticipantStatusCheckErrorPayload,
    ProcessRoundScoresRequestedPayload,
    RoundCreatedPayload,
    RoundCreationFailedPayload,
    RoundDeleteAuthorizedPayload,
    RoundDeletedPayload,
    RoundDeleteErrorPayload,
    RoundDeleteRequestedPayload,
    RoundDeleteValidatedPayload,
    RoundEntityCreatedPayload,
    RoundEntityUpdated,
    RoundFinalizationErrorPayload,
    RoundFinalizationFailedPayload,
    RoundFinalizedPayload,
    RoundMessageIDUpdatedPayload,
    RoundMessageIDUpdateRequestedPayload,
    RoundRetrievalFailedPayload,
    RoundRetrievedPayload,
    RoundStartFailedPayload,
    RoundStartRequestedPayload,
    RoundUpdateErrorPayload,
    RoundUpdateValidatedPayload,
    RoundValidationFailedPayload,
    ScheduledRoundsTagsUpdatedPayload,
    ScheduledRoundTagChange,
    ScheduledRoundTagUpdateErrorPayload,
    ScheduledRoundTagUpdatePayload,
    ScorecardIngestRequestedPayload,
    ScorecardParsedPayload,
    ScorecardParseFailedPayload,
    ScorecardUploadedPayload,
    ScorecardURLRequestedPayload,
    ScoresPartiallySubmittedPayload,
    ScoreUpdateErrorPayload,
    ScoreUpdateRequestPayload,
    ScoreUpdateValidatedPayload,
    UpdateRoundRequestedPayload,
)
from roundflow.models.imports import ImportedScore, ImportJob, ImportStatus
from roundflow.models.results import OperationResult
from roundflow.models.rounds import (
    SCORING_RESPONSES,
    Participant,
    Response,
    Round,
    RoundMode,
    RoundState,
    ScoreInfo,
)
from roundflow.services.protocols import (
    Clock,
    RoundRepository,
    ScorecardFetcher,
    ScorecardParser,
    TimeParser,
)
from roundflow.services.time_parser import is_in_past

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100

# Namespace for deterministic round ids derived from the creation request.
_ROUND_ID_NAMESPACE = uuid.UUID("6f1c1f5e-8b0e-4c55-9a53-3f0b8f6b1d2a")

# Pipeline order used to make import steps replay-safe.
_IMPORT_ORDER = [
    ImportStatus.UPLOADED,
    ImportStatus.PARSED,
    ImportStatus.NORMALIZED,
    ImportStatus.MATCHED,
    ImportStatus.INGESTED,
    ImportStatus.APPLIED,
]

ok = OperationResult.ok
fail = OperationResult.fail


class DefaultRoundService:
    """Conforming ``RoundService`` over a ``RoundRepository``.

    Parameters
    ----------
    repository:
        Round and import job storage.
    time_parser:
        Resolves free-text start times.
    scorecard_parser:
        Reads uploaded scorecard bytes.
    scorecard_fetcher:
        Downloads scorecards for URL imports.  ``None`` rejects URL imports.
    allow_late_join:
        Whether players may join a round that is already in progress.
    scorecard_max_bytes:
        Upload size limit.
    """

    def __init__(
        self,
        repository: RoundRepository,
        time_parser: TimeParser,
        scorecard_parser: ScorecardParser,
        scorecard_fetcher: ScorecardFetcher | None = None,
        *,
        allow_late_join: bool = True,
        scorecard_max_bytes: int = 5 * 1024 * 1024,
    ) -> None:
        self._repo = repository
        self._time_parser = time_parser
        self._scorecard_parser = scorecard_parser
        self._scorecard_fetcher = scorecard_fetcher
        self._allow_late_join = allow_late_join
        self._max_bytes = scorecard_max_bytes

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def validate_and_process_round(
        self, payload: CreateRoundRequestedPayload, clock: Clock
    ) -> OperationResult:
        errors: list[str] = []
        title = payload.title.strip()
        if not payload.guild_id:
            errors.append("guild id is required")
        if not payload.user_id:
            errors.append("user id is required")
        if not title:
            errors.append("title is required")
        elif len(title) > MAX_TITLE_LENGTH:
            errors.append(f"title must be at most {MAX_TITLE_LENGTH} characters")
        if payload.max_participants is not None and payload.max_participants < 1:
            errors.append("max participants must be at least 1")

        now = clock.now()
        start_time = None
        try:
            start_time = self._time_parser.parse(
                payload.start_time, payload.timezone, clock
            )
        except TimeParseError as exc:
            errors.append(str(exc))
        else:
            if is_in_past(start_time, now):
                errors.append("start time must be in the future")

        if errors or start_time is None:
            return fail(
                RoundValidationFailedPayload(
                    guild_id=payload.guild_id,
                    user_id=payload.user_id,
                    error_messages=errors,
                )
            )

        # Same request at the same submission instant -> same round id.
        seed = canonical_json_bytes(
            {"request": payload.model_dump(mode="json"), "at": now.isoformat()}
        ).decode("ascii")
        round_ = Round(
            guild_id=payload.guild_id,
            round_id=str(uuid.uuid5(_ROUND_ID_NAMESPACE, seed)),
            title=title,
            description=payload.description.strip(),
            location=payload.location.strip(),
            start_time=start_time,
            created_by=payload.user_id,
            mode=payload.mode,
            max_participants=payload.max_participants,
        )
        return ok(
            RoundEntityCreatedPayload(
                guild_id=payload.guild_id, round=round_, channel_id=payload.channel_id
            )
        )

    def store_round(self, payload: RoundEntityCreatedPayload) -> OperationResult:
        round_ = payload.round
        if round_.guild_id != payload.guild_id:
            return fail(
                RoundCreationFailedPayload(
                    guild_id=payload.guild_id,
                    user_id=round_.created_by,
                    error_message="round belongs to a different guild",
                )
            )
        if round_.state != RoundState.UPCOMING:
            return fail(
                RoundCreationFailedPayload(
                    guild_id=payload.guild_id,
                    user_id=round_.created_by,
                    error_message=f"a new round cannot start as {round_.state.value}",
                )
            )
        try:
            stored = self._repo.get_round(round_.guild_id, round_.round_id)
            logger.info("Round %s already stored; replaying success", round_.round_id)
        except RoundNotFoundError:
            stored = self._repo.create_round(round_)
        return ok(
            RoundCreatedPayload(
                guild_id=payload.guild_id, round=stored, channel_id=payload.channel_id
            )
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def validate_round_update(
        self, payload: UpdateRoundRequestedPayload, clock: Clock
    ) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                RoundUpdateErrorPayload(
                    guild_id=payload.guild_id, round_id=payload.round_id, error=message
                )
            )

        if not payload.round_id:
            return error("round id is required")
        fields = (payload.title, payload.description, payload.location, payload.start_time)
        if all(f is None for f in fields):
            return error("no fields to update")
        if payload.title is not None and not payload.title.strip():
            return error("title cannot be empty")
        if payload.title is not None and len(payload.title.strip()) > MAX_TITLE_LENGTH:
            return error(f"title must be at most {MAX_TITLE_LENGTH} characters")

        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.is_terminal:
            return error(f"cannot update a {round_.state.value} round")

        start_time = None
        if payload.start_time is not None:
            try:
                start_time = self._time_parser.parse(
                    payload.start_time, payload.timezone, clock
                )
            except TimeParseError as exc:
                return error(str(exc))
            if is_in_past(start_time, clock.now()):
                return error("start time must be in the future")

        return ok(
            RoundUpdateValidatedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                title=payload.title.strip() if payload.title is not None else None,
                description=payload.description,
                location=payload.location,
                start_time=start_time,
            )
        )

    def update_round_entity(self, payload: RoundUpdateValidatedPayload) -> OperationResult:
        try:
            current = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return fail(
                RoundUpdateErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    error="round not found",
                )
            )
        if current.is_terminal:
            return fail(
                RoundUpdateErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    error=f"cannot update a {current.state.value} round",
                )
            )

        changes = {
            key: value
            for key, value in (
                ("title", payload.title),
                ("description", payload.description),
                ("location", payload.location),
                ("start_time", payload.start_time),
            )
            if value is not None
        }
        stored = self._repo.update_round(current.model_copy(update=changes))
        return ok(
            RoundEntityUpdated(
                guild_id=payload.guild_id,
                round=stored,
                previous_start_time=current.start_time,
            )
        )

    def update_event_message_id(
        self, payload: RoundMessageIDUpdateRequestedPayload
    ) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                RoundUpdateErrorPayload(
                    guild_id=payload.guild_id, round_id=payload.round_id, error=message
                )
            )

        if not payload.event_message_id:
            return error("event message id is required")
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.event_message_id != payload.event_message_id:
            round_ = self._repo.update_round(
                round_.model_copy(update={"event_message_id": payload.event_message_id})
            )
        return ok(
            RoundMessageIDUpdatedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                event_message_id=round_.event_message_id,
            )
        )

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def get_round(self, payload: GetRoundRequestPayload) -> OperationResult:
        """Read-only lookup of a round within the requesting guild."""
        if not payload.round_id:
            return fail(
                RoundRetrievalFailedPayload(
                    guild_id=payload.guild_id, round_id="", error="round id is required"
                )
            )
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return fail(
                RoundRetrievalFailedPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    error="round not found",
                )
            )
        return ok(RoundRetrievedPayload(guild_id=payload.guild_id, round=round_))

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def validate_round_delete(self, payload: RoundDeleteRequestedPayload) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                RoundDeleteErrorPayload(
                    guild_id=payload.guild_id, round_id=payload.round_id, error=message
                )
            )

        if not payload.round_id:
            return error("round id is required")
        if not payload.requesting_user_id:
            return error("requesting user id is required")
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.created_by != payload.requesting_user_id:
            return error("unauthorized: only the round creator can delete this round")
        if round_.state == RoundState.FINALIZED:
            return error("cannot delete a finalized round")
        return ok(
            RoundDeleteValidatedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                requesting_user_id=payload.requesting_user_id,
            )
        )

    def delete_round(self, payload: RoundDeleteAuthorizedPayload) -> OperationResult:
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return fail(
                RoundDeleteErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    error="round not found",
                )
            )
        if round_.state != RoundState.DELETED:
            try:
                deleted = transition_round(round_, RoundState.DELETED)
            except InvalidTransitionError as exc:
                return fail(
                    RoundDeleteErrorPayload(
                        guild_id=payload.guild_id, round_id=payload.round_id, error=str(exc)
                    )
                )
            round_ = self._repo.update_round(deleted)
        return ok(
            RoundDeletedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                event_message_id=round_.event_message_id,
            )
        )

    # ------------------------------------------------------------------
    # Start and finalize
    # ------------------------------------------------------------------

    def process_round_start(self, payload: RoundStartRequestedPayload) -> OperationResult:
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return fail(
                RoundStartFailedPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    error="round not found",
                )
            )
        if round_.state != RoundState.IN_PROGRESS:
            try:
                started = transition_round(round_, RoundState.IN_PROGRESS)
            except InvalidTransitionError as exc:
                return fail(
                    RoundStartFailedPayload(
                        guild_id=payload.guild_id, round_id=payload.round_id, error=str(exc)
                    )
                )
            round_ = self._repo.update_round(started)
        return ok(
            DiscordRoundStartPayload(
                guild_id=payload.guild_id,
                round_id=round_.round_id,
                title=round_.title,
                location=round_.location,
                start_time=round_.start_time,
                participants=round_.participants,
                event_message_id=round_.event_message_id,
            )
        )

    def finalize_round(self, payload: AllScoresSubmittedPayload) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                RoundFinalizationErrorPayload(
                    guild_id=payload.guild_id, round_id=payload.round_id, error=message
                )
            )

        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.state != RoundState.FINALIZED:
            try:
                finalized = transition_round(round_, RoundState.FINALIZED)
            except InvalidTransitionError as exc:
                return error(str(exc))
            round_ = self._repo.update_round(finalized)
        return ok(
            RoundFinalizedPayload(
                guild_id=payload.guild_id, round_id=round_.round_id, round=round_
            )
        )

    def notify_score_module(self, payload: RoundFinalizedPayload) -> OperationResult:
        round_ = payload.round
        singles = round_.mode == RoundMode.SINGLES
        scores = [
            ScoreInfo(
                user_id=p.user_id,
                score=p.score,
                tag_number=p.tag_number if singles else None,
            )
            for p in round_.participants
            if p.score is not None
        ]
        if not scores:
            return fail(
                RoundFinalizationErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    error="no participants with submitted scores",
                )
            )
        return ok(
            ProcessRoundScoresRequestedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                mode=round_.mode,
                scores=scores,
            )
        )

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def check_participant_status(
        self, payload: ParticipantJoinRequestPayload
    ) -> OperationResult:
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return fail(
                ParticipantStatusCheckErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    error="round not found",
                )
            )
        current = round_.get_participant(payload.user_id)
        if current is not None and current.response == payload.response:
            # Clicking the same RSVP again withdraws it.
            return ok(
                ParticipantRemovalRequestPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                )
            )
        return ok(payload)

    def validate_participant_join(
        self, payload: ParticipantJoinRequestPayload
    ) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                ParticipantJoinErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    error=message,
                )
            )

        if not payload.round_id or not payload.user_id:
            return error("round id and user id are required")
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.is_terminal:
            return error(f"cannot join a {round_.state.value} round")

        joined_late = round_.state == RoundState.IN_PROGRESS
        if joined_late and not self._allow_late_join:
            return error("round has already started")

        if payload.response != Response.DECLINE and round_.max_participants is not None:
            taken = sum(
                1
                for p in round_.participants
                if p.user_id != payload.user_id and p.response in SCORING_RESPONSES
            )
            if taken >= round_.max_participants:
                return error("round is full")

        return ok(payload.model_copy(update={"joined_late": joined_late}))

    def update_participant_status(
        self, payload: ParticipantJoinRequestPayload
    ) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                ParticipantJoinErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    error=message,
                )
            )

        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.is_terminal:
            return error(f"cannot join a {round_.state.value} round")

        participants = _upsert_participant(round_.participants, payload)
        stored = self._repo.update_round(
            round_.model_copy(update={"participants": participants})
        )
        return ok(
            ParticipantJoinedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                participants=stored.participants,
                joined_late=payload.joined_late,
                event_message_id=stored.event_message_id,
            )
        )

    def remove_participant(
        self, payload: ParticipantRemovalRequestPayload
    ) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                ParticipantRemovalErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    error=message,
                )
            )

        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.is_terminal:
            return error(f"cannot leave a {round_.state.value} round")

        if round_.get_participant(payload.user_id) is not None:
            remaining = [p for p in round_.participants if p.user_id != payload.user_id]
            round_ = self._repo.update_round(
                round_.model_copy(update={"participants": remaining})
            )
        return ok(
            ParticipantRemovedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                participants=round_.participants,
                event_message_id=round_.event_message_id,
            )
        )

    def update_scheduled_round_tags(
        self, payload: ScheduledRoundTagUpdatePayload
    ) -> OperationResult:
        """Copy changed tag numbers onto participants of upcoming rounds.

        Only participants whose stored tag differs are rewritten, so a
        redelivered update reports no changed rounds.
        """
        if not payload.guild_id:
            return fail(
                ScheduledRoundTagUpdateErrorPayload(
                    guild_id="", error="guild id is required"
                )
            )
        upcoming = [
            r for r in self._repo.list_rounds(payload.guild_id)
            if r.state == RoundState.UPCOMING
        ]
        changes: list[ScheduledRoundTagChange] = []
        for round_ in upcoming:
            participants, changed = _apply_tags(round_.participants, payload.changed_tags)
            if not changed:
                continue
            stored = self._repo.update_round(
                round_.model_copy(update={"participants": participants})
            )
            logger.info(
                "Synced %d participant tag(s) in upcoming round %s (guild=%s)",
                changed,
                stored.round_id,
                payload.guild_id,
            )
            changes.append(
                ScheduledRoundTagChange(
                    round_id=stored.round_id,
                    title=stored.title,
                    start_time=stored.start_time,
                    event_message_id=stored.event_message_id,
                    participants=stored.participants,
                    participants_changed=changed,
                )
            )
        return ok(
            ScheduledRoundsTagsUpdatedPayload(
                guild_id=payload.guild_id,
                updated_rounds=changes,
                rounds_checked=len(upcoming),
                participants_updated=sum(c.participants_changed for c in changes),
            )
        )

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------

    def validate_score_update(self, payload: ScoreUpdateRequestPayload) -> OperationResult:
        problems = []
        if not payload.round_id:
            problems.append("round id is required")
        if not payload.user_id:
            problems.append("user id is required")
        if payload.score is None:
            problems.append("score is required")
        if problems:
            return fail(
                ScoreUpdateErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    error="; ".join(problems),
                )
            )
        return ok(
            ScoreUpdateValidatedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                score=payload.score,
            )
        )

    def update_participant_score(
        self, payload: ScoreUpdateValidatedPayload
    ) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                ScoreUpdateErrorPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    error=message,
                )
            )

        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.state != RoundState.IN_PROGRESS:
            return error(f"cannot score a {round_.state.value} round")

        current = round_.get_participant(payload.user_id)
        if current is not None and current.response not in SCORING_RESPONSES:
            return error("participant declined this round")

        if current is None:
            participants = [
                *round_.participants,
                Participant(
                    user_id=payload.user_id, response=Response.ACCEPT, score=payload.score
                ),
            ]
        else:
            participants = [
                p.model_copy(update={"score": payload.score})
                if p.user_id == payload.user_id
                else p
                for p in round_.participants
            ]
        stored = self._repo.update_round(
            round_.model_copy(update={"participants": participants})
        )
        return ok(
            ParticipantScoreUpdatedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                score=payload.score,
                participants=stored.participants,
                event_message_id=stored.event_message_id,
            )
        )

    def check_all_scores_submitted(
        self, payload: ParticipantScoreUpdatedPayload
    ) -> OperationResult:
        def error(message: str) -> OperationResult:
            return fail(
                RoundFinalizationFailedPayload(
                    guild_id=payload.guild_id, round_id=payload.round_id, error=message
                )
            )

        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found")
        if round_.state == RoundState.DELETED:
            return error("round was deleted")

        required = [p for p in round_.participants if p.response == Response.ACCEPT]
        if not required:
            return error("round has no accepted participants")
        missing = [p.user_id for p in required if p.score is None]
        if missing:
            return ok(
                ScoresPartiallySubmittedPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    participants=round_.participants,
                    missing_user_ids=missing,
                    event_message_id=round_.event_message_id,
                )
            )
        return ok(
            AllScoresSubmittedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                event_message_id=round_.event_message_id,
                participants=round_.participants,
            )
        )

    # ------------------------------------------------------------------
    # Scorecard import
    # ------------------------------------------------------------------

    def create_import_job(self, payload: ScorecardUploadedPayload) -> OperationResult:
        def error(message: str, code: str) -> OperationResult:
            return fail(_import_failed(payload, message, code))

        if not payload.import_id:
            return error("import id is required", "INVALID_REQUEST")
        if not payload.file_data and not payload.file_url:
            return error("no scorecard file or URL provided", "INVALID_REQUEST")
        if len(payload.file_data) > self._max_bytes:
            return error(
                f"scorecard exceeds {self._max_bytes} bytes", "FILE_TOO_LARGE"
            )
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            return error("round not found", "ROUND_NOT_FOUND")
        if round_.is_terminal:
            return error(f"cannot import into a {round_.state.value} round", "ROUND_CLOSED")

        checksum = (
            file_checksum(payload.file_data)
            if payload.file_data
            else content_address({"file_url": payload.file_url})
        )
        existing = self._repo.find_import_job(payload.guild_id, payload.import_id)
        if existing is not None:
            if existing.round_id != payload.round_id:
                return error("import id already used for another round", "IMPORT_CONFLICT")
            if existing.file_checksum != checksum:
                return error("import id reused for a different file", "IMPORT_CONFLICT")
            if existing.is_terminal:
                return error(
                    f"import already {existing.status.value}", "IMPORT_FINISHED"
                )
            logger.info("Import %s already recorded; resuming", payload.import_id)
            return ok(payload)

        self._repo.save_import_job(
            ImportJob(
                import_id=payload.import_id,
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                file_name=payload.file_name,
                file_url=payload.file_url,
                file_checksum=checksum,
            )
        )
        return ok(payload)

    def handle_scorecard_url_requested(
        self, payload: ScorecardURLRequestedPayload
    ) -> OperationResult:
        url = payload.file_url.strip()
        if not url.startswith(("http://", "https://")):
            return fail(
                ImportFailedPayload(
                    import_id=payload.import_id,
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    error=f"unsupported scorecard URL: {url!r}",
                    error_code="INVALID_URL",
                )
            )
        return self.create_import_job(
            ScorecardUploadedPayload(
                import_id=payload.import_id,
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                channel_id=payload.channel_id,
                event_message_id=payload.event_message_id,
                file_name=url.rsplit("/", 1)[-1],
                file_url=url,
                notes=payload.notes,
            )
        )

    def parse_scorecard(self, payload: ScorecardUploadedPayload) -> OperationResult:
        job = self._repo.find_import_job(payload.guild_id, payload.import_id)
        failure = _job_mismatch(payload, job)
        if failure is not None:
            return failure
        if job.is_terminal:
            return fail(
                _import_failed(payload, f"import already {job.status.value}", "IMPORT_FINISHED")
            )
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            self._fail_job(job, "round not found")
            return fail(_import_failed(payload, "round not found", "ROUND_NOT_FOUND"))

        data = payload.file_data
        if not data:
            if self._scorecard_fetcher is None:
                self._fail_job(job, "URL imports are not enabled")
                return fail(
                    _import_failed(payload, "URL imports are not enabled", "URL_DISABLED")
                )
            try:
                data = self._scorecard_fetcher.fetch(payload.file_url)
            except ScorecardFetchError as exc:
                self._fail_job(job, str(exc))
                return fail(_import_failed(payload, str(exc), "DOWNLOAD_FAILED"))

        try:
            players = self._scorecard_parser.parse(payload.file_name, data)
        except ScorecardParseError as exc:
            self._fail_job(job, str(exc))
            return fail(
                ScorecardParseFailedPayload(
                    import_id=payload.import_id,
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    error=str(exc),
                )
            )

        self._advance(job, ImportStatus.NORMALIZED)
        return ok(
            ScorecardParsedPayload(
                import_id=payload.import_id,
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                channel_id=payload.channel_id,
                event_message_id=payload.event_message_id or round_.event_message_id,
                mode=round_.mode,
                players=players,
            )
        )

    def ingest_scorecard(self, payload: ScorecardIngestRequestedPayload) -> OperationResult:
        job = self._repo.find_import_job(payload.guild_id, payload.import_id)
        failure = _job_mismatch(payload, job)
        if failure is not None:
            return failure
        if job.is_terminal:
            return fail(
                _import_failed(payload, f"import already {job.status.value}", "IMPORT_FINISHED")
            )

        unmatched = [p.raw_name for p in payload.players if not p.user_id]
        if unmatched and payload.mode == RoundMode.DOUBLES:
            message = "doubles imports need every player matched: " + ", ".join(unmatched)
            self._fail_job(job, message)
            return fail(_import_failed(payload, message, "UNMATCHED_PLAYERS"))

        scores: list[ImportedScore] = []
        seen: set[str] = set()
        for player in payload.players:
            if not player.user_id or player.user_id in seen:
                continue
            seen.add(player.user_id)
            scores.append(
                ImportedScore(
                    user_id=player.user_id, score=player.score, raw_name=player.raw_name
                )
            )
        if not scores:
            self._fail_job(job, "no players could be matched")
            return fail(_import_failed(payload, "no players could be matched", "NO_MATCHES"))

        if unmatched:
            logger.info(
                "Import %s: skipping %d unmatched guest(s)", payload.import_id, len(unmatched)
            )
        self._advance(job, ImportStatus.INGESTED)
        return ok(
            ImportCompletedPayload(
                import_id=payload.import_id,
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                channel_id=payload.channel_id,
                event_message_id=payload.event_message_id,
                scores=scores,
                skipped_players=unmatched,
            )
        )

    def apply_imported_scores(self, payload: ImportCompletedPayload) -> OperationResult:
        job = self._repo.find_import_job(payload.guild_id, payload.import_id)
        failure = _job_mismatch(payload, job)
        if failure is not None:
            return failure
        if job.status == ImportStatus.FAILED:
            return fail(_import_failed(payload, "import already failed", "IMPORT_FINISHED"))
        try:
            round_ = self._repo.get_round(payload.guild_id, payload.round_id)
        except RoundNotFoundError:
            self._fail_job(job, "round not found")
            return fail(_import_failed(payload, "round not found", "ROUND_NOT_FOUND"))

        if job.status != ImportStatus.APPLIED:
            if round_.state != RoundState.IN_PROGRESS:
                message = f"cannot apply scores to a {round_.state.value} round"
                self._fail_job(job, message)
                return fail(_import_failed(payload, message, "ROUND_NOT_IN_PROGRESS"))
            participants = list(round_.participants)
            for imported in payload.scores:
                participants = _apply_score(participants, imported)
            round_ = self._repo.update_round(
                round_.model_copy(update={"participants": participants})
            )
            self._advance(job, ImportStatus.APPLIED)

        return ok(
            ParticipantScoreUpdatedPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                import_id=payload.import_id,
                participants=round_.participants,
                event_message_id=round_.event_message_id or payload.event_message_id,
            )
        )

    # ------------------------------------------------------------------
    # Import job helpers
    # ------------------------------------------------------------------

    def _advance(self, job: ImportJob, target: ImportStatus) -> ImportJob:
        """Walk *job* forward to *target*, skipping statuses already passed."""
        for status in _IMPORT_ORDER[: _IMPORT_ORDER.index(target) + 1]:
            if _IMPORT_ORDER.index(job.status) < _IMPORT_ORDER.index(status):
                job = advance_import(job, status)
        return self._repo.save_import_job(job)

    def _fail_job(self, job: ImportJob, error: str) -> None:
        if not job.is_terminal:
            self._repo.save_import_job(advance_import(job, ImportStatus.FAILED, error))
        logger.warning("Import %s failed: %s", job.import_id, error)


# ---------------------------------------------------------------------------
# Participant helpers
# ---------------------------------------------------------------------------


def _upsert_participant(
    participants: list[Participant], request: ParticipantJoinRequestPayload
) -> list[Participant]:
    """Insert or update the requester, keyed by user id.

    An update without a tag keeps the tag already resolved; a score survives
    only while the response still allows one.
    """
    updated: list[Participant] = []
    found = False
    for p in participants:
        if p.user_id != request.user_id:
            updated.append(p)
            continue
        found = True
        updated.append(
            Participant(
                user_id=p.user_id,
                response=request.response,
                tag_number=(
                    request.tag_number if request.tag_number is not None else p.tag_number
                ),
                score=p.score if request.response in SCORING_RESPONSES else None,
            )
        )
    if not found:
        updated.append(
            Participant(
                user_id=request.user_id,
                response=request.response,
                tag_number=request.tag_number,
            )
        )
    return updated


def _apply_tags(
    participants: list[Participant], changed_tags: dict[str, int]
) -> tuple[list[Participant], int]:
    """Return the participant list with new tags and how many entries changed."""
    updated: list[Participant] = []
    changed = 0
    for p in participants:
        tag = changed_tags.get(p.user_id)
        if tag is not None and tag != p.tag_number:
            p = p.model_copy(update={"tag_number": tag})
            changed += 1
        updated.append(p)
    return updated, changed


def _apply_score(participants: list[Participant], imported: ImportedScore) -> list[Participant]:
    """Record an imported score; a scorecard entry means the player took part."""
    for i, p in enumerate(participants):
        if p.user_id == imported.user_id:
            response = p.response if p.response in SCORING_RESPONSES else Response.ACCEPT
            participants[i] = p.model_copy(update={"response": response, "score": imported.score})
            return participants
    participants.append(
        Participant(user_id=imported.user_id, response=Response.ACCEPT, score=imported.score)
    )
    return participants


def _import_failed(payload, message: str, code: str) -> ImportFailedPayload:
    return ImportFailedPayload(
        import_id=payload.import_id,
        guild_id=payload.guild_id,
        round_id=payload.round_id,
        user_id=payload.user_id,
        error=message,
        error_code=code,
    )


def _job_mismatch(payload, job: ImportJob | None) -> OperationResult | None:
    """Failure for a missing job or one recorded against a different round."""
    if job is None:
        return fail(_import_failed(payload, "import job not found", "IMPORT_NOT_FOUND"))
    if job.round_id != payload.round_id:
        return fail(
            _import_failed(
                payload, "import id already used for another round", "IMPORT_CONFLICT"
            )
        )
    return None
