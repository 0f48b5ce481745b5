"""Typed payloads carried on the bus, grouped by saga.

Every payload is a frozen Pydantic model.  The dispatcher decodes the JSON
object in an envelope into one of these before a handler sees it, and
encodes handler results with ``model_dump(mode="json")``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Base64Bytes, BaseModel, ConfigDict

from roundflow.models.imports import (
    ImportedScore,
    MatchedPlayerScore,
    ParsedPlayerScore,
)
from roundflow.models.rounds import (
    Participant,
    Response,
    Round,
    RoundMode,
    ScoreInfo,
)


class EventPayload(BaseModel):
    """Base for all bus payloads."""

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Round lifecycle: create
# ---------------------------------------------------------------------------


class CreateRoundRequestedPayload(EventPayload):
    """Raw creation request; ``start_time`` is free text."""

    guild_id: str
    title: str
    description: str = ""
    location: str = ""
    start_time: str
    timezone: str = ""
    user_id: str
    channel_id: str = ""
    mode: RoundMode = RoundMode.SINGLES
    max_participants: int | None = None


class RoundValidationFailedPayload(EventPayload):
    guild_id: str
    user_id: str = ""
    error_messages: list[str]


class RoundEntityCreatedPayload(EventPayload):
    """A validated, not yet persisted round."""

    guild_id: str
    round: Round
    channel_id: str = ""


class RoundCreatedPayload(EventPayload):
    guild_id: str
    round: Round
    channel_id: str = ""


class RoundCreationFailedPayload(EventPayload):
    guild_id: str
    user_id: str = ""
    error_message: str


# ---------------------------------------------------------------------------
# Round lifecycle: update
# ---------------------------------------------------------------------------


class UpdateRoundRequestedPayload(EventPayload):
    """Partial update; ``None`` means "leave unchanged"."""

    guild_id: str
    round_id: str
    user_id: str
    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_time: str | None = None
    timezone: str = ""


class RoundUpdateValidatedPayload(EventPayload):
    """Update request with the start time already resolved to UTC."""

    guild_id: str
    round_id: str
    user_id: str
    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_time: datetime | None = None


class RoundUpdateErrorPayload(EventPayload):
    guild_id: str
    round_id: str = ""
    error: str


class RoundEntityUpdated(EventPayload):
    """Service answer for a persisted update (not published as-is)."""

    guild_id: str
    round: Round
    previous_start_time: datetime

    @property
    def schedule_changed(self) -> bool:
        return self.round.start_time != self.previous_start_time


class RoundUpdatedPayload(EventPayload):
    guild_id: str
    round: Round


class RoundScheduleUpdatedPayload(EventPayload):
    """Emitted only when an update moved the start time."""

    guild_id: str
    round_id: str
    title: str
    location: str = ""
    start_time: datetime
    previous_start_time: datetime


class RoundMessageIDUpdateRequestedPayload(EventPayload):
    guild_id: str
    round_id: str
    event_message_id: str


class RoundMessageIDUpdatedPayload(EventPayload):
    guild_id: str
    round_id: str
    event_message_id: str


# ---------------------------------------------------------------------------
# Round retrieval
# ---------------------------------------------------------------------------


class GetRoundRequestPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str = ""


class RoundRetrievedPayload(EventPayload):
    guild_id: str
    round: Round


class RoundRetrievalFailedPayload(EventPayload):
    guild_id: str
    round_id: str
    error: str


# ---------------------------------------------------------------------------
# Round lifecycle: delete
# ---------------------------------------------------------------------------


class RoundDeleteRequestedPayload(EventPayload):
    guild_id: str
    round_id: str
    requesting_user_id: str


class RoundDeleteValidatedPayload(EventPayload):
    guild_id: str
    round_id: str
    requesting_user_id: str


class RoundDeleteAuthorizedPayload(EventPayload):
    guild_id: str
    round_id: str


class RoundDeleteErrorPayload(EventPayload):
    guild_id: str
    round_id: str = ""
    error: str


class RoundDeletedPayload(EventPayload):
    guild_id: str
    round_id: str
    event_message_id: str = ""


# ---------------------------------------------------------------------------
# Round lifecycle: start and finalize
# ---------------------------------------------------------------------------


class RoundStartRequestedPayload(EventPayload):
    guild_id: str
    round_id: str


class DiscordRoundStartPayload(EventPayload):
    """Presentation hand-off for a round that has just started."""

    guild_id: str
    round_id: str
    title: str
    location: str = ""
    start_time: datetime
    participants: list[Participant] = []
    event_message_id: str = ""


class RoundStartFailedPayload(EventPayload):
    guild_id: str
    round_id: str
    error: str


class AllScoresSubmittedPayload(EventPayload):
    guild_id: str
    round_id: str
    event_message_id: str = ""
    participants: list[Participant] = []


class RoundFinalizedDiscordPayload(EventPayload):
    """Presentation-facing finalization (scoreboard render)."""

    guild_id: str
    round_id: str
    title: str
    location: str = ""
    start_time: datetime
    participants: list[Participant] = []
    event_message_id: str = ""


class RoundFinalizedPayload(EventPayload):
    """Backend-facing finalization record."""

    guild_id: str
    round_id: str
    round: Round


class RoundFinalizationErrorPayload(EventPayload):
    guild_id: str
    round_id: str
    error: str


class ProcessRoundScoresRequestedPayload(EventPayload):
    """Hand-off to the scoring collaborator."""

    guild_id: str
    round_id: str
    mode: RoundMode = RoundMode.SINGLES
    scores: list[ScoreInfo]


# ---------------------------------------------------------------------------
# Participant join
# ---------------------------------------------------------------------------


class ParticipantJoinRequestPayload(EventPayload):
    """A join/RSVP request.

    The same shape travels through status check, validation and the final
    status update, picking up ``joined_late`` and ``tag_number`` on the way.
    """

    guild_id: str
    round_id: str
    user_id: str
    response: Response
    tag_number: int | None = None
    joined_late: bool = False


class ParticipantRemovalRequestPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str


class ParticipantStatusCheckErrorPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    error: str


class ParticipantJoinErrorPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    error: str


class ParticipantRemovalErrorPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    error: str


class TagLookupRequestPayload(EventPayload):
    """Outgoing request to the ranking service.

    Carries everything the reply handler needs to resume the join.
    """

    guild_id: str
    round_id: str
    user_id: str
    response: Response
    joined_late: bool = False


class TagLookupFoundPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    tag_number: int
    original_response: Response = Response.ACCEPT
    joined_late: bool = False


class TagLookupNotFoundPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    original_response: Response = Response.ACCEPT
    joined_late: bool = False
    reason: str = ""


class TagLookupFailedPayload(EventPayload):
    """Ranking service failure reply.

    Ids default to empty so that a malformed reply still decodes and can be
    recognised (and discarded) by the handler rather than the dispatcher.
    """

    guild_id: str = ""
    round_id: str = ""
    user_id: str = ""
    original_response: Response = Response.ACCEPT
    joined_late: bool = False
    reason: str = ""


class ParticipantJoinedPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    participants: list[Participant]
    joined_late: bool = False
    event_message_id: str = ""


class ParticipantRemovedPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    participants: list[Participant]
    event_message_id: str = ""


class ScheduledRoundTagUpdatePayload(EventPayload):
    """New tag numbers keyed by user id, as assigned by the ranking service."""

    guild_id: str
    changed_tags: dict[str, int]


class ScheduledRoundTagChange(EventPayload):
    """One upcoming round whose participant list picked up new tags."""

    round_id: str
    title: str
    start_time: datetime
    event_message_id: str = ""
    participants: list[Participant]
    participants_changed: int


class ScheduledRoundsTagsUpdatedPayload(EventPayload):
    guild_id: str
    updated_rounds: list[ScheduledRoundTagChange]
    rounds_checked: int
    participants_updated: int


class ScheduledRoundTagUpdateErrorPayload(EventPayload):
    guild_id: str
    error: str


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class ScoreUpdateRequestPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    score: int | None = None


class ScoreUpdateValidatedPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str
    score: int


class ScoreUpdateErrorPayload(EventPayload):
    guild_id: str
    round_id: str
    user_id: str = ""
    error: str


class ParticipantScoreUpdatedPayload(EventPayload):
    """A score (or an imported batch of scores) was stored.

    ``user_id``/``score`` are empty for an import batch, which sets
    ``import_id`` instead.
    """

    guild_id: str
    round_id: str
    user_id: str = ""
    score: int | None = None
    import_id: str = ""
    participants: list[Participant] = []
    event_message_id: str = ""


class ScoresPartiallySubmittedPayload(EventPayload):
    guild_id: str
    round_id: str
    participants: list[Participant] = []
    missing_user_ids: list[str] = []
    event_message_id: str = ""


class RoundFinalizationFailedPayload(EventPayload):
    guild_id: str
    round_id: str
    error: str


# ---------------------------------------------------------------------------
# Scorecard import
# ---------------------------------------------------------------------------


class ScorecardUploadedPayload(EventPayload):
    """An uploaded scorecard (``file_data``) or a link to one (``file_url``).

    ``file_data`` is base64 on the wire.  Also the payload of the parse
    request, so the parse step sees exactly what was uploaded.
    """

    import_id: str
    guild_id: str
    round_id: str
    user_id: str
    channel_id: str = ""
    event_message_id: str = ""
    file_name: str = ""
    file_data: Base64Bytes = b""
    file_url: str = ""
    notes: str = ""


class ScorecardURLRequestedPayload(EventPayload):
    import_id: str
    guild_id: str
    round_id: str
    user_id: str
    channel_id: str = ""
    event_message_id: str = ""
    file_url: str
    notes: str = ""


class ImportFailedPayload(EventPayload):
    import_id: str
    guild_id: str
    round_id: str
    user_id: str = ""
    error: str
    error_code: str = ""


class ScorecardParseFailedPayload(EventPayload):
    import_id: str
    guild_id: str
    round_id: str
    user_id: str = ""
    error: str


class ScorecardParsedPayload(EventPayload):
    """Parsed rows handed to the user-matching collaborator."""

    import_id: str
    guild_id: str
    round_id: str
    user_id: str = ""
    channel_id: str = ""
    event_message_id: str = ""
    mode: RoundMode = RoundMode.SINGLES
    players: list[ParsedPlayerScore]


class ScorecardIngestRequestedPayload(EventPayload):
    """The matcher's reply: parsed rows resolved to users where possible."""

    import_id: str
    guild_id: str
    round_id: str
    user_id: str = ""
    channel_id: str = ""
    event_message_id: str = ""
    mode: RoundMode = RoundMode.SINGLES
    players: list[MatchedPlayerScore]


class ImportCompletedPayload(EventPayload):
    import_id: str
    guild_id: str
    round_id: str
    user_id: str = ""
    channel_id: str = ""
    event_message_id: str = ""
    scores: list[ImportedScore] = []
    skipped_players: list[str] = []
