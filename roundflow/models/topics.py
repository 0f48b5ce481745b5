"""Topic names: ``<module>.<noun>.<verb_past_tense>.<version>``.

A guild-scoped variant of any topic appends ``.<guild_id>``.
"""

from __future__ import annotations

# --- Round lifecycle -------------------------------------------------------
ROUND_CREATION_REQUESTED = "round.creation.requested.v1"
ROUND_ENTITY_CREATED = "round.entity.created.v1"
ROUND_VALIDATION_FAILED = "round.validation.failed.v1"
ROUND_CREATED = "round.created.v1"
ROUND_CREATION_FAILED = "round.creation.failed.v1"

ROUND_UPDATE_REQUESTED = "round.update.requested.v1"
ROUND_UPDATE_VALIDATED = "round.update.validated.v1"
ROUND_UPDATE_ERROR = "round.update.error.v1"
ROUND_UPDATED = "round.updated.v1"
ROUND_SCHEDULE_UPDATED = "round.schedule.updated.v1"

ROUND_DELETE_REQUESTED = "round.delete.requested.v1"
ROUND_DELETE_VALIDATED = "round.delete.validated.v1"
ROUND_DELETE_AUTHORIZED = "round.delete.authorized.v1"
ROUND_DELETE_ERROR = "round.delete.error.v1"
ROUND_DELETED = "round.deleted.v1"

ROUND_START_REQUESTED = "round.start.requested.v1"
ROUND_START_FAILED = "round.start.failed.v1"
DISCORD_ROUND_STARTED = "discord.round.started.v1"

ROUND_ALL_SCORES_SUBMITTED = "round.all_scores.submitted.v1"
DISCORD_ROUND_FINALIZED = "discord.round.finalized.v1"
ROUND_FINALIZED = "round.finalized.v1"
ROUND_FINALIZATION_ERROR = "round.finalization.error.v1"
SCORE_ROUND_SCORES_REQUESTED = "score.round_scores.requested.v1"

ROUND_EVENT_MESSAGE_ID_UPDATE_REQUESTED = "round.event_message_id.update_requested.v1"
ROUND_EVENT_MESSAGE_ID_UPDATED = "round.event_message_id.updated.v1"

ROUND_RETRIEVAL_REQUESTED = "round.retrieval.requested.v1"
ROUND_RETRIEVED = "round.retrieved.v1"
ROUND_RETRIEVAL_FAILED = "round.retrieval.failed.v1"

# --- Participant join ------------------------------------------------------
ROUND_PARTICIPANT_JOIN_REQUESTED = "round.participant_join.requested.v1"
ROUND_PARTICIPANT_STATUS_CHECK_ERROR = "round.participant_status_check.error.v1"
ROUND_PARTICIPANT_JOIN_VALIDATION_REQUESTED = (
    "round.participant_join_validation.requested.v1"
)
ROUND_PARTICIPANT_JOIN_ERROR = "round.participant_join.error.v1"
ROUND_PARTICIPANT_STATUS_UPDATE_REQUESTED = (
    "round.participant_status_update.requested.v1"
)
ROUND_PARTICIPANT_JOINED = "round.participant.joined.v1"
ROUND_PARTICIPANT_REMOVAL_REQUESTED = "round.participant_removal.requested.v1"
ROUND_PARTICIPANT_REMOVED = "round.participant.removed.v1"
ROUND_PARTICIPANT_REMOVAL_ERROR = "round.participant_removal.error.v1"

ROUND_TAG_LOOKUP_REQUESTED = "round.tag_lookup.requested.v1"
ROUND_TAG_LOOKUP_FOUND = "round.tag_lookup.found.v1"
ROUND_TAG_LOOKUP_NOT_FOUND = "round.tag_lookup.not_found.v1"
ROUND_TAG_LOOKUP_FAILED = "round.tag_lookup.failed.v1"

# Tag changes pushed by the ranking service for rounds not yet played.
ROUND_SCHEDULED_TAG_UPDATE_REQUESTED = "round.scheduled_tag_update.requested.v1"
ROUND_SCHEDULED_TAGS_UPDATED = "round.scheduled_tags.updated.v1"
ROUND_SCHEDULED_TAG_UPDATE_ERROR = "round.scheduled_tag_update.error.v1"

# --- Scoring ---------------------------------------------------------------
ROUND_SCORE_UPDATE_REQUESTED = "round.score_update.requested.v1"
ROUND_SCORE_UPDATE_VALIDATED = "round.score_update.validated.v1"
ROUND_SCORE_UPDATE_ERROR = "round.score_update.error.v1"
ROUND_PARTICIPANT_SCORE_UPDATED = "round.participant_score.updated.v1"
ROUND_SCORES_PARTIALLY_SUBMITTED = "round.scores.partially_submitted.v1"
ROUND_FINALIZATION_FAILED = "round.finalization.failed.v1"

# --- Scorecard import ------------------------------------------------------
SCORECARD_UPLOADED = "round.scorecard.uploaded.v1"
SCORECARD_URL_REQUESTED = "round.scorecard_url.requested.v1"
SCORECARD_PARSE_REQUESTED = "round.scorecard_parse.requested.v1"
SCORECARD_PARSE_FAILED = "round.scorecard_parse.failed.v1"
SCORECARD_PARSED_FOR_USER = "user.scorecard.parsed.v1"
SCORECARD_INGEST_REQUESTED = "round.scorecard_ingest.requested.v1"
IMPORT_COMPLETED = "round.import.completed.v1"
IMPORT_FAILED = "round.import.failed.v1"


def guild_scoped_topic(base_topic: str, guild_id: str) -> str:
    """Return the tenant-scoped variant of *base_topic*."""
    return f"{base_topic}.{guild_id}"
