"""Participant join saga: RSVP with an external tag lookup round trip.

The flow is split at the ranking service.  The first half ends by publishing
``round.tag_lookup.requested.v1`` with everything needed to finish the join;
the ranking service answers later with found / not found / failed, and the
second half rebuilds the join request from that reply alone.  Nothing is
held in memory between the two halves.

When the ranking service reassigns tags it also pushes the changes here so
participants of upcoming rounds show their current tag.
"""

from __future__ import annotations

import logging

from roundflow.core.dispatcher import HandlerContext
from roundflow.core.operation_result import map_operation_result
from roundflow.models import topics
from roundflow.models.envelopes import Result
from roundflow.models.events import (
    ParticipantJoinRequestPayload,
    ParticipantRemovalRequestPayload,
    ScheduledRoundTagUpdatePayload,
    TagLookupFailedPayload,
    TagLookupFoundPayload,
    TagLookupNotFoundPayload,
    TagLookupRequestPayload,
)
from roundflow.models.rounds import Response
from roundflow.sagas.base import BaseSaga, SagaRoute

logger = logging.getLogger(__name__)


class ParticipantJoinSaga(BaseSaga):
    saga_name = "participant_join"

    def routes(self) -> list[SagaRoute]:
        return [
            SagaRoute(topics.ROUND_PARTICIPANT_JOIN_REQUESTED, ParticipantJoinRequestPayload, self.handle_participant_join_requested),
            SagaRoute(topics.ROUND_PARTICIPANT_JOIN_VALIDATION_REQUESTED, ParticipantJoinRequestPayload, self.handle_join_validation_requested),
            SagaRoute(topics.ROUND_PARTICIPANT_STATUS_UPDATE_REQUESTED, ParticipantJoinRequestPayload, self.handle_status_update_requested),
            SagaRoute(topics.ROUND_TAG_LOOKUP_FOUND, TagLookupFoundPayload, self.handle_tag_lookup_found),
            SagaRoute(topics.ROUND_TAG_LOOKUP_NOT_FOUND, TagLookupNotFoundPayload, self.handle_tag_lookup_not_found),
            SagaRoute(topics.ROUND_TAG_LOOKUP_FAILED, TagLookupFailedPayload, self.handle_tag_lookup_failed),
            SagaRoute(topics.ROUND_PARTICIPANT_REMOVAL_REQUESTED, ParticipantRemovalRequestPayload, self.handle_participant_removal_requested),
            SagaRoute(topics.ROUND_SCHEDULED_TAG_UPDATE_REQUESTED, ScheduledRoundTagUpdatePayload, self.handle_scheduled_round_tag_update),
        ]

    # ------------------------------------------------------------------
    # First hop
    # ------------------------------------------------------------------

    def handle_participant_join_requested(
        self, ctx: HandlerContext, payload: ParticipantJoinRequestPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "check_participant_status", self.service.check_participant_status, payload
        )
        # Same response as before toggles the RSVP off.
        return map_operation_result(
            outcome,
            {
                ParticipantJoinRequestPayload: topics.ROUND_PARTICIPANT_JOIN_VALIDATION_REQUESTED,
                ParticipantRemovalRequestPayload: topics.ROUND_PARTICIPANT_REMOVAL_REQUESTED,
            },
            topics.ROUND_PARTICIPANT_STATUS_CHECK_ERROR,
            operation="check_participant_status",
        )

    def handle_join_validation_requested(
        self, ctx: HandlerContext, payload: ParticipantJoinRequestPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "validate_participant_join", self.service.validate_participant_join, payload
        )
        if outcome.is_failure:
            return map_operation_result(
                outcome,
                topics.ROUND_PARTICIPANT_STATUS_UPDATE_REQUESTED,
                topics.ROUND_PARTICIPANT_JOIN_ERROR,
                operation="validate_participant_join",
            )

        request: ParticipantJoinRequestPayload = outcome.success
        if request.response == Response.DECLINE:
            # Declines never need a tag.
            return [
                Result(topic=topics.ROUND_PARTICIPANT_STATUS_UPDATE_REQUESTED, payload=request)
            ]
        return [
            Result(
                topic=topics.ROUND_TAG_LOOKUP_REQUESTED,
                payload=TagLookupRequestPayload(
                    guild_id=request.guild_id,
                    round_id=request.round_id,
                    user_id=request.user_id,
                    response=request.response,
                    joined_late=request.joined_late,
                ),
            )
        ]

    # ------------------------------------------------------------------
    # Second hop: ranking service replies
    # ------------------------------------------------------------------

    def handle_tag_lookup_found(
        self, ctx: HandlerContext, payload: TagLookupFoundPayload
    ) -> list[Result]:
        return self.apply_participant_update(
            ctx,
            ParticipantJoinRequestPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                response=payload.original_response,
                tag_number=payload.tag_number,
                joined_late=payload.joined_late,
            ),
        )

    def handle_tag_lookup_not_found(
        self, ctx: HandlerContext, payload: TagLookupNotFoundPayload
    ) -> list[Result]:
        return self.apply_participant_update(
            ctx,
            ParticipantJoinRequestPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                response=payload.original_response,
                joined_late=payload.joined_late,
            ),
        )

    def handle_tag_lookup_failed(
        self, ctx: HandlerContext, payload: TagLookupFailedPayload
    ) -> list[Result]:
        if not payload.round_id or not payload.user_id:
            # Malformed reply: nothing to resume, and retrying will not help.
            logger.error(
                "Discarding tag lookup failure without round/user id "
                "(round_id=%r, user_id=%r, correlation_id=%s)",
                payload.round_id,
                payload.user_id,
                ctx.correlation_id,
            )
            return []
        logger.warning(
            "Tag lookup failed for user %s in round %s (%s); joining without a tag "
            "(correlation_id=%s)",
            payload.user_id,
            payload.round_id,
            payload.reason or "no reason given",
            ctx.correlation_id,
        )
        return self.apply_participant_update(
            ctx,
            ParticipantJoinRequestPayload(
                guild_id=payload.guild_id,
                round_id=payload.round_id,
                user_id=payload.user_id,
                response=payload.original_response,
                joined_late=payload.joined_late,
            ),
        )

    def handle_status_update_requested(
        self, ctx: HandlerContext, payload: ParticipantJoinRequestPayload
    ) -> list[Result]:
        return self.apply_participant_update(ctx, payload)

    def apply_participant_update(
        self, ctx: HandlerContext, request: ParticipantJoinRequestPayload
    ) -> list[Result]:
        """Shared final step: persist the participant and announce it."""
        outcome = self.invoke(
            ctx, "update_participant_status", self.service.update_participant_status, request
        )
        return map_operation_result(
            outcome,
            topics.ROUND_PARTICIPANT_JOINED,
            topics.ROUND_PARTICIPANT_JOIN_ERROR,
            operation="update_participant_status",
            success_guild_id=request.guild_id,
        )

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def handle_participant_removal_requested(
        self, ctx: HandlerContext, payload: ParticipantRemovalRequestPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "remove_participant", self.service.remove_participant, payload
        )
        return map_operation_result(
            outcome,
            topics.ROUND_PARTICIPANT_REMOVED,
            topics.ROUND_PARTICIPANT_REMOVAL_ERROR,
            operation="remove_participant",
            success_guild_id=payload.guild_id,
        )

    # ------------------------------------------------------------------
    # Tag sync for upcoming rounds
    # ------------------------------------------------------------------

    def handle_scheduled_round_tag_update(
        self, ctx: HandlerContext, payload: ScheduledRoundTagUpdatePayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx,
            "update_scheduled_round_tags",
            self.service.update_scheduled_round_tags,
            payload,
        )
        if outcome.is_success and not outcome.success.updated_rounds:
            logger.info(
                "No upcoming rounds affected by tag changes (guild=%s, correlation_id=%s)",
                payload.guild_id,
                ctx.correlation_id,
            )
            return []
        return map_operation_result(
            outcome,
            topics.ROUND_SCHEDULED_TAGS_UPDATED,
            topics.ROUND_SCHEDULED_TAG_UPDATE_ERROR,
            operation="update_scheduled_round_tags",
            success_guild_id=payload.guild_id,
        )
