"""Round lifecycle saga: create, update, delete, start, finalize and lookup."""

from __future__ import annotations

import logging

from roundflow.core.dispatcher import HandlerContext
from roundflow.core.operation_result import map_operation_result
from roundflow.models import topics
from roundflow.models.envelopes import META_DISCORD_MESSAGE_ID, META_SUBMITTED_AT, Result
from roundflow.models.events import (
    AllScoresSubmittedPayload,
    CreateRoundRequestedPayload,
    GetRoundRequestPayload,
    RoundDeleteAuthorizedPayload,
    RoundDeleteRequestedPayload,
    RoundDeleteValidatedPayload,
    RoundEntityCreatedPayload,
    RoundFinalizedDiscordPayload,
    RoundFinalizedPayload,
    RoundMessageIDUpdateRequestedPayload,
    RoundScheduleUpdatedPayload,
    RoundStartRequestedPayload,
    RoundUpdatedPayload,
    RoundUpdateValidatedPayload,
    UpdateRoundRequestedPayload,
)
from roundflow.sagas.base import BaseSaga, SagaRoute
from roundflow.services.protocols import Clock, RoundService
from roundflow.services.time_parser import SystemClock, clock_from_metadata

logger = logging.getLogger(__name__)


class RoundLifecycleSaga(BaseSaga):
    """Handlers for the round state machine.

    Parameters
    ----------
    service:
        The collaborating round service.
    clock:
        Fallback clock when a request carries no ``submitted_at`` metadata.
    """

    saga_name = "round_lifecycle"

    def __init__(self, service: RoundService, clock: Clock | None = None) -> None:
        super().__init__(service)
        self._clock = clock or SystemClock()

    def routes(self) -> list[SagaRoute]:
        return [
            SagaRoute(topics.ROUND_CREATION_REQUESTED, CreateRoundRequestedPayload, self.handle_create_round_requested),
            SagaRoute(topics.ROUND_ENTITY_CREATED, RoundEntityCreatedPayload, self.handle_round_entity_created),
            SagaRoute(topics.ROUND_UPDATE_REQUESTED, UpdateRoundRequestedPayload, self.handle_round_update_requested),
            SagaRoute(topics.ROUND_UPDATE_VALIDATED, RoundUpdateValidatedPayload, self.handle_round_update_validated),
            SagaRoute(topics.ROUND_DELETE_REQUESTED, RoundDeleteRequestedPayload, self.handle_round_delete_requested),
            SagaRoute(topics.ROUND_DELETE_VALIDATED, RoundDeleteValidatedPayload, self.handle_round_delete_validated),
            SagaRoute(topics.ROUND_DELETE_AUTHORIZED, RoundDeleteAuthorizedPayload, self.handle_round_delete_authorized),
            SagaRoute(topics.ROUND_START_REQUESTED, RoundStartRequestedPayload, self.handle_round_start_requested),
            SagaRoute(topics.ROUND_ALL_SCORES_SUBMITTED, AllScoresSubmittedPayload, self.handle_all_scores_submitted),
            SagaRoute(topics.ROUND_FINALIZED, RoundFinalizedPayload, self.handle_round_finalized),
            SagaRoute(
                topics.ROUND_EVENT_MESSAGE_ID_UPDATE_REQUESTED,
                RoundMessageIDUpdateRequestedPayload,
                self.handle_event_message_id_update_requested,
            ),
            SagaRoute(topics.ROUND_RETRIEVAL_REQUESTED, GetRoundRequestPayload, self.handle_get_round_requested),
        ]

    def _request_clock(self, ctx: HandlerContext) -> Clock:
        """Anchor relative times to when the user submitted the request."""
        return clock_from_metadata(ctx.metadata.get(META_SUBMITTED_AT), self._clock)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def handle_create_round_requested(
        self, ctx: HandlerContext, payload: CreateRoundRequestedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx,
            "validate_and_process_round",
            self.service.validate_and_process_round,
            payload,
            self._request_clock(ctx),
        )
        return map_operation_result(
            outcome,
            topics.ROUND_ENTITY_CREATED,
            topics.ROUND_VALIDATION_FAILED,
            operation="validate_and_process_round",
        )

    def handle_round_entity_created(
        self, ctx: HandlerContext, payload: RoundEntityCreatedPayload
    ) -> list[Result]:
        outcome = self.invoke(ctx, "store_round", self.service.store_round, payload)
        return map_operation_result(
            outcome,
            topics.ROUND_CREATED,
            topics.ROUND_CREATION_FAILED,
            operation="store_round",
            success_guild_id=payload.guild_id,
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def handle_round_update_requested(
        self, ctx: HandlerContext, payload: UpdateRoundRequestedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx,
            "validate_round_update",
            self.service.validate_round_update,
            payload,
            self._request_clock(ctx),
        )
        return map_operation_result(
            outcome,
            topics.ROUND_UPDATE_VALIDATED,
            topics.ROUND_UPDATE_ERROR,
            operation="validate_round_update",
        )

    def handle_round_update_validated(
        self, ctx: HandlerContext, payload: RoundUpdateValidatedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "update_round_entity", self.service.update_round_entity, payload
        )
        if outcome.is_failure:
            return map_operation_result(
                outcome, topics.ROUND_UPDATED, topics.ROUND_UPDATE_ERROR,
                operation="update_round_entity",
            )

        updated = outcome.success
        round_ = updated.round
        results = [
            Result(
                topic=topics.ROUND_UPDATED,
                payload=RoundUpdatedPayload(guild_id=payload.guild_id, round=round_),
            ).guild_scoped(payload.guild_id)
        ]
        if updated.schedule_changed:
            results.append(
                Result(
                    topic=topics.ROUND_SCHEDULE_UPDATED,
                    payload=RoundScheduleUpdatedPayload(
                        guild_id=payload.guild_id,
                        round_id=round_.round_id,
                        title=round_.title,
                        location=round_.location,
                        start_time=round_.start_time,
                        previous_start_time=updated.previous_start_time,
                    ),
                )
            )
        return results

    def handle_event_message_id_update_requested(
        self, ctx: HandlerContext, payload: RoundMessageIDUpdateRequestedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "update_event_message_id", self.service.update_event_message_id, payload
        )
        return map_operation_result(
            outcome,
            topics.ROUND_EVENT_MESSAGE_ID_UPDATED,
            topics.ROUND_UPDATE_ERROR,
            operation="update_event_message_id",
            metadata={META_DISCORD_MESSAGE_ID: payload.event_message_id},
        )

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def handle_get_round_requested(
        self, ctx: HandlerContext, payload: GetRoundRequestPayload
    ) -> list[Result]:
        outcome = self.invoke(ctx, "get_round", self.service.get_round, payload)
        return map_operation_result(
            outcome,
            topics.ROUND_RETRIEVED,
            topics.ROUND_RETRIEVAL_FAILED,
            operation="get_round",
        )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def handle_round_delete_requested(
        self, ctx: HandlerContext, payload: RoundDeleteRequestedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "validate_round_delete", self.service.validate_round_delete, payload
        )
        return map_operation_result(
            outcome,
            topics.ROUND_DELETE_VALIDATED,
            topics.ROUND_DELETE_ERROR,
            operation="validate_round_delete",
        )

    def handle_round_delete_validated(
        self, ctx: HandlerContext, payload: RoundDeleteValidatedPayload
    ) -> list[Result]:
        # Pure transform: no collaborator call.
        return [
            Result(
                topic=topics.ROUND_DELETE_AUTHORIZED,
                payload=RoundDeleteAuthorizedPayload(
                    guild_id=payload.guild_id, round_id=payload.round_id
                ),
            )
        ]

    def handle_round_delete_authorized(
        self, ctx: HandlerContext, payload: RoundDeleteAuthorizedPayload
    ) -> list[Result]:
        outcome = self.invoke(ctx, "delete_round", self.service.delete_round, payload)
        message_id = ctx.metadata.get(META_DISCORD_MESSAGE_ID)
        return map_operation_result(
            outcome,
            topics.ROUND_DELETED,
            topics.ROUND_DELETE_ERROR,
            operation="delete_round",
            success_guild_id=payload.guild_id,
            metadata={META_DISCORD_MESSAGE_ID: message_id} if message_id else None,
        )

    # ------------------------------------------------------------------
    # Start and finalize
    # ------------------------------------------------------------------

    def handle_round_start_requested(
        self, ctx: HandlerContext, payload: RoundStartRequestedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "process_round_start", self.service.process_round_start, payload
        )
        return map_operation_result(
            outcome,
            topics.DISCORD_ROUND_STARTED,
            topics.ROUND_START_FAILED,
            operation="process_round_start",
        )

    def handle_all_scores_submitted(
        self, ctx: HandlerContext, payload: AllScoresSubmittedPayload
    ) -> list[Result]:
        outcome = self.invoke(ctx, "finalize_round", self.service.finalize_round, payload)
        if outcome.is_failure:
            return map_operation_result(
                outcome, topics.ROUND_FINALIZED, topics.ROUND_FINALIZATION_ERROR,
                operation="finalize_round",
            )

        finalized: RoundFinalizedPayload = outcome.success
        round_ = finalized.round
        message_id = round_.event_message_id or payload.event_message_id
        discord = RoundFinalizedDiscordPayload(
            guild_id=payload.guild_id,
            round_id=round_.round_id,
            title=round_.title,
            location=round_.location,
            start_time=round_.start_time,
            participants=round_.participants,
            event_message_id=message_id,
        )
        return [
            Result(
                topic=topics.DISCORD_ROUND_FINALIZED,
                payload=discord,
                metadata={META_DISCORD_MESSAGE_ID: message_id},
            ).guild_scoped(payload.guild_id),
            Result(topic=topics.ROUND_FINALIZED, payload=finalized).guild_scoped(
                payload.guild_id
            ),
        ]

    def handle_round_finalized(
        self, ctx: HandlerContext, payload: RoundFinalizedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "notify_score_module", self.service.notify_score_module, payload
        )
        return map_operation_result(
            outcome,
            topics.SCORE_ROUND_SCORES_REQUESTED,
            topics.ROUND_FINALIZATION_ERROR,
            operation="notify_score_module",
        )
