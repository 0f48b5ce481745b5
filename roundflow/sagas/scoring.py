"""Score and finalization saga.

Each stored score triggers a completeness check; once every accepted
participant has a score the saga emits ``round.all_scores.submitted.v1``,
which the round lifecycle saga finalizes.
"""

from __future__ import annotations

from roundflow.core.dispatcher import HandlerContext
from roundflow.core.operation_result import map_operation_result
from roundflow.models import topics
from roundflow.models.envelopes import Result
from roundflow.models.events import (
    AllScoresSubmittedPayload,
    ParticipantScoreUpdatedPayload,
    ScoresPartiallySubmittedPayload,
    ScoreUpdateRequestPayload,
    ScoreUpdateValidatedPayload,
)
from roundflow.sagas.base import BaseSaga, SagaRoute


class ScoringSaga(BaseSaga):
    saga_name = "scoring"

    def routes(self) -> list[SagaRoute]:
        return [
            SagaRoute(topics.ROUND_SCORE_UPDATE_REQUESTED, ScoreUpdateRequestPayload, self.handle_score_update_requested),
            SagaRoute(topics.ROUND_SCORE_UPDATE_VALIDATED, ScoreUpdateValidatedPayload, self.handle_score_update_validated),
            SagaRoute(topics.ROUND_PARTICIPANT_SCORE_UPDATED, ParticipantScoreUpdatedPayload, self.handle_participant_score_updated),
        ]

    def handle_score_update_requested(
        self, ctx: HandlerContext, payload: ScoreUpdateRequestPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "validate_score_update", self.service.validate_score_update, payload
        )
        return map_operation_result(
            outcome,
            topics.ROUND_SCORE_UPDATE_VALIDATED,
            topics.ROUND_SCORE_UPDATE_ERROR,
            operation="validate_score_update",
        )

    def handle_score_update_validated(
        self, ctx: HandlerContext, payload: ScoreUpdateValidatedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "update_participant_score", self.service.update_participant_score, payload
        )
        return map_operation_result(
            outcome,
            topics.ROUND_PARTICIPANT_SCORE_UPDATED,
            topics.ROUND_SCORE_UPDATE_ERROR,
            operation="update_participant_score",
            success_guild_id=payload.guild_id,
        )

    def handle_participant_score_updated(
        self, ctx: HandlerContext, payload: ParticipantScoreUpdatedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx, "check_all_scores_submitted", self.service.check_all_scores_submitted, payload
        )
        return map_operation_result(
            outcome,
            {
                AllScoresSubmittedPayload: topics.ROUND_ALL_SCORES_SUBMITTED,
                ScoresPartiallySubmittedPayload: topics.ROUND_SCORES_PARTIALLY_SUBMITTED,
            },
            topics.ROUND_FINALIZATION_FAILED,
            operation="check_all_scores_submitted",
        )
