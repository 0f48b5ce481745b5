"""Scorecard import pipeline.

    uploaded | url requested -> create job -> parse request
    parse request -> parse + normalize -> user.scorecard.parsed (to matcher)
    ingest request (from matcher) -> ingest -> import completed
    import completed -> apply scores -> participant score updated

The last step feeds the scoring saga's completeness check, so an import
that fills in the final missing scores finalizes the round the same way
manual score entry does.
"""

from __future__ import annotations

import logging

from roundflow.core.dispatcher import HandlerContext
from roundflow.core.operation_result import map_operation_result
from roundflow.models import topics
from roundflow.models.envelopes import Result
from roundflow.models.events import (
    ImportCompletedPayload,
    ImportFailedPayload,
    ScorecardIngestRequestedPayload,
    ScorecardParseFailedPayload,
    ScorecardUploadedPayload,
    ScorecardURLRequestedPayload,
)
from roundflow.sagas.base import BaseSaga, SagaRoute

logger = logging.getLogger(__name__)


class ScorecardImportSaga(BaseSaga):
    saga_name = "scorecard_import"

    def routes(self) -> list[SagaRoute]:
        return [
            SagaRoute(topics.SCORECARD_UPLOADED, ScorecardUploadedPayload, self.handle_scorecard_uploaded),
            SagaRoute(topics.SCORECARD_URL_REQUESTED, ScorecardURLRequestedPayload, self.handle_scorecard_url_requested),
            SagaRoute(topics.SCORECARD_PARSE_REQUESTED, ScorecardUploadedPayload, self.handle_parse_scorecard_requested),
            SagaRoute(topics.SCORECARD_INGEST_REQUESTED, ScorecardIngestRequestedPayload, self.handle_ingest_requested),
            SagaRoute(topics.IMPORT_COMPLETED, ImportCompletedPayload, self.handle_import_completed),
        ]

    def handle_scorecard_uploaded(
        self, ctx: HandlerContext, payload: ScorecardUploadedPayload
    ) -> list[Result]:
        outcome = self.invoke(ctx, "create_import_job", self.service.create_import_job, payload)
        return map_operation_result(
            outcome,
            topics.SCORECARD_PARSE_REQUESTED,
            topics.IMPORT_FAILED,
            operation="create_import_job",
        )

    def handle_scorecard_url_requested(
        self, ctx: HandlerContext, payload: ScorecardURLRequestedPayload
    ) -> list[Result]:
        outcome = self.invoke(
            ctx,
            "handle_scorecard_url_requested",
            self.service.handle_scorecard_url_requested,
            payload,
        )
        return map_operation_result(
            outcome,
            topics.SCORECARD_PARSE_REQUESTED,
            topics.IMPORT_FAILED,
            operation="handle_scorecard_url_requested",
        )

    def handle_parse_scorecard_requested(
        self, ctx: HandlerContext, payload: ScorecardUploadedPayload
    ) -> list[Result]:
        logger.info(
            "Parsing scorecard %s for import %s (%d bytes, correlation_id=%s)",
            payload.file_name or payload.file_url,
            payload.import_id,
            len(payload.file_data),
            ctx.correlation_id,
        )
        outcome = self.invoke(ctx, "parse_scorecard", self.service.parse_scorecard, payload)
        return map_operation_result(
            outcome,
            topics.SCORECARD_PARSED_FOR_USER,
            {
                ScorecardParseFailedPayload: topics.SCORECARD_PARSE_FAILED,
                ImportFailedPayload: topics.IMPORT_FAILED,
            },
            operation="parse_scorecard",
        )

    def handle_ingest_requested(
        self, ctx: HandlerContext, payload: ScorecardIngestRequestedPayload
    ) -> list[Result]:
        outcome = self.invoke(ctx, "ingest_scorecard", self.service.ingest_scorecard, payload)
        return map_operation_result(
            outcome,
            topics.IMPORT_COMPLETED,
            topics.IMPORT_FAILED,
            operation="ingest_scorecard",
        )

    def handle_import_completed(
        self, ctx: HandlerContext, payload: ImportCompletedPayload
    ) -> list[Result]:
        if not payload.scores:
            logger.info(
                "Import %s completed with no scores; nothing to apply (correlation_id=%s)",
                payload.import_id,
                ctx.correlation_id,
            )
            return []
        outcome = self.invoke(
            ctx, "apply_imported_scores", self.service.apply_imported_scores, payload
        )
        return map_operation_result(
            outcome,
            topics.ROUND_PARTICIPANT_SCORE_UPDATED,
            topics.IMPORT_FAILED,
            operation="apply_imported_scores",
        )
