"""Tests for ScorecardImportSaga: upload, parse, ingest and apply hops."""

from __future__ import annotations

import pytest

from conftest import SCORECARD_CSV, b64
from roundflow.models import topics
from roundflow.models.events import (
    ImportCompletedPayload,
    ScorecardIngestRequestedPayload,
    ScorecardUploadedPayload,
    ScorecardURLRequestedPayload,
)
from roundflow.models.imports import ImportedScore, MatchedPlayerScore
from roundflow.models.rounds import RoundState
from roundflow.sagas.scorecard_import import ScorecardImportSaga


@pytest.fixture
def saga(service) -> ScorecardImportSaga:
    return ScorecardImportSaga(service)


def _upload(data: bytes = SCORECARD_CSV, **overrides) -> ScorecardUploadedPayload:
    fields = {
        "import_id": "imp-1",
        "guild_id": "guild-1",
        "round_id": "round-1",
        "user_id": "creator",
        "file_name": "card.csv",
        "file_data": b64(data),
    }
    fields.update(overrides)
    return ScorecardUploadedPayload(**fields)


def _completed(*scores: ImportedScore) -> ImportCompletedPayload:
    return ImportCompletedPayload(
        import_id="imp-1", guild_id="guild-1", round_id="round-1", scores=list(scores)
    )


class TestUpload:
    def test_upload_requests_parse(self, saga, make_ctx, make_round):
        make_round(state=RoundState.IN_PROGRESS)
        [result] = saga.handle_scorecard_uploaded(make_ctx(), _upload())
        assert result.topic == topics.SCORECARD_PARSE_REQUESTED
        assert result.payload.file_data == SCORECARD_CSV

    def test_upload_for_closed_round(self, saga, make_ctx, make_round):
        make_round(state=RoundState.DELETED)
        [result] = saga.handle_scorecard_uploaded(make_ctx(), _upload())
        assert result.topic == topics.IMPORT_FAILED
        assert result.payload.error_code == "ROUND_CLOSED"

    def test_url_request(self, saga, make_ctx, make_round):
        make_round(state=RoundState.IN_PROGRESS)
        payload = ScorecardURLRequestedPayload(
            import_id="imp-1", guild_id="guild-1", round_id="round-1",
            user_id="creator", file_url="https://scores.example/card.csv",
        )
        [result] = saga.handle_scorecard_url_requested(make_ctx(), payload)
        assert result.topic == topics.SCORECARD_PARSE_REQUESTED
        assert result.payload.file_url == "https://scores.example/card.csv"

    def test_url_request_rejected(self, saga, make_ctx, make_round):
        make_round(state=RoundState.IN_PROGRESS)
        payload = ScorecardURLRequestedPayload(
            import_id="imp-1", guild_id="guild-1", round_id="round-1",
            user_id="creator", file_url="file:///etc/passwd",
        )
        [result] = saga.handle_scorecard_url_requested(make_ctx(), payload)
        assert result.topic == topics.IMPORT_FAILED
        assert result.payload.error_code == "INVALID_URL"


class TestParse:
    def test_parsed_for_matcher(self, saga, make_ctx, make_round):
        make_round(state=RoundState.IN_PROGRESS)
        saga.handle_scorecard_uploaded(make_ctx(), _upload())
        [result] = saga.handle_parse_scorecard_requested(make_ctx(), _upload())
        assert result.topic == topics.SCORECARD_PARSED_FOR_USER
        assert [p.raw_name for p in result.payload.players] == ["Alice Smith", "Bob Jones"]

    def test_parse_failure_topic(self, saga, make_ctx, make_round):
        make_round(state=RoundState.IN_PROGRESS)
        bad = _upload(b"Name,Notes\nAlice,great round\n")
        saga.handle_scorecard_uploaded(make_ctx(), bad)
        [result] = saga.handle_parse_scorecard_requested(make_ctx(), bad)
        assert result.topic == topics.SCORECARD_PARSE_FAILED

    def test_missing_job_is_import_failure(self, saga, make_ctx, make_round):
        make_round(state=RoundState.IN_PROGRESS)
        [result] = saga.handle_parse_scorecard_requested(make_ctx(), _upload())
        assert result.topic == topics.IMPORT_FAILED
        assert result.payload.error_code == "IMPORT_NOT_FOUND"


class TestIngestAndApply:
    @pytest.fixture
    def parsed(self, saga, make_ctx, make_round, accepted):
        make_round(
            state=RoundState.IN_PROGRESS,
            participants=[accepted("alice"), accepted("bob")],
        )
        saga.handle_scorecard_uploaded(make_ctx(), _upload())
        saga.handle_parse_scorecard_requested(make_ctx(), _upload())

    def test_ingest_completed(self, saga, make_ctx, parsed):
        payload = ScorecardIngestRequestedPayload(
            import_id="imp-1",
            guild_id="guild-1",
            round_id="round-1",
            players=[
                MatchedPlayerScore(raw_name="Alice Smith", user_id="alice", score=52),
                MatchedPlayerScore(raw_name="Alice Smith", user_id="alice", score=99),
            ],
        )
        [result] = saga.handle_ingest_requested(make_ctx(), payload)
        assert result.topic == topics.IMPORT_COMPLETED
        assert result.payload.scores == [
            ImportedScore(user_id="alice", score=52, raw_name="Alice Smith")
        ]

    def test_ingest_failed(self, saga, make_ctx, parsed):
        payload = ScorecardIngestRequestedPayload(
            import_id="imp-1",
            guild_id="guild-1",
            round_id="round-1",
            players=[MatchedPlayerScore(raw_name="Stranger", score=60)],
        )
        [result] = saga.handle_ingest_requested(make_ctx(), payload)
        assert result.topic == topics.IMPORT_FAILED
        assert result.payload.error_code == "NO_MATCHES"

    def test_completed_without_scores_is_a_no_op(self, make_ctx):
        class Untouchable:
            def __getattr__(self, name):
                raise AssertionError(f"service.{name} must not be called")

        saga = ScorecardImportSaga(Untouchable())
        assert saga.handle_import_completed(make_ctx(), _completed()) == []

    def test_apply_feeds_completeness_check(self, saga, make_ctx, parsed, repo):
        saga.handle_ingest_requested(
            make_ctx(),
            ScorecardIngestRequestedPayload(
                import_id="imp-1",
                guild_id="guild-1",
                round_id="round-1",
                players=[
                    MatchedPlayerScore(raw_name="Alice Smith", user_id="alice", score=52),
                    MatchedPlayerScore(raw_name="Bob Jones", user_id="bob", score=58),
                ],
            ),
        )
        [result] = saga.handle_import_completed(
            make_ctx(),
            _completed(
                ImportedScore(user_id="alice", score=52),
                ImportedScore(user_id="bob", score=58),
            ),
        )
        assert result.topic == topics.ROUND_PARTICIPANT_SCORE_UPDATED
        assert result.guild_id is None
        assert result.payload.import_id == "imp-1"
        scores = {p.user_id: p.score for p in repo.get_round("guild-1", "round-1").participants}
        assert scores == {"alice": 52, "bob": 58}

    def test_apply_to_finalized_round(self, saga, make_ctx, parsed, repo):
        saga.handle_ingest_requested(
            make_ctx(),
            ScorecardIngestRequestedPayload(
                import_id="imp-1",
                guild_id="guild-1",
                round_id="round-1",
                players=[MatchedPlayerScore(raw_name="Alice Smith", user_id="alice", score=52)],
            ),
        )
        current = repo.get_round("guild-1", "round-1")
        repo.update_round(current.model_copy(update={"state": RoundState.FINALIZED}))
        [result] = saga.handle_import_completed(
            make_ctx(), _completed(ImportedScore(user_id="alice", score=52))
        )
        assert result.topic == topics.IMPORT_FAILED
        assert result.payload.error_code == "ROUND_NOT_IN_PROGRESS"
