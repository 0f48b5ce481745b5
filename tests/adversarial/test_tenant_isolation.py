"""Adversarial tests: guild (tenant) isolation.

These tests verify that:
1. A round is only reachable through the guild that owns it
2. Guild-scoped copies go to the owning guild's topic only
3. Failures are published on the base topic alone
4. An empty guild scope never produces a ``<topic>.`` publication
5. Import ids are only unique within a guild
"""

from __future__ import annotations

import logging

from conftest import SCORECARD_CSV, b64
from roundflow.models import topics
from roundflow.models.events import (
    ParticipantJoinRequestPayload,
    RoundDeleteRequestedPayload,
    RoundStartRequestedPayload,
    ScorecardUploadedPayload,
    ScoreUpdateRequestPayload,
)
from roundflow.models.imports import ImportStatus
from roundflow.models.rounds import Response, RoundState
from roundflow.models.topics import guild_scoped_topic


class TestCrossGuildAccess:
    def test_join_through_other_guild(self, runtime, repo, make_round):
        make_round(guild_id="guild-1")
        runtime.submit(
            topics.ROUND_PARTICIPANT_JOIN_REQUESTED,
            ParticipantJoinRequestPayload(
                guild_id="guild-2", round_id="round-1", user_id="mallory",
                response=Response.ACCEPT,
            ),
        )
        runtime.run_until_idle()
        [error] = runtime.published(topics.ROUND_PARTICIPANT_STATUS_CHECK_ERROR)
        assert error.payload["error"] == "round not found"
        assert repo.get_round("guild-1", "round-1").participants == []

    def test_delete_through_other_guild(self, runtime, repo, make_round):
        make_round(guild_id="guild-1")
        runtime.submit(
            topics.ROUND_DELETE_REQUESTED,
            RoundDeleteRequestedPayload(
                guild_id="guild-2", round_id="round-1", requesting_user_id="creator"
            ),
        )
        runtime.run_until_idle()
        assert len(runtime.published(topics.ROUND_DELETE_ERROR)) == 1
        assert repo.get_round("guild-1", "round-1").state == RoundState.UPCOMING

    def test_same_round_id_in_two_guilds(self, runtime, repo, make_round, accepted):
        make_round(guild_id="guild-1", state=RoundState.IN_PROGRESS, participants=[accepted("alice")])
        make_round(guild_id="guild-2", state=RoundState.IN_PROGRESS, participants=[accepted("alice")])
        runtime.submit(
            topics.ROUND_SCORE_UPDATE_REQUESTED,
            ScoreUpdateRequestPayload(
                guild_id="guild-2", round_id="round-1", user_id="alice", score=49
            ),
        )
        runtime.run_until_idle()

        assert repo.get_round("guild-1", "round-1").get_participant("alice").score is None
        assert repo.get_round("guild-2", "round-1").state == RoundState.FINALIZED
        assert repo.get_round("guild-1", "round-1").state == RoundState.IN_PROGRESS

    def test_same_import_id_in_two_guilds(self, runtime, repo, make_round, accepted):
        players = [accepted("alice"), accepted("bob")]
        make_round(guild_id="guild-1", state=RoundState.IN_PROGRESS, participants=players)
        make_round(guild_id="guild-2", state=RoundState.IN_PROGRESS, participants=players)
        for guild_id in ("guild-1", "guild-2"):
            runtime.submit(
                topics.SCORECARD_UPLOADED,
                ScorecardUploadedPayload(
                    import_id="imp-shared", guild_id=guild_id, round_id="round-1",
                    user_id="creator", file_name="card.csv", file_data=b64(SCORECARD_CSV),
                ),
            )
        runtime.run_until_idle()

        assert runtime.published(topics.IMPORT_FAILED) == []
        assert len(runtime.published(topics.IMPORT_COMPLETED)) == 2
        for guild_id in ("guild-1", "guild-2"):
            job = repo.get_import_job(guild_id, "imp-shared")
            assert job.guild_id == guild_id
            assert job.status == ImportStatus.APPLIED
            assert repo.get_round(guild_id, "round-1").state == RoundState.FINALIZED

    def test_scoped_copies_follow_owner(self, runtime, make_round):
        make_round(guild_id="guild-1")
        make_round(guild_id="guild-2")
        for guild_id in ("guild-1", "guild-2"):
            runtime.submit(
                topics.ROUND_PARTICIPANT_STATUS_UPDATE_REQUESTED,
                ParticipantJoinRequestPayload(
                    guild_id=guild_id, round_id="round-1", user_id="alice",
                    response=Response.ACCEPT,
                ),
            )
        runtime.run_until_idle()

        for guild_id in ("guild-1", "guild-2"):
            [scoped] = runtime.published(
                guild_scoped_topic(topics.ROUND_PARTICIPANT_JOINED, guild_id)
            )
            assert scoped.payload["guild_id"] == guild_id
        assert len(runtime.published(topics.ROUND_PARTICIPANT_JOINED)) == 2


class TestScopeEdgeCases:
    def test_failures_not_dual_published(self, runtime):
        runtime.submit(
            topics.ROUND_START_REQUESTED,
            RoundStartRequestedPayload(guild_id="guild-1", round_id="ghost"),
        )
        runtime.run_until_idle()
        assert len(runtime.published(topics.ROUND_START_FAILED)) == 1
        assert not any(
            e.topic.startswith(topics.ROUND_START_FAILED + ".") for e in runtime.published()
        )

    def test_empty_guild_publishes_base_only(self, runtime, make_round, caplog):
        make_round(guild_id="")
        with caplog.at_level(logging.ERROR, logger="roundflow.bridge.transport"):
            runtime.submit(
                topics.ROUND_PARTICIPANT_STATUS_UPDATE_REQUESTED,
                ParticipantJoinRequestPayload(
                    guild_id="", round_id="round-1", user_id="alice",
                    response=Response.ACCEPT,
                ),
            )
            runtime.run_until_idle()

        [joined] = runtime.published(topics.ROUND_PARTICIPANT_JOINED)
        assert joined.guild_scope is None
        assert runtime.published(guild_scoped_topic(topics.ROUND_PARTICIPANT_JOINED, "")) == []
        assert "empty guild id" in caplog.text
