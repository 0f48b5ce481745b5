"""Tests for the round and import state machines."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from roundflow.core.round_machine import advance_import, can_transition, transition_round
from roundflow.errors import InvalidTransitionError
from roundflow.models.imports import ImportJob, ImportStatus
from roundflow.models.rounds import Round, RoundState


def _round(state: RoundState) -> Round:
    return Round(
        guild_id="g1",
        round_id="r1",
        title="t",
        start_time=datetime(2026, 3, 1, tzinfo=timezone.utc),
        created_by="u1",
        state=state,
    )


class TestRoundTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RoundState.UPCOMING, RoundState.IN_PROGRESS),
            (RoundState.UPCOMING, RoundState.DELETED),
            (RoundState.IN_PROGRESS, RoundState.FINALIZED),
            (RoundState.IN_PROGRESS, RoundState.DELETED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        assert transition_round(_round(current), target).state == target

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RoundState.UPCOMING, RoundState.FINALIZED),
            (RoundState.IN_PROGRESS, RoundState.UPCOMING),
            (RoundState.FINALIZED, RoundState.IN_PROGRESS),
            (RoundState.FINALIZED, RoundState.DELETED),
            (RoundState.DELETED, RoundState.UPCOMING),
            (RoundState.UPCOMING, RoundState.UPCOMING),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransitionError):
            transition_round(_round(current), target)

    def test_original_untouched(self):
        original = _round(RoundState.UPCOMING)
        transition_round(original, RoundState.IN_PROGRESS)
        assert original.state == RoundState.UPCOMING

    def test_terminal_states(self):
        assert _round(RoundState.FINALIZED).is_terminal
        assert _round(RoundState.DELETED).is_terminal
        assert not _round(RoundState.IN_PROGRESS).is_terminal


class TestImportTransitions:
    def _job(self, status: ImportStatus = ImportStatus.UPLOADED) -> ImportJob:
        return ImportJob(import_id="i1", guild_id="g1", round_id="r1", status=status)

    def test_forward(self):
        job = advance_import(self._job(), ImportStatus.PARSED)
        assert job.status == ImportStatus.PARSED

    def test_same_status_is_noop(self):
        job = self._job(ImportStatus.NORMALIZED)
        assert advance_import(job, ImportStatus.NORMALIZED) is job

    def test_skip_rejected(self):
        with pytest.raises(InvalidTransitionError):
            advance_import(self._job(), ImportStatus.INGESTED)

    def test_failed_records_error(self):
        job = advance_import(self._job(ImportStatus.MATCHED), ImportStatus.FAILED, "bad row")
        assert job.status == ImportStatus.FAILED
        assert job.error == "bad row"
        assert job.is_terminal

    def test_terminal_never_resumed(self):
        with pytest.raises(InvalidTransitionError):
            advance_import(self._job(ImportStatus.APPLIED), ImportStatus.FAILED)
