"""Lifecycle state machines for rounds and import jobs.

Both are pure: they validate a move against the transition table and return
an updated frozen copy.  Persisting the copy is the repository's job.
"""

from __future__ import annotations

from roundflow.errors import InvalidTransitionError
from roundflow.models.imports import IMPORT_TRANSITIONS, ImportJob, ImportStatus
from roundflow.models.rounds import VALID_TRANSITIONS, Round, RoundState


def can_transition(current: RoundState, target: RoundState) -> bool:
    """Whether a round in *current* may move to *target*."""
    return target in VALID_TRANSITIONS.get(current, set())


def transition_round(round_: Round, target: RoundState) -> Round:
    """Return a copy of *round_* in state *target*.

    Raises ``InvalidTransitionError`` for any move not in
    ``VALID_TRANSITIONS`` (including re-entering the current state).
    """
    allowed = VALID_TRANSITIONS.get(round_.state, set())
    if target not in allowed:
        raise InvalidTransitionError(
            f"Cannot transition round {round_.round_id} from "
            f"{round_.state.value} to {target.value}. "
            f"Allowed: {sorted(s.value for s in allowed)}"
        )
    return round_.model_copy(update={"state": target})


def advance_import(job: ImportJob, target: ImportStatus, error: str = "") -> ImportJob:
    """Return a copy of *job* at *target*.

    Re-entering the current status is a no-op (the same job is returned) so
    that a redelivered pipeline step does not fail.  A terminal job is never
    resumed.
    """
    if job.status == target:
        return job
    allowed = IMPORT_TRANSITIONS.get(job.status, set())
    if target not in allowed:
        raise InvalidTransitionError(
            f"Cannot move import {job.import_id} from "
            f"{job.status.value} to {target.value}. "
            f"Allowed: {sorted(s.value for s in allowed)}"
        )
    update: dict[str, object] = {"status": target}
    if target == ImportStatus.FAILED:
        update["error"] = error
    return job.model_copy(update=update)
