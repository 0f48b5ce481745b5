"""In-memory round repository with optimistic versioning.

Rounds are keyed by ``(guild_id, round_id)`` and import jobs by
``(guild_id, import_id)`` so one guild can never read or overwrite another's
rows.  Every successful round write bumps ``version``; a write carrying a
stale version raises ``NoRowsAffectedError``, which the saga layer treats as
a retryable fault.
"""

from __future__ import annotations

import logging
import threading

from roundflow.errors import (
    ImportJobNotFoundError,
    NoRowsAffectedError,
    RepositoryError,
    RoundNotFoundError,
)
from roundflow.models.imports import ImportJob
from roundflow.models.rounds import Round

logger = logging.getLogger(__name__)


class InMemoryRoundRepository:
    """Thread-safe dict-backed ``RoundRepository``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rounds: dict[tuple[str, str], Round] = {}
        self._imports: dict[tuple[str, str], ImportJob] = {}

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def create_round(self, round_: Round) -> Round:
        key = (round_.guild_id, round_.round_id)
        with self._lock:
            if key in self._rounds:
                raise RepositoryError(
                    f"Round {round_.round_id} already exists in guild {round_.guild_id}"
                )
            stored = round_.model_copy(update={"version": 1})
            self._rounds[key] = stored
        logger.debug("Created round %s (guild %s)", round_.round_id, round_.guild_id)
        return stored

    def get_round(self, guild_id: str, round_id: str) -> Round:
        with self._lock:
            round_ = self._rounds.get((guild_id, round_id))
        if round_ is None:
            raise RoundNotFoundError(
                f"Round {round_id} not found in guild {guild_id}"
            )
        return round_

    def update_round(self, round_: Round) -> Round:
        key = (round_.guild_id, round_.round_id)
        with self._lock:
            current = self._rounds.get(key)
            if current is None:
                raise RoundNotFoundError(
                    f"Round {round_.round_id} not found in guild {round_.guild_id}"
                )
            if current.version != round_.version:
                raise NoRowsAffectedError(
                    f"Round {round_.round_id}: expected version {round_.version}, "
                    f"stored version is {current.version}"
                )
            stored = round_.model_copy(update={"version": current.version + 1})
            self._rounds[key] = stored
        return stored

    def list_rounds(self, guild_id: str) -> list[Round]:
        with self._lock:
            return [r for (g, _), r in self._rounds.items() if g == guild_id]

    # ------------------------------------------------------------------
    # Import jobs
    # ------------------------------------------------------------------

    def get_import_job(self, guild_id: str, import_id: str) -> ImportJob:
        job = self.find_import_job(guild_id, import_id)
        if job is None:
            raise ImportJobNotFoundError(
                f"Import job {import_id} not found in guild {guild_id}"
            )
        return job

    def find_import_job(self, guild_id: str, import_id: str) -> ImportJob | None:
        with self._lock:
            return self._imports.get((guild_id, import_id))

    def save_import_job(self, job: ImportJob) -> ImportJob:
        with self._lock:
            self._imports[(job.guild_id, job.import_id)] = job
        return job
