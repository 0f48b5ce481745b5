"""Shared test fixtures for roundflow."""

from __future__ import annotations

import base64
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from roundflow.config import RoundflowConfig
from roundflow.core.dispatcher import HandlerContext
from roundflow.core.runtime import RoundflowRuntime
from roundflow.errors import ScorecardFetchError
from roundflow.models.rounds import Participant, Response, Round, RoundState
from roundflow.services.collaborators import NameMatcher, StaticTagDirectory
from roundflow.services.repository import InMemoryRoundRepository
from roundflow.services.round_service import DefaultRoundService
from roundflow.services.scorecard import CsvScorecardParser
from roundflow.services.time_parser import FixedClock, NaturalTimeParser

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

SCORECARD_CSV = b"Player,Total\nPar,54\nAlice Smith,52\nBob Jones,58\n"


class StubFetcher:
    """``ScorecardFetcher`` serving fixed bytes per URL."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = dict(files or {})
        self.calls: list[str] = []

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        try:
            return self.files[url]
        except KeyError:
            raise ScorecardFetchError(f"404 for {url}") from None


def b64(data: bytes) -> bytes:
    """Encode raw bytes the way ``file_data`` travels on the wire."""
    return base64.b64encode(data)


@pytest.fixture
def clock() -> FixedClock:
    """A clock frozen at 2026-03-01 12:00 UTC."""
    return FixedClock(NOW)


@pytest.fixture
def repo() -> InMemoryRoundRepository:
    return InMemoryRoundRepository()


@pytest.fixture
def fetcher() -> StubFetcher:
    return StubFetcher({"https://scores.example/card.csv": SCORECARD_CSV})


@pytest.fixture
def service(repo: InMemoryRoundRepository, fetcher: StubFetcher) -> DefaultRoundService:
    return DefaultRoundService(
        repo,
        NaturalTimeParser("UTC"),
        CsvScorecardParser(),
        fetcher,
    )


@pytest.fixture
def make_round(repo: InMemoryRoundRepository) -> Callable[..., Round]:
    """Factory fixture: store a round with sensible defaults and return it."""

    def _factory(
        round_id: str = "round-1",
        guild_id: str = "guild-1",
        state: RoundState = RoundState.UPCOMING,
        participants: list[Participant] | None = None,
        **overrides: Any,
    ) -> Round:
        defaults: dict[str, Any] = {
            "guild_id": guild_id,
            "round_id": round_id,
            "title": "Friday Flex",
            "location": "Riverside",
            "start_time": NOW + timedelta(hours=2),
            "state": state,
            "created_by": "creator",
            "participants": participants or [],
        }
        defaults.update(overrides)
        return repo.create_round(Round(**defaults))

    return _factory


@pytest.fixture
def make_ctx() -> Callable[..., HandlerContext]:
    """Factory fixture: build a HandlerContext for calling handlers directly."""

    def _factory(
        topic: str = "test.topic.v1",
        metadata: dict[str, str] | None = None,
        correlation_id: str = "corr-1",
        **kwargs: Any,
    ) -> HandlerContext:
        return HandlerContext(correlation_id, topic, metadata, **kwargs)

    return _factory


@pytest.fixture
def accepted() -> Callable[..., Participant]:
    def _factory(user_id: str, **overrides: Any) -> Participant:
        return Participant(user_id=user_id, response=Response.ACCEPT, **overrides)

    return _factory


@pytest.fixture
def config() -> RoundflowConfig:
    return RoundflowConfig(
        default_timezone="UTC",
        handler_timeout_seconds=30.0,
        max_delivery_attempts=3,
    )


@pytest.fixture
def runtime(
    config: RoundflowConfig,
    repo: InMemoryRoundRepository,
    clock: FixedClock,
    fetcher: StubFetcher,
) -> RoundflowRuntime:
    """A full in-process runtime with the tag and name stand-ins attached."""
    return RoundflowRuntime(
        config,
        repository=repo,
        clock=clock,
        scorecard_fetcher=fetcher,
        responders=[
            StaticTagDirectory({"alice": 7}),
            NameMatcher({"Alice Smith": "alice", "Bob Jones": "bob"}),
        ],
    )
