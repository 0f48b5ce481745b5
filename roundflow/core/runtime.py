"""Runtime: wires the dispatcher, the bus, the round service and the sagas.

``RoundflowRuntime`` is the in-process composition root used by the CLI and
the integration tests.  It owns one ``EnvelopeDispatcher`` with every saga
registered, one ``InMemoryBus`` attached to it, and a ``DefaultRoundService``
over the repository it is given (an in-memory one by default).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Protocol

from pydantic import BaseModel

from roundflow.bridge.transport import InMemoryBus
from roundflow.config import RoundflowConfig
from roundflow.core.dispatcher import DispatchOutcome, EnvelopeDispatcher
from roundflow.models.envelopes import Envelope
from roundflow.sagas import BaseSaga, register_all
from roundflow.services.protocols import (
    Clock,
    RoundRepository,
    RoundService,
    ScorecardFetcher,
)
from roundflow.services.repository import InMemoryRoundRepository
from roundflow.services.round_service import DefaultRoundService
from roundflow.services.scorecard import CsvScorecardParser, HttpScorecardFetcher
from roundflow.services.time_parser import NaturalTimeParser, SystemClock

logger = logging.getLogger(__name__)


class Responder(Protocol):
    """A bus participant outside the sagas (e.g. a stand-in service)."""

    def register(self, dispatcher: EnvelopeDispatcher) -> None: ...


class RoundflowRuntime:
    """Everything needed to run the round sagas in one process.

    Parameters
    ----------
    config:
        Runtime configuration.  Read from the environment if not provided.
    repository:
        Round storage.  Defaults to ``InMemoryRoundRepository``.
    service:
        Round service.  Built from *repository* and *config* if not provided.
    clock:
        Wall clock used when a request carries no submission timestamp.
    scorecard_fetcher:
        Downloader for URL imports.  Defaults to ``HttpScorecardFetcher``.
    responders:
        Extra bus participants to register alongside the sagas.
    """

    def __init__(
        self,
        config: RoundflowConfig | None = None,
        *,
        repository: RoundRepository | None = None,
        service: RoundService | None = None,
        clock: Clock | None = None,
        scorecard_fetcher: ScorecardFetcher | None = None,
        responders: Iterable[Responder] = (),
    ) -> None:
        self.config = config or RoundflowConfig()
        self.clock = clock or SystemClock()
        self.repository = repository or InMemoryRoundRepository()
        if service is None:
            fetcher = scorecard_fetcher or HttpScorecardFetcher(
                timeout_seconds=self.config.scorecard_fetch_timeout_seconds,
                max_bytes=self.config.scorecard_max_bytes,
            )
            service = DefaultRoundService(
                self.repository,
                NaturalTimeParser(self.config.default_timezone),
                CsvScorecardParser(),
                fetcher,
                allow_late_join=self.config.allow_late_join,
                scorecard_max_bytes=self.config.scorecard_max_bytes,
            )
        self.service = service

        self.dispatcher = EnvelopeDispatcher(
            handler_timeout_seconds=self.config.handler_timeout_seconds
        )
        self.sagas: list[BaseSaga] = register_all(
            self.dispatcher, self.service, clock=self.clock
        )
        for responder in responders:
            responder.register(self.dispatcher)

        self.bus = InMemoryBus(
            max_local_queue=self.config.local_queue_depth,
            max_delivery_attempts=self.config.max_delivery_attempts,
            dual_publish=self.config.publish_guild_scoped,
        )
        self.bus.attach(self.dispatcher)
        logger.info(
            "Runtime ready: %d routes across %d sagas (environment=%s)",
            len(self.dispatcher.routes),
            len(self.sagas),
            self.config.environment,
        )

    def submit(
        self,
        topic: str,
        payload: BaseModel,
        metadata: Mapping[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> Envelope:
        """Publish *payload* on *topic* as a new saga entry point."""
        fields: dict = {
            "topic": topic,
            "payload": payload.model_dump(mode="json"),
            "metadata": dict(metadata or {}),
        }
        if correlation_id:
            fields["correlation_id"] = correlation_id
        envelope = Envelope(**fields)
        self.bus.publish(envelope)
        return envelope

    def run_until_idle(self, *, max_steps: int = 10_000) -> list[DispatchOutcome]:
        return self.bus.run_until_idle(max_steps=max_steps)

    def published(self, topic: str | None = None) -> list[Envelope]:
        """Envelopes published on *topic* (all topics when ``None``)."""
        return self.bus.history(topic)
