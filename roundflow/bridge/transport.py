"""In-process message bus.

``InMemoryBus`` stands where the production broker would: it carries
serialized envelopes in a bounded local queue, redelivers anything a handler
left for retry, and relays handler output back onto the queue.  Results
marked with a guild scope are dual-published to the base topic and
``<topic>.<guild_id>``.

Only topics the attached dispatcher routes are queued for delivery.  Every
other publication (presentation events, guild-scoped copies, requests to
external services) is recorded in the history for inspection and goes no
further.
"""

from __future__ import annotations

import collections
import logging
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict

from roundflow.core.dispatcher import DispatchOutcome, DispatchStatus, EnvelopeDispatcher
from roundflow.core.fanout import publish_guild_scoped
from roundflow.errors import GuildScopeError, TransportError
from roundflow.models.envelopes import Envelope

logger = logging.getLogger(__name__)


class DeadLetter(BaseModel):
    """An envelope that exhausted its delivery attempts."""

    model_config = ConfigDict(frozen=True)

    envelope_id: str
    topic: str
    correlation_id: str
    attempts: int
    error: str


class _Queued(NamedTuple):
    raw: bytes
    envelope: Envelope
    attempts: int


class InMemoryBus:
    """Bounded local queue with redelivery and guild-scoped relay.

    Parameters
    ----------
    max_local_queue:
        Maximum number of envelopes waiting for delivery.
    max_delivery_attempts:
        How many times a retryable envelope is delivered before it is
        dead-lettered.
    dual_publish:
        When ``False`` guild scopes are ignored and only the base topic is
        published.
    """

    def __init__(
        self,
        *,
        max_local_queue: int = 1024,
        max_delivery_attempts: int = 5,
        dual_publish: bool = True,
    ) -> None:
        self._max_local_queue = max_local_queue
        self._max_attempts = max(1, max_delivery_attempts)
        self._dual_publish = dual_publish
        self._queue: collections.deque[_Queued] = collections.deque()
        self._history: list[Envelope] = []
        self._dead_letters: list[DeadLetter] = []
        self._dispatcher: EnvelopeDispatcher | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def local_queue_depth(self) -> int:
        """Number of envelopes waiting for delivery."""
        return len(self._queue)

    @property
    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    def attach(self, dispatcher: EnvelopeDispatcher) -> None:
        """Deliver routed topics to *dispatcher*."""
        self._dispatcher = dispatcher

    def history(self, topic: str | None = None) -> list[Envelope]:
        """Every envelope published so far, optionally filtered by topic."""
        if topic is None:
            return list(self._history)
        return [e for e in self._history if e.topic == topic]

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def publish(self, envelope: Envelope) -> str:
        """Record *envelope* and queue it if a handler consumes its topic.

        Raises
        ------
        TransportError
            If the local queue is full.
        """
        if self._dispatcher is not None and not self._dispatcher.has_route(envelope.topic):
            logger.debug(
                "Published %s (no local consumer, correlation_id=%s)",
                envelope.topic,
                envelope.correlation_id,
            )
        else:
            self._enqueue(envelope, attempts=0)
        self._history.append(envelope)
        return envelope.envelope_id

    def relay(self, outgoing: list[Envelope]) -> list[str]:
        """Publish handler output, dual-publishing guild-scoped envelopes."""
        ids: list[str] = []
        for envelope in outgoing:
            if envelope.guild_scope is None or not self._dual_publish:
                plain = envelope.model_copy(update={"guild_scope": None})
                ids.append(self.publish(plain))
                continue
            try:
                published = publish_guild_scoped(
                    self, envelope.topic, envelope.guild_scope, envelope
                )
            except GuildScopeError as exc:
                logger.error(
                    "%s (correlation_id=%s); publishing base topic only",
                    exc,
                    envelope.correlation_id,
                )
                plain = envelope.model_copy(update={"guild_scope": None})
                ids.append(self.publish(plain))
                continue
            ids.extend(e.envelope_id for e in published)
        return ids

    # ------------------------------------------------------------------
    # Deliver
    # ------------------------------------------------------------------

    def pump(self, dispatcher: EnvelopeDispatcher | None = None) -> DispatchOutcome | None:
        """Deliver the oldest queued envelope; ``None`` when idle.

        A relay that fails because the queue filled up is treated like a
        handler fault: the inbound envelope is redelivered or dead-lettered,
        never lost.
        """
        target = dispatcher or self._dispatcher
        if target is None:
            raise TransportError("No dispatcher attached to the bus")
        if not self._queue:
            return None

        item = self._queue.popleft()
        outcome = target.dispatch_raw(item.raw)

        if outcome.status == DispatchStatus.ACKED:
            try:
                self.relay(outcome.outgoing)
            except TransportError as exc:
                logger.warning(
                    "Relay of %s output failed (correlation_id=%s): %s",
                    item.envelope.topic,
                    item.envelope.correlation_id,
                    exc,
                )
                outcome = outcome.model_copy(
                    update={"status": DispatchStatus.RETRY, "error": str(exc)}
                )
                self._retry_or_dead_letter(item, outcome.error)
        elif outcome.status == DispatchStatus.RETRY:
            self._retry_or_dead_letter(item, outcome.error)
        return outcome

    def run_until_idle(
        self, dispatcher: EnvelopeDispatcher | None = None, *, max_steps: int = 10_000
    ) -> list[DispatchOutcome]:
        """Pump until the queue is empty or *max_steps* deliveries ran."""
        outcomes: list[DispatchOutcome] = []
        for _ in range(max_steps):
            outcome = self.pump(dispatcher)
            if outcome is None:
                break
            outcomes.append(outcome)
        else:
            logger.warning(
                "Bus still has %d queued envelopes after %d steps",
                len(self._queue),
                max_steps,
            )
        return outcomes

    def close(self) -> None:
        self._queue.clear()
        logger.info("InMemoryBus: closed.")

    def __enter__(self) -> InMemoryBus:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"InMemoryBus(depth={len(self._queue)}, "
            f"published={len(self._history)}, dead={len(self._dead_letters)})"
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _enqueue(self, envelope: Envelope, *, attempts: int) -> None:
        if len(self._queue) >= self._max_local_queue:
            raise TransportError(
                f"Local bus queue is full (depth={len(self._queue)}).  "
                f"Envelope {envelope.envelope_id} dropped."
            )
        raw = EnvelopeDispatcher.serialize(envelope)
        self._queue.append(_Queued(raw, envelope, attempts))
        logger.debug(
            "Queued %s (depth=%d, correlation_id=%s)",
            envelope.topic,
            len(self._queue),
            envelope.correlation_id,
        )

    def _retry_or_dead_letter(self, item: _Queued, error: str) -> None:
        attempts = item.attempts + 1
        if attempts >= self._max_attempts:
            logger.error(
                "Dead-lettering %s after %d attempts (correlation_id=%s): %s",
                item.envelope.topic,
                attempts,
                item.envelope.correlation_id,
                error,
            )
            self._dead_letters.append(
                DeadLetter(
                    envelope_id=item.envelope.envelope_id,
                    topic=item.envelope.topic,
                    correlation_id=item.envelope.correlation_id,
                    attempts=attempts,
                    error=error,
                )
            )
            return
        # The item held a slot before it was popped, so it may exceed the cap.
        self._queue.append(item._replace(attempts=attempts))
