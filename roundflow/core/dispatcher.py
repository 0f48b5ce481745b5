"""Envelope dispatcher: routes envelopes to typed handlers by topic.

For every inbound envelope the dispatcher:

1. Decodes the JSON payload into the handler's declared model.  A decode
   failure is terminal; the envelope is logged and dropped.
2. Invokes ``handler(ctx, payload)`` with a ``HandlerContext``.
3. Turns each returned ``Result`` into an outgoing ``Envelope`` that keeps
   the inbound correlation id and merges metadata (result keys win).

Any exception out of the handler is a retryable fault: nothing is
published and the outcome is ``RETRY`` so the bus can redeliver.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from roundflow.core.hasher import canonical_json_bytes
from roundflow.errors import EnvelopeValidationError, HandlerCancelledError
from roundflow.models.envelopes import Envelope, Result

logger = logging.getLogger(__name__)

Handler = Callable[["HandlerContext", Any], list[Result]]


# ---------------------------------------------------------------------------
# Handler context
# ---------------------------------------------------------------------------


class HandlerContext:
    """Per-delivery context handed to a handler.

    Parameters
    ----------
    correlation_id:
        Correlation id of the inbound envelope.
    topic:
        The topic the envelope arrived on.
    metadata:
        Inbound metadata (read-only).
    timeout_seconds:
        Processing budget for this delivery.  ``None`` disables the deadline.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        correlation_id: str,
        topic: str,
        metadata: Mapping[str, str] | None = None,
        *,
        envelope_id: str = "",
        timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.correlation_id = correlation_id
        self.topic = topic
        self.envelope_id = envelope_id
        self.metadata: Mapping[str, str] = MappingProxyType(dict(metadata or {}))
        self._clock = clock
        self._deadline = (
            None if timeout_seconds is None else clock() + timeout_seconds
        )
        self._cancelled = False

    def cancel(self) -> None:
        """Cancel this delivery; the next check raises."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled or self.expired

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    @property
    def remaining_seconds(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def raise_if_cancelled(self) -> None:
        """Raise ``HandlerCancelledError`` if cancelled or past the deadline."""
        if self._cancelled:
            raise HandlerCancelledError(
                f"handler for {self.topic} cancelled "
                f"(correlation_id={self.correlation_id})"
            )
        if self.expired:
            raise HandlerCancelledError(
                f"handler for {self.topic} exceeded its deadline "
                f"(correlation_id={self.correlation_id})"
            )


# ---------------------------------------------------------------------------
# Routes and outcomes
# ---------------------------------------------------------------------------


class Route(BaseModel):
    """A topic bound to a payload model and a handler."""

    model_config = ConfigDict(frozen=True)

    topic: str
    payload_model: type[BaseModel]
    handler: Callable[..., list[Result]]
    name: str


class DispatchStatus(str, Enum):
    ACKED = "acked"
    DROPPED = "dropped"
    RETRY = "retry"


class DispatchOutcome(BaseModel):
    """What happened to one delivery."""

    model_config = ConfigDict(frozen=True)

    status: DispatchStatus
    envelope_id: str = ""
    topic: str = ""
    outgoing: list[Envelope] = []
    error: str = ""

    @property
    def should_retry(self) -> bool:
        return self.status == DispatchStatus.RETRY


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class EnvelopeDispatcher:
    """Routes envelopes to registered handlers.

    Parameters
    ----------
    handler_timeout_seconds:
        Deadline applied to each handler invocation.
    """

    def __init__(self, handler_timeout_seconds: float | None = 30.0) -> None:
        self._routes: dict[str, Route] = {}
        self._timeout = handler_timeout_seconds

    def register(
        self,
        topic: str,
        payload_model: type[BaseModel],
        handler: Handler,
        *,
        name: str | None = None,
    ) -> None:
        """Bind *topic* to *handler*, decoding payloads as *payload_model*."""
        if topic in self._routes:
            raise ValueError(
                f"Topic {topic!r} is already routed to "
                f"{self._routes[topic].name}"
            )
        self._routes[topic] = Route(
            topic=topic,
            payload_model=payload_model,
            handler=handler,
            name=name or getattr(handler, "__qualname__", repr(handler)),
        )

    @property
    def routes(self) -> list[Route]:
        """Registered routes, sorted by topic."""
        return [self._routes[t] for t in sorted(self._routes)]

    def has_route(self, topic: str) -> bool:
        return topic in self._routes

    # ------------------------------------------------------------------
    # Receive (deserialize + validate)
    # ------------------------------------------------------------------

    @staticmethod
    def receive(raw_json: bytes | str) -> Envelope:
        """Deserialize and validate a raw JSON envelope."""
        if isinstance(raw_json, bytes):
            try:
                raw_json = raw_json.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise EnvelopeValidationError(f"Invalid UTF-8: {exc}") from exc

        try:
            data = json.loads(raw_json)
        except json.JSONDecodeError as exc:
            raise EnvelopeValidationError(f"Invalid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise EnvelopeValidationError(
                f"Envelope must be a JSON object, got {type(data).__name__}"
            )
        if not data.get("topic"):
            raise EnvelopeValidationError("Missing topic field")

        try:
            return Envelope.model_validate(data)
        except ValidationError as exc:
            raise EnvelopeValidationError(
                f"Envelope validation failed: {exc}"
            ) from exc

    @staticmethod
    def serialize(envelope: Envelope) -> bytes:
        """Serialize an envelope to canonical JSON bytes."""
        return canonical_json_bytes(envelope.model_dump(mode="json"))

    def decode_payload(self, envelope: Envelope) -> BaseModel:
        """Decode *envelope*'s payload into its route's model."""
        route = self._routes.get(envelope.topic)
        if route is None:
            raise EnvelopeValidationError(f"No route for topic {envelope.topic!r}")
        try:
            return route.payload_model.model_validate(envelope.payload)
        except ValidationError as exc:
            raise EnvelopeValidationError(
                f"Payload for {envelope.topic} failed validation: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch_raw(self, raw_json: bytes | str) -> DispatchOutcome:
        """Decode and dispatch raw JSON; malformed input is dropped."""
        try:
            envelope = self.receive(raw_json)
        except EnvelopeValidationError as exc:
            logger.warning("Dropping undecodable envelope: %s", exc)
            return DispatchOutcome(status=DispatchStatus.DROPPED, error=str(exc))
        return self.dispatch(envelope)

    def dispatch(self, envelope: Envelope) -> DispatchOutcome:
        """Run the handler routed for *envelope* and build outgoing envelopes."""
        route = self._routes.get(envelope.topic)
        if route is None:
            logger.warning(
                "No handler for topic %s (correlation_id=%s); dropping",
                envelope.topic,
                envelope.correlation_id,
            )
            return self._outcome(
                envelope, DispatchStatus.DROPPED, error="unrouted topic"
            )

        try:
            payload = self.decode_payload(envelope)
        except EnvelopeValidationError as exc:
            logger.error(
                "Dropping %s (correlation_id=%s): %s",
                envelope.topic,
                envelope.correlation_id,
                exc,
            )
            return self._outcome(envelope, DispatchStatus.DROPPED, error=str(exc))

        ctx = HandlerContext(
            correlation_id=envelope.correlation_id,
            topic=envelope.topic,
            metadata=envelope.metadata,
            envelope_id=envelope.envelope_id,
            timeout_seconds=self._timeout,
        )
        logger.debug(
            "Dispatching %s to %s (correlation_id=%s)",
            envelope.topic,
            route.name,
            envelope.correlation_id,
        )

        try:
            results = route.handler(ctx, payload)
            outgoing = self.build_envelopes(envelope, results or [])
        except Exception as exc:
            logger.error(
                "%s failed on %s (correlation_id=%s); leaving for redelivery: %s",
                route.name,
                envelope.topic,
                envelope.correlation_id,
                exc,
            )
            return self._outcome(envelope, DispatchStatus.RETRY, error=str(exc))

        logger.info(
            "%s handled %s -> %s (correlation_id=%s)",
            route.name,
            envelope.topic,
            [e.topic for e in outgoing] or "no results",
            envelope.correlation_id,
        )
        return self._outcome(envelope, DispatchStatus.ACKED, outgoing=outgoing)

    @staticmethod
    def build_envelopes(
        inbound: Envelope, results: Iterable[Result]
    ) -> list[Envelope]:
        """Turn handler results into envelopes under the inbound correlation id."""
        outgoing: list[Envelope] = []
        for result in results:
            metadata = {**inbound.metadata, **result.metadata}
            outgoing.append(
                Envelope(
                    schema_version=inbound.schema_version,
                    topic=result.topic,
                    payload=result.payload.model_dump(mode="json"),
                    correlation_id=inbound.correlation_id,
                    metadata=metadata,
                    guild_scope=result.guild_id,
                )
            )
        return outgoing

    @staticmethod
    def _outcome(
        envelope: Envelope,
        status: DispatchStatus,
        *,
        outgoing: list[Envelope] | None = None,
        error: str = "",
    ) -> DispatchOutcome:
        return DispatchOutcome(
            status=status,
            envelope_id=envelope.envelope_id,
            topic=envelope.topic,
            outgoing=outgoing or [],
            error=error,
        )
