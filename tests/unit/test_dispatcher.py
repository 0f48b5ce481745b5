"""Tests for the EnvelopeDispatcher: routing, decoding, outcomes, envelope building."""

from __future__ import annotations

import json

import pytest

from roundflow.core.dispatcher import (
    DispatchStatus,
    EnvelopeDispatcher,
    HandlerContext,
)
from roundflow.errors import EnvelopeValidationError, HandlerCancelledError
from roundflow.models.envelopes import Envelope, Result
from roundflow.models.events import EventPayload


class PingPayload(EventPayload):
    guild_id: str
    count: int


class PongPayload(EventPayload):
    guild_id: str
    count: int


def _ping(ctx: HandlerContext, payload: PingPayload) -> list[Result]:
    return [Result(topic="pong.v1", payload=PongPayload(guild_id=payload.guild_id, count=payload.count + 1))]


@pytest.fixture
def dispatcher() -> EnvelopeDispatcher:
    d = EnvelopeDispatcher()
    d.register("ping.v1", PingPayload, _ping, name="test.ping")
    return d


class TestRegistration:
    def test_duplicate_topic_rejected(self, dispatcher):
        with pytest.raises(ValueError, match="already routed"):
            dispatcher.register("ping.v1", PingPayload, _ping)

    def test_routes_sorted_by_topic(self, dispatcher):
        dispatcher.register("a.first.v1", PingPayload, _ping)
        assert [r.topic for r in dispatcher.routes] == ["a.first.v1", "ping.v1"]

    def test_has_route(self, dispatcher):
        assert dispatcher.has_route("ping.v1")
        assert not dispatcher.has_route("pong.v1")

    def test_default_route_name_is_qualname(self):
        d = EnvelopeDispatcher()
        d.register("ping.v1", PingPayload, _ping)
        assert d.routes[0].name == "_ping"


class TestDispatch:
    def test_acked_with_outgoing(self, dispatcher):
        env = Envelope(topic="ping.v1", payload={"guild_id": "g1", "count": 1})
        outcome = dispatcher.dispatch(env)
        assert outcome.status == DispatchStatus.ACKED
        assert len(outcome.outgoing) == 1
        out = outcome.outgoing[0]
        assert out.topic == "pong.v1"
        assert out.payload == {"guild_id": "g1", "count": 2}

    def test_correlation_id_preserved(self, dispatcher):
        env = Envelope(topic="ping.v1", payload={"guild_id": "g1", "count": 1}, correlation_id="corr-xyz")
        outcome = dispatcher.dispatch(env)
        assert outcome.outgoing[0].correlation_id == "corr-xyz"
        assert outcome.outgoing[0].envelope_id != env.envelope_id

    def test_unrouted_topic_dropped(self, dispatcher):
        outcome = dispatcher.dispatch(Envelope(topic="nobody.listens.v1"))
        assert outcome.status == DispatchStatus.DROPPED
        assert outcome.outgoing == []

    def test_decode_failure_dropped_without_calling_handler(self):
        calls = []
        d = EnvelopeDispatcher()
        d.register("ping.v1", PingPayload, lambda ctx, p: calls.append(p) or [])
        outcome = d.dispatch(Envelope(topic="ping.v1", payload={"guild_id": "g1", "count": "many"}))
        assert outcome.status == DispatchStatus.DROPPED
        assert calls == []
        assert "failed validation" in outcome.error

    def test_handler_exception_means_retry(self):
        def boom(ctx, payload):
            raise RuntimeError("database unavailable")

        d = EnvelopeDispatcher()
        d.register("ping.v1", PingPayload, boom)
        outcome = d.dispatch(Envelope(topic="ping.v1", payload={"guild_id": "g1", "count": 1}))
        assert outcome.status == DispatchStatus.RETRY
        assert outcome.should_retry
        assert outcome.outgoing == []
        assert "database unavailable" in outcome.error

    def test_empty_results_acked(self):
        d = EnvelopeDispatcher()
        d.register("ping.v1", PingPayload, lambda ctx, p: [])
        outcome = d.dispatch(Envelope(topic="ping.v1", payload={"guild_id": "g1", "count": 1}))
        assert outcome.status == DispatchStatus.ACKED
        assert outcome.outgoing == []

    def test_handler_sees_context(self):
        seen: list[HandlerContext] = []

        def capture(ctx, payload):
            seen.append(ctx)
            return []

        d = EnvelopeDispatcher()
        d.register("ping.v1", PingPayload, capture)
        env = Envelope(
            topic="ping.v1",
            payload={"guild_id": "g1", "count": 1},
            correlation_id="c-1",
            metadata={"submitted_at": "2026-03-01T12:00:00+00:00"},
        )
        d.dispatch(env)
        assert seen[0].correlation_id == "c-1"
        assert seen[0].topic == "ping.v1"
        assert seen[0].envelope_id == env.envelope_id
        assert seen[0].metadata["submitted_at"] == "2026-03-01T12:00:00+00:00"


class TestBuildEnvelopes:
    def test_metadata_merge_result_wins(self):
        inbound = Envelope(topic="ping.v1", metadata={"a": "inbound", "b": "keep"})
        results = [
            Result(
                topic="pong.v1",
                payload=PongPayload(guild_id="g1", count=1),
                metadata={"a": "result"},
            )
        ]
        [out] = EnvelopeDispatcher.build_envelopes(inbound, results)
        assert out.metadata == {"a": "result", "b": "keep"}

    def test_guild_scope_carried(self):
        inbound = Envelope(topic="ping.v1")
        results = [Result(topic="pong.v1", payload=PongPayload(guild_id="g1", count=1)).guild_scoped("g1")]
        [out] = EnvelopeDispatcher.build_envelopes(inbound, results)
        assert out.guild_scope == "g1"

    def test_results_keep_order(self):
        inbound = Envelope(topic="ping.v1")
        results = [
            Result(topic=f"t{i}.v1", payload=PongPayload(guild_id="g", count=i))
            for i in range(3)
        ]
        out = EnvelopeDispatcher.build_envelopes(inbound, results)
        assert [e.topic for e in out] == ["t0.v1", "t1.v1", "t2.v1"]


class TestWireFormat:
    def test_serialize_then_dispatch_raw(self, dispatcher):
        env = Envelope(topic="ping.v1", payload={"guild_id": "g1", "count": 41})
        outcome = dispatcher.dispatch_raw(EnvelopeDispatcher.serialize(env))
        assert outcome.status == DispatchStatus.ACKED
        assert outcome.outgoing[0].payload["count"] == 42

    def test_serialize_is_canonical(self):
        env = Envelope(topic="ping.v1", payload={"b": 1, "a": 2})
        raw = EnvelopeDispatcher.serialize(env)
        assert raw == EnvelopeDispatcher.serialize(env)
        assert json.loads(raw)["payload"] == {"a": 2, "b": 1}

    def test_dispatch_raw_drops_garbage(self, dispatcher):
        outcome = dispatcher.dispatch_raw(b"not json")
        assert outcome.status == DispatchStatus.DROPPED

    def test_decode_payload_unrouted(self, dispatcher):
        with pytest.raises(EnvelopeValidationError, match="No route"):
            dispatcher.decode_payload(Envelope(topic="nope.v1"))


class TestHandlerContext:
    def test_metadata_read_only(self):
        ctx = HandlerContext("c", "t", {"k": "v"})
        with pytest.raises(TypeError):
            ctx.metadata["k"] = "x"  # type: ignore[index]

    def test_cancel_raises(self):
        ctx = HandlerContext("c", "t")
        ctx.raise_if_cancelled()
        ctx.cancel()
        assert ctx.cancelled
        with pytest.raises(HandlerCancelledError, match="cancelled"):
            ctx.raise_if_cancelled()

    def test_deadline(self):
        now = [100.0]
        ctx = HandlerContext("c", "t", timeout_seconds=5.0, clock=lambda: now[0])
        assert ctx.remaining_seconds == 5.0
        assert not ctx.expired
        now[0] = 105.0
        assert ctx.expired
        assert ctx.remaining_seconds == 0.0
        with pytest.raises(HandlerCancelledError, match="deadline"):
            ctx.raise_if_cancelled()

    def test_no_deadline(self):
        ctx = HandlerContext("c", "t", timeout_seconds=None)
        assert ctx.remaining_seconds is None
        assert not ctx.expired
