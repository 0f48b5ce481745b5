"""Unit tests for the in-memory bus: queueing, relay, redelivery, dead letters."""

from __future__ import annotations

import pytest

from roundflow.bridge.transport import InMemoryBus
from roundflow.core.dispatcher import DispatchStatus, EnvelopeDispatcher
from roundflow.errors import TransportError
from roundflow.models.envelopes import Envelope, Result
from roundflow.models.events import EventPayload


class Note(EventPayload):
    guild_id: str
    text: str


def _echo(ctx, payload: Note) -> list[Result]:
    return [Result(topic="note.echoed.v1", payload=payload).guild_scoped(payload.guild_id)]


def _plain(ctx, payload: Note) -> list[Result]:
    return [Result(topic="note.plain.v1", payload=payload)]


def _note(topic: str = "note.v1", guild_id: str = "g1") -> Envelope:
    return Envelope(topic=topic, payload={"guild_id": guild_id, "text": "hi"}, correlation_id="c1")


@pytest.fixture
def dispatcher() -> EnvelopeDispatcher:
    d = EnvelopeDispatcher()
    d.register("note.v1", Note, _echo)
    d.register("note.plain_requested.v1", Note, _plain)
    return d


@pytest.fixture
def bus(dispatcher) -> InMemoryBus:
    b = InMemoryBus(max_local_queue=10, max_delivery_attempts=3)
    b.attach(dispatcher)
    return b


class TestPublish:
    def test_routed_topic_is_queued(self, bus):
        bus.publish(_note())
        assert bus.local_queue_depth == 1

    def test_unrouted_topic_recorded_only(self, bus):
        bus.publish(_note(topic="presentation.only.v1"))
        assert bus.local_queue_depth == 0
        assert len(bus.history("presentation.only.v1")) == 1

    def test_queue_full(self, dispatcher):
        bus = InMemoryBus(max_local_queue=2)
        bus.attach(dispatcher)
        bus.publish(_note())
        bus.publish(_note())
        with pytest.raises(TransportError, match="queue is full"):
            bus.publish(_note())

    def test_without_dispatcher_everything_queued(self):
        bus = InMemoryBus()
        bus.publish(_note(topic="anything.v1"))
        assert bus.local_queue_depth == 1
        with pytest.raises(TransportError, match="No dispatcher"):
            bus.pump()


class TestRelay:
    def test_guild_scoped_dual_publish(self, bus):
        bus.publish(_note())
        outcome = bus.pump()
        assert outcome.status == DispatchStatus.ACKED
        assert len(bus.history("note.echoed.v1")) == 1
        assert len(bus.history("note.echoed.v1.g1")) == 1

    def test_plain_result_single_publish(self, bus):
        bus.publish(_note(topic="note.plain_requested.v1"))
        bus.run_until_idle()
        assert len(bus.history("note.plain.v1")) == 1
        assert [e.topic for e in bus.history() if e.topic.startswith("note.plain.v1.")] == []

    def test_empty_guild_falls_back_to_base(self, bus):
        bus.publish(_note(guild_id=""))
        bus.run_until_idle()
        assert len(bus.history("note.echoed.v1")) == 1
        assert [e.topic for e in bus.history() if e.topic.startswith("note.echoed.v1.")] == []

    def test_dual_publish_disabled(self, dispatcher):
        bus = InMemoryBus(dual_publish=False)
        bus.attach(dispatcher)
        bus.publish(_note())
        bus.run_until_idle()
        assert len(bus.history("note.echoed.v1")) == 1
        assert bus.history("note.echoed.v1.g1") == []
        assert bus.history("note.echoed.v1")[0].guild_scope is None


class TestRedelivery:
    def test_retry_then_success(self):
        attempts = []

        def flaky(ctx, payload):
            attempts.append(ctx.envelope_id)
            if len(attempts) < 3:
                raise RuntimeError("transient")
            return []

        d = EnvelopeDispatcher()
        d.register("note.v1", Note, flaky)
        bus = InMemoryBus(max_delivery_attempts=5)
        bus.attach(d)
        bus.publish(_note())
        outcomes = bus.run_until_idle()

        assert [o.status for o in outcomes] == [
            DispatchStatus.RETRY,
            DispatchStatus.RETRY,
            DispatchStatus.ACKED,
        ]
        # Redelivery is the same envelope.
        assert len(set(attempts)) == 1
        assert bus.dead_letters == []

    def test_dead_letter_after_max_attempts(self):
        d = EnvelopeDispatcher()
        d.register("note.v1", Note, lambda ctx, p: 1 / 0)
        bus = InMemoryBus(max_delivery_attempts=3)
        bus.attach(d)
        env = _note()
        bus.publish(env)
        outcomes = bus.run_until_idle()

        assert len(outcomes) == 3
        [dead] = bus.dead_letters
        assert dead.envelope_id == env.envelope_id
        assert dead.attempts == 3
        assert dead.correlation_id == "c1"
        assert bus.local_queue_depth == 0

    def test_dropped_not_redelivered(self, bus):
        bus.publish(Envelope(topic="note.v1", payload={"text": "missing guild"}))
        outcomes = bus.run_until_idle()
        assert [o.status for o in outcomes] == [DispatchStatus.DROPPED]
        assert bus.dead_letters == []

    def test_max_steps_bounds_work(self):
        d = EnvelopeDispatcher()
        d.register("note.v1", Note, lambda ctx, p: [Result(topic="note.v1", payload=p)])
        bus = InMemoryBus()
        bus.attach(d)
        bus.publish(_note())
        outcomes = bus.run_until_idle(max_steps=5)
        assert len(outcomes) == 5
        assert bus.local_queue_depth == 1

    def test_pump_idle_returns_none(self, bus):
        assert bus.pump() is None


class TestRelayFailure:
    """The queue filling up while output is relayed must not lose the inbound envelope."""

    @pytest.fixture
    def chain(self) -> EnvelopeDispatcher:
        d = EnvelopeDispatcher()
        d.register("note.forward.v1", Note, lambda ctx, p: [Result(topic="note.v1", payload=p)])
        d.register("note.v1", Note, lambda ctx, p: [])
        return d

    def test_inbound_requeued(self, chain):
        bus = InMemoryBus(max_local_queue=1, max_delivery_attempts=3)
        bus.attach(chain)
        env = _note(topic="note.forward.v1")
        bus.publish(env)
        bus._max_local_queue = 0

        outcome = bus.pump()

        assert outcome.status == DispatchStatus.RETRY
        assert "queue is full" in outcome.error
        assert bus.local_queue_depth == 1
        assert bus.dead_letters == []
        assert bus.history("note.v1") == []

        bus._max_local_queue = 10
        outcomes = bus.run_until_idle()
        assert [o.status for o in outcomes] == [DispatchStatus.ACKED, DispatchStatus.ACKED]
        assert outcomes[0].envelope_id == env.envelope_id
        assert len(bus.history("note.v1")) == 1

    def test_dead_lettered_when_queue_stays_full(self, chain):
        bus = InMemoryBus(max_local_queue=1, max_delivery_attempts=3)
        bus.attach(chain)
        env = _note(topic="note.forward.v1")
        bus.publish(env)
        bus._max_local_queue = 0

        outcomes = bus.run_until_idle()

        assert [o.status for o in outcomes] == [DispatchStatus.RETRY] * 3
        [dead] = bus.dead_letters
        assert dead.envelope_id == env.envelope_id
        assert dead.attempts == 3
        assert "queue is full" in dead.error
        assert bus.local_queue_depth == 0
