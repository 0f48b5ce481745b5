"""Bus envelopes and handler results.

Every message on the bus is an ``Envelope``: a topic, a JSON-object payload,
a correlation id carried unchanged across every hop of a saga, and a
string-keyed metadata map for cross-cutting fields.  Handlers never build
envelopes themselves; they return ``Result`` objects and the dispatcher turns
those into envelopes.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Metadata keys shared with the presentation collaborator.
META_DISCORD_MESSAGE_ID = "discord_message_id"
META_SUBMITTED_AT = "submitted_at"


class Envelope(BaseModel):
    """A message addressed to a topic."""

    model_config = ConfigDict(frozen=True)

    schema_version: str = "v1"
    envelope_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    topic: str
    payload: dict[str, Any] = {}
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    metadata: dict[str, str] = {}
    # When set, the publisher also emits a "<topic>.<guild_id>" copy.
    guild_scope: str | None = None
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def with_topic(self, topic: str) -> Envelope:
        """Return a copy readdressed to *topic* (new envelope id)."""
        return self.model_copy(
            update={"topic": topic, "envelope_id": str(uuid.uuid4())}
        )


class Result(BaseModel):
    """One outgoing event produced by a handler."""

    model_config = ConfigDict(frozen=True)

    topic: str
    payload: BaseModel
    metadata: dict[str, str] = {}
    guild_id: str | None = None

    def guild_scoped(self, guild_id: str) -> Result:
        """Mark this result for dual publication under *guild_id*."""
        return self.model_copy(update={"guild_id": guild_id})
