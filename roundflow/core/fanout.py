"""Tenant fan-out: dual publication to a base topic and its guild-scoped twin.

During the migration to guild-scoped topics, legacy subscribers listen on
the base topic while new ones listen on ``<topic>.<guild_id>``; both must
see the same payload.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from roundflow.errors import GuildScopeError
from roundflow.models.envelopes import Envelope
from roundflow.models.topics import guild_scoped_topic

logger = logging.getLogger(__name__)


@runtime_checkable
class Publisher(Protocol):
    """Anything that can put an envelope on the bus."""

    def publish(self, envelope: Envelope) -> str:
        """Publish *envelope* and return its envelope id."""
        ...


def publish_guild_scoped(
    bus: Publisher, base_topic: str, guild_id: str, envelope: Envelope
) -> list[Envelope]:
    """Publish *envelope* to *base_topic* and to ``base_topic.guild_id``.

    Raises
    ------
    GuildScopeError
        If *guild_id* is empty.  Nothing is published in that case.
    """
    if not guild_id:
        raise GuildScopeError(
            f"Refusing guild-scoped publish of {base_topic}: empty guild id"
        )

    base = envelope.with_topic(base_topic).model_copy(update={"guild_scope": None})
    scoped = base.with_topic(guild_scoped_topic(base_topic, guild_id))

    bus.publish(base)
    bus.publish(scoped)
    logger.debug(
        "Dual-published %s for guild %s (correlation_id=%s)",
        base_topic,
        guild_id,
        envelope.correlation_id,
    )
    return [base, scoped]
