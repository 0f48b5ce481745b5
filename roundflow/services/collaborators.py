"""Stand-ins for the external services that answer over the bus.

``StaticTagDirectory`` plays the ranking service (tag lookups) and
``NameMatcher`` plays the user-matching service (parsed scorecards).  They
let the demo and the integration tests run a full round trip in process;
production deployments leave these topics to the real services.
"""

from __future__ import annotations

import logging

from roundflow.core.dispatcher import EnvelopeDispatcher, HandlerContext
from roundflow.models import topics
from roundflow.models.envelopes import Result
from roundflow.models.events import (
    ScorecardIngestRequestedPayload,
    ScorecardParsedPayload,
    TagLookupFoundPayload,
    TagLookupNotFoundPayload,
    TagLookupRequestPayload,
)
from roundflow.models.imports import MatchedPlayerScore
from roundflow.services.scorecard import normalize_player_name

logger = logging.getLogger(__name__)


class StaticTagDirectory:
    """Answers tag lookups from a fixed ``user_id -> tag`` map."""

    def __init__(self, tags: dict[str, int] | None = None) -> None:
        self._tags = dict(tags or {})

    def assign(self, user_id: str, tag_number: int) -> None:
        self._tags[user_id] = tag_number

    def register(self, dispatcher: EnvelopeDispatcher) -> None:
        dispatcher.register(
            topics.ROUND_TAG_LOOKUP_REQUESTED,
            TagLookupRequestPayload,
            self.handle_tag_lookup_requested,
            name="tag_directory.handle_tag_lookup_requested",
        )

    def handle_tag_lookup_requested(
        self, ctx: HandlerContext, payload: TagLookupRequestPayload
    ) -> list[Result]:
        tag = self._tags.get(payload.user_id)
        if tag is None:
            return [
                Result(
                    topic=topics.ROUND_TAG_LOOKUP_NOT_FOUND,
                    payload=TagLookupNotFoundPayload(
                        guild_id=payload.guild_id,
                        round_id=payload.round_id,
                        user_id=payload.user_id,
                        original_response=payload.response,
                        joined_late=payload.joined_late,
                        reason="user has no tag",
                    ),
                )
            ]
        return [
            Result(
                topic=topics.ROUND_TAG_LOOKUP_FOUND,
                payload=TagLookupFoundPayload(
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    tag_number=tag,
                    original_response=payload.response,
                    joined_late=payload.joined_late,
                ),
            )
        ]


class NameMatcher:
    """Matches parsed scorecard names to user ids by normalized name."""

    def __init__(self, names: dict[str, str] | None = None) -> None:
        self._names = {
            normalize_player_name(name): user_id for name, user_id in (names or {}).items()
        }

    def register(self, dispatcher: EnvelopeDispatcher) -> None:
        dispatcher.register(
            topics.SCORECARD_PARSED_FOR_USER,
            ScorecardParsedPayload,
            self.handle_scorecard_parsed,
            name="name_matcher.handle_scorecard_parsed",
        )

    def handle_scorecard_parsed(
        self, ctx: HandlerContext, payload: ScorecardParsedPayload
    ) -> list[Result]:
        matched = [
            MatchedPlayerScore(
                raw_name=player.raw_name,
                normalized_name=player.normalized_name,
                user_id=self._names.get(player.normalized_name),
                score=player.score,
            )
            for player in payload.players
        ]
        logger.debug(
            "Matched %d/%d players for import %s",
            sum(1 for m in matched if m.user_id),
            len(matched),
            payload.import_id,
        )
        return [
            Result(
                topic=topics.SCORECARD_INGEST_REQUESTED,
                payload=ScorecardIngestRequestedPayload(
                    import_id=payload.import_id,
                    guild_id=payload.guild_id,
                    round_id=payload.round_id,
                    user_id=payload.user_id,
                    channel_id=payload.channel_id,
                    event_message_id=payload.event_message_id,
                    mode=payload.mode,
                    players=matched,
                ),
            )
        ]
