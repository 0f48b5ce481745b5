"""Round and participant models: monotonic lifecycle, soft delete only."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RoundState(str, Enum):
    """Lifecycle state of a round."""

    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    FINALIZED = "finalized"
    DELETED = "deleted"


# Valid state transitions, enforced structurally by round_machine.
# FINALIZED and DELETED are terminal; rounds are never physically removed.
VALID_TRANSITIONS: dict[RoundState, set[RoundState]] = {
    RoundState.UPCOMING: {RoundState.IN_PROGRESS, RoundState.DELETED},
    RoundState.IN_PROGRESS: {RoundState.FINALIZED, RoundState.DELETED},
    RoundState.FINALIZED: set(),  # terminal
    RoundState.DELETED: set(),  # terminal
}


class RoundMode(str, Enum):
    """Scoring mode; tag numbers only matter for singles."""

    SINGLES = "singles"
    DOUBLES = "doubles"


class Response(str, Enum):
    """A participant's RSVP answer."""

    ACCEPT = "accept"
    TENTATIVE = "tentative"
    DECLINE = "decline"


# Responses that allow a score to be recorded.
SCORING_RESPONSES: frozenset[Response] = frozenset(
    {Response.ACCEPT, Response.TENTATIVE}
)


class Participant(BaseModel):
    """One user's entry in a round, unique by ``user_id``."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    response: Response
    tag_number: int | None = None
    score: int | None = None

    @model_validator(mode="after")
    def _score_requires_scoring_response(self) -> Participant:
        if self.score is not None and self.response not in SCORING_RESPONSES:
            raise ValueError(
                f"participant {self.user_id!r} cannot hold a score with "
                f"response {self.response.value!r}"
            )
        return self


class Round(BaseModel):
    """A scheduled group event.

    ``event_message_id`` is owned by the presentation collaborator once
    assigned; this layer only stores and forwards it.  ``version`` is bumped
    by the repository on every write and used for optimistic updates.
    """

    model_config = ConfigDict(frozen=True)

    guild_id: str
    round_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: str = ""
    location: str = ""
    start_time: datetime
    state: RoundState = RoundState.UPCOMING
    mode: RoundMode = RoundMode.SINGLES
    created_by: str
    participants: list[Participant] = []
    event_message_id: str = ""
    external_event_id: str | None = None
    max_participants: int | None = None
    version: int = 0

    @model_validator(mode="after")
    def _participants_unique(self) -> Round:
        seen: set[str] = set()
        for p in self.participants:
            if p.user_id in seen:
                raise ValueError(
                    f"duplicate participant {p.user_id!r} in round {self.round_id}"
                )
            seen.add(p.user_id)
        return self

    def get_participant(self, user_id: str) -> Participant | None:
        """Return the participant entry for *user_id*, if any."""
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self.state]


class ScoreInfo(BaseModel):
    """A scored participant as forwarded to the scoring collaborator."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    score: int
    tag_number: int | None = None
