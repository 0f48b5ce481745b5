"""Exception hierarchy.

The dispatcher maps these onto two outcomes: ``EnvelopeValidationError`` is
terminal (the message is dropped) and every other exception raised by a
handler is retryable (the message is left for redelivery).
"""

from __future__ import annotations


class RoundflowError(Exception):
    """Root of all roundflow errors."""


class EnvelopeValidationError(RoundflowError, ValueError):
    """Raised when an envelope or its payload fails to decode."""


# ---------------------------------------------------------------------------
# Handler faults (retryable)
# ---------------------------------------------------------------------------


class HandlerError(RoundflowError, RuntimeError):
    """Raised by a handler to signal a retryable fault."""


class OperationContractError(HandlerError):
    """A collaborator returned an empty result, or one with both arms set."""


class HandlerCancelledError(HandlerError):
    """The handler's context was cancelled or its deadline passed."""


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RepositoryError(RoundflowError):
    """Base for repository faults."""


class RoundNotFoundError(RepositoryError):
    """No round with the given id exists in the guild."""


class ImportJobNotFoundError(RepositoryError):
    """No import job with the given id exists."""


class NoRowsAffectedError(RepositoryError):
    """An optimistic write matched nothing (stale version)."""


# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------


class InvalidTransitionError(RoundflowError, RuntimeError):
    """Raised when a requested state transition is not valid."""


class GuildScopeError(RoundflowError, ValueError):
    """Raised when a guild-scoped publish has no guild id."""


class TimeParseError(RoundflowError, ValueError):
    """Raised when a start time cannot be understood."""


class ScorecardParseError(RoundflowError, ValueError):
    """Raised when scorecard bytes cannot be read."""


class ScorecardFetchError(RoundflowError):
    """Raised when a scorecard URL cannot be downloaded."""


class TransportError(RoundflowError, RuntimeError):
    """Raised when a transport-level operation fails."""
