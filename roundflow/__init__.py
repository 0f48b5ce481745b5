"""Roundflow: event-driven sagas for scheduled group rounds.

  - Envelope dispatcher with typed payload decoding and retry/drop outcomes
  - Round lifecycle: create, update, delete, start, finalize
  - Participant join with an asynchronous tag lookup round trip
  - Score collection with automatic finalization
  - Scorecard import pipeline (upload or URL -> parse -> match -> apply)
  - Guild-scoped dual publication for tenant fan-out
"""

__version__ = "0.1.0"
__description__ = "Event-driven round lifecycle sagas over a topic bus"

from roundflow.core.runtime import RoundflowRuntime

__all__ = ["RoundflowRuntime", "__version__"]
