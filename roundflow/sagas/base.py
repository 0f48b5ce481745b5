"""Abstract base saga with an enforced collaborator-call lifecycle.

A saga is a set of stateless handlers, each bound to one topic.  Concrete
sagas implement only ``routes()`` and their handlers.  Two things are
**not overridable**:

* ``register(dispatcher)`` binds every route on a dispatcher.
* ``invoke(ctx, operation, call, *args)`` wraps the single collaborator call
  a handler makes:

      check cancellation -> call collaborator -> validate outcome -> log

This guarantees that no handler reaches its collaborator after its deadline
and that every collaborator answer goes through the same contract check.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Callable
from typing import Any, ClassVar, NamedTuple, final

from pydantic import BaseModel

from roundflow.core.dispatcher import EnvelopeDispatcher, HandlerContext
from roundflow.core.operation_result import require_outcome
from roundflow.models.results import OperationResult
from roundflow.services.protocols import RoundService

logger = logging.getLogger(__name__)


class SagaRoute(NamedTuple):
    topic: str
    payload_model: type[BaseModel]
    handler: Callable[..., list]


class BaseSaga(abc.ABC):
    """Abstract base for all roundflow sagas.

    Subclasses **must** set ``saga_name`` and implement ``routes()``.

    Parameters
    ----------
    service:
        The collaborating round service.
    """

    saga_name: ClassVar[str] = "saga"

    def __init__(self, service: RoundService) -> None:
        self.service = service

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def routes(self) -> list[SagaRoute]:
        """Every topic this saga consumes, with its payload model and handler."""
        ...

    # ------------------------------------------------------------------
    # Lifecycle (not overridable)
    # ------------------------------------------------------------------

    @final
    def register(self, dispatcher: EnvelopeDispatcher) -> None:
        """Bind all of this saga's routes on *dispatcher*."""
        for route in self.routes():
            dispatcher.register(
                route.topic,
                route.payload_model,
                route.handler,
                name=f"{self.saga_name}.{route.handler.__name__}",
            )

    @final
    def invoke(
        self,
        ctx: HandlerContext,
        operation: str,
        call: Callable[..., OperationResult[Any, Any]],
        *args: Any,
    ) -> OperationResult[Any, Any]:
        """Make the handler's one collaborator call.

        Raises ``HandlerCancelledError`` before the call if the delivery was
        cancelled, and ``OperationContractError`` if the answer is empty.
        Anything the collaborator raises propagates unchanged.
        """
        ctx.raise_if_cancelled()
        logger.debug(
            "%s: calling %s (correlation_id=%s)",
            self.saga_name,
            operation,
            ctx.correlation_id,
        )
        outcome = require_outcome(call(*args), operation)
        logger.info(
            "%s: %s %s (correlation_id=%s)",
            self.saga_name,
            operation,
            "succeeded" if outcome.is_success else "rejected",
            ctx.correlation_id,
        )
        return outcome
