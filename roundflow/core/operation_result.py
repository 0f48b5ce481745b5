"""Turning collaborator ``OperationResult`` values into outgoing results.

This is the one place the empty-result policy lives: a collaborator that
returns neither a success nor a failure (and did not raise) has broken its
contract, and the call is treated exactly like an infrastructure fault.
``OperationContractError`` propagates out of the handler, the dispatcher
publishes nothing, and the bus redelivers the inbound message.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from roundflow.errors import OperationContractError
from roundflow.models.envelopes import Result
from roundflow.models.results import OperationResult

logger = logging.getLogger(__name__)

# A topic is either fixed, or chosen by the concrete payload type.
Topics = str | Mapping[type[BaseModel], str]


def require_outcome(
    result: OperationResult[Any, Any] | None, operation: str = "operation"
) -> OperationResult[Any, Any]:
    """Return *result* if exactly one arm is populated.

    Raises
    ------
    OperationContractError
        If *result* is ``None``, empty, or (when built without validation)
        carries both arms.
    """
    if result is None:
        raise OperationContractError(f"{operation} returned no result")
    if result.is_success and result.is_failure:
        raise OperationContractError(
            f"{operation} returned both success and failure"
        )
    if result.is_empty:
        raise OperationContractError(
            f"{operation} returned neither success nor failure"
        )
    return result


def _resolve_topic(topics: Topics, payload: Any, arm: str) -> str:
    if isinstance(topics, str):
        return topics
    topic = topics.get(type(payload))
    if topic is None:
        raise OperationContractError(
            f"no {arm} topic mapped for {type(payload).__name__}"
        )
    return topic


def map_operation_result(
    result: OperationResult[Any, Any] | None,
    success_topic: Topics,
    failure_topic: Topics,
    *,
    operation: str = "operation",
    success_guild_id: str | None = None,
    metadata: Mapping[str, str] | None = None,
) -> list[Result]:
    """Map a collaborator result onto exactly one outgoing ``Result``.

    Parameters
    ----------
    result:
        The collaborator's answer.
    success_topic:
        Topic for the success arm, or a mapping from success payload type
        to topic when a step has several success shapes.
    failure_topic:
        Topic for the failure arm, or a mapping by failure payload type.
    operation:
        Name used in log lines and contract errors.
    success_guild_id:
        When given, the success result is marked for guild-scoped
        dual publication.
    metadata:
        Extra metadata attached to whichever result is produced.
    """
    outcome = require_outcome(result, operation)
    extra = dict(metadata or {})

    if outcome.is_failure:
        logger.info("%s rejected: %r", operation, outcome.failure)
        return [
            Result(
                topic=_resolve_topic(failure_topic, outcome.failure, "failure"),
                payload=outcome.failure,
                metadata=extra,
            )
        ]

    topic = _resolve_topic(success_topic, outcome.success, "success")
    return [
        Result(
            topic=topic,
            payload=outcome.success,
            metadata=extra,
            guild_id=success_guild_id,
        )
    ]
