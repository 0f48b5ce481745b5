"""Roundflow sagas: registry mapping saga name to saga class.

Usage::

    from roundflow.sagas import SAGA_REGISTRY, register_all

    register_all(dispatcher, service, clock=clock)
"""

from __future__ import annotations

from roundflow.core.dispatcher import EnvelopeDispatcher
from roundflow.sagas.base import BaseSaga, SagaRoute
from roundflow.sagas.participant_join import ParticipantJoinSaga
from roundflow.sagas.round_lifecycle import RoundLifecycleSaga
from roundflow.sagas.scorecard_import import ScorecardImportSaga
from roundflow.sagas.scoring import ScoringSaga
from roundflow.services.protocols import Clock, RoundService

# ---------------------------------------------------------------------------
# Saga registry: saga_name -> saga class
# ---------------------------------------------------------------------------

SAGA_REGISTRY: dict[str, type[BaseSaga]] = {
    RoundLifecycleSaga.saga_name: RoundLifecycleSaga,
    ParticipantJoinSaga.saga_name: ParticipantJoinSaga,
    ScoringSaga.saga_name: ScoringSaga,
    ScorecardImportSaga.saga_name: ScorecardImportSaga,
}


def register_all(
    dispatcher: EnvelopeDispatcher,
    service: RoundService,
    clock: Clock | None = None,
) -> list[BaseSaga]:
    """Instantiate every registered saga over *service* and bind its routes.

    *clock* is handed to the sagas that resolve relative times.
    """
    sagas: list[BaseSaga] = []
    for cls in SAGA_REGISTRY.values():
        if issubclass(cls, RoundLifecycleSaga):
            saga = cls(service, clock=clock)
        else:
            saga = cls(service)
        saga.register(dispatcher)
        sagas.append(saga)
    return sagas


__all__ = [
    "BaseSaga",
    "SagaRoute",
    "SAGA_REGISTRY",
    "register_all",
    "RoundLifecycleSaga",
    "ParticipantJoinSaga",
    "ScoringSaga",
    "ScorecardImportSaga",
]
