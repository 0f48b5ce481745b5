"""Collaborators the sagas call: the round service and its dependencies."""

from roundflow.services.repository import InMemoryRoundRepository
from roundflow.services.round_service import DefaultRoundService
from roundflow.services.scorecard import CsvScorecardParser, HttpScorecardFetcher
from roundflow.services.time_parser import FixedClock, NaturalTimeParser, SystemClock

__all__ = [
    "DefaultRoundService",
    "InMemoryRoundRepository",
    "CsvScorecardParser",
    "HttpScorecardFetcher",
    "NaturalTimeParser",
    "SystemClock",
    "FixedClock",
]
