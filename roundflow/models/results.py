"""Operation results returned by every collaborating service call.

A result populates at most one of ``success`` (the payload for the next
saga step) and ``failure`` (an expected business rejection).  Infrastructure
faults are never represented here; the collaborator raises instead.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

S = TypeVar("S")
F = TypeVar("F")


class OperationResult(BaseModel, Generic[S, F]):
    """Success-xor-failure container."""

    model_config = ConfigDict(frozen=True)

    success: S | None = None
    failure: F | None = None

    @model_validator(mode="after")
    def _at_most_one_arm(self) -> OperationResult[S, F]:
        if self.success is not None and self.failure is not None:
            raise ValueError("OperationResult cannot carry both success and failure")
        return self

    @classmethod
    def ok(cls, payload: Any) -> OperationResult[S, F]:
        return cls(success=payload)

    @classmethod
    def fail(cls, payload: Any) -> OperationResult[S, F]:
        return cls(failure=payload)

    @property
    def is_success(self) -> bool:
        return self.success is not None

    @property
    def is_failure(self) -> bool:
        return self.failure is not None

    @property
    def is_empty(self) -> bool:
        return self.success is None and self.failure is None
