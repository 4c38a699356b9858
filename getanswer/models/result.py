"""
Explicit success/failure outcomes.

Ledger and pipeline operations return one of these instead of raising,
so every caller has to look at the outcome before using the value.
"""

import dataclasses
from typing import Generic, TypeVar, Union

TSuccess = TypeVar("TSuccess")
TFailure = TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True)
class Success(Generic[TSuccess]):
    """A successful outcome."""

    value: TSuccess

    @property
    def ok(self) -> bool:
        return True


@dataclasses.dataclass(frozen=True)
class Failure(Generic[TFailure]):
    """A failed outcome, carrying the error."""

    error: TFailure

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success[TSuccess], Failure[TFailure]]
