"""
EXPLICIT FETCH RESULTS

Purpose:
- Thread success/failure from the gateway through the normalizer to the
  cache without using exceptions as control flow
- Carry diagnostics (HTTP status, raw body) for failed calls

Failure kinds:
- transport: no response (connection error, timeout)
- protocol:  non-2xx response
- shape:     2xx response whose body is not the JSON shape we expect
- internal:  a loader raised unexpectedly (logged, never re-raised)

Author: MineralFlow Operations
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

TRANSPORT = "transport"
PROTOCOL = "protocol"
SHAPE = "shape"
INTERNAL = "internal"


@dataclass(frozen=True)
class FetchFailure:
    """Uniform "no data" signal. Never raised."""

    kind: str
    message: str
    operation: Optional[str] = None
    status_code: Optional[int] = None
    body: Optional[str] = None

    def __str__(self) -> str:
        prefix = f"{self.operation}: " if self.operation else ""
        if self.status_code is not None:
            return f"{prefix}{self.kind} failure (HTTP {self.status_code}): {self.message}"
        return f"{prefix}{self.kind} failure: {self.message}"


@dataclass(frozen=True)
class Ok:
    value: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    failure: FetchFailure

    @property
    def ok(self) -> bool:
        return False


FetchResult = Union[Ok, Err]


def shape_failure(message: str, operation: Optional[str] = None) -> Err:
    return Err(FetchFailure(kind=SHAPE, message=message, operation=operation))
