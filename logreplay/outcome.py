"""
Per-entry replay outcomes.

An outcome's status is one of three variants. Failures are data here, not
exceptions: a run reports them entry by entry.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class FailureKind(Enum):
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"


class SkipReason(Enum):
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Succeeded:
    """A response was received. Any status code counts, 5xx included."""

    status_code: int

    @property
    def label(self) -> str:
        return "succeeded"


@dataclass(frozen=True)
class Failed:
    kind: FailureKind
    detail: str = ""

    @property
    def label(self) -> str:
        return f"failed_{self.kind.value}"


@dataclass(frozen=True)
class Skipped:
    reason: SkipReason

    @property
    def label(self) -> str:
        return f"skipped_{self.reason.value}"


Status = Union[Succeeded, Failed, Skipped]


@dataclass(frozen=True)
class ReplayOutcome:
    """
    Result of replaying one entry.

    `index` points back at the entry's position in the loaded log.
    `latency` (seconds) is set only when a request was actually sent.
    """

    index: int
    status: Status
    dispatched_at: Optional[datetime] = None
    latency: Optional[float] = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return isinstance(self.status, Succeeded)

    @property
    def failed(self) -> bool:
        return isinstance(self.status, Failed)

    @property
    def skipped(self) -> bool:
        return isinstance(self.status, Skipped)
