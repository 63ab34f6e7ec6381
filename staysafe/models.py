"""
Data model for the SOS emergency workflow
"""

import datetime
import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, NamedTuple, Optional

from .errors import PermissionDenied, ResourceUnavailable, SOSError, TransientIO


class Coordinate(NamedTuple):
    latitude: float
    longitude: float


@dataclass(frozen=True)
class EmergencyContact:
    name: str
    phone_number: str
    is_primary: bool = False  # emergency services (911 etc.)


class SessionState(enum.Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    TRIGGERED = "triggered"
    CANCELLED = "cancelled"


class ErrorKind(enum.Enum):
    PERMISSION_DENIED = "permission_denied"
    RESOURCE_UNAVAILABLE = "resource_unavailable"
    TRANSIENT_IO = "transient_io"
    UNEXPECTED = "unexpected"  # a bug, not an environmental failure

    @classmethod
    def from_exception(cls, exc):
        """
        Map an exception raised by a collaborator onto an error kind.
        Anything outside the known taxonomy is UNEXPECTED.
        """
        if isinstance(exc, (PermissionDenied, PermissionError)):
            return cls.PERMISSION_DENIED
        if isinstance(exc, (ResourceUnavailable, ConnectionError, TimeoutError)):
            return cls.RESOURCE_UNAVAILABLE
        if isinstance(exc, (TransientIO, OSError)):
            return cls.TRANSIENT_IO
        if isinstance(exc, SOSError):
            return cls.RESOURCE_UNAVAILABLE
        return cls.UNEXPECTED


@dataclass
class StepResult:
    """
    Outcome of one emergency step: a value on success, an error kind otherwise
    """
    step: str
    ok: bool
    value: Any = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    pending: bool = False  # outcome still being retried

    @classmethod
    def success(cls, step, value=None, message=""):
        return cls(step=step, ok=True, value=value, message=message)

    @classmethod
    def failure(cls, step, error_kind, message=""):
        return cls(step=step, ok=False, error_kind=error_kind, message=message)

    @classmethod
    def pending_for(cls, step, message=""):
        return cls(step=step, ok=False, message=message, pending=True)

    @classmethod
    def from_exception(cls, step, exc):
        return cls.failure(step, ErrorKind.from_exception(exc), str(exc))

    def resolve(self, outcome):
        """
        Settle a pending result in place so reports holding it see the outcome
        """
        self.ok = outcome.ok
        self.value = outcome.value
        self.error_kind = outcome.error_kind
        self.message = outcome.message
        self.pending = False


@dataclass
class SessionReport:
    """
    Ordered step results for one emergency session
    """
    results: List[StepResult] = field(default_factory=list)

    def add(self, result):
        self.results.append(result)
        return result

    def extend(self, results):
        for result in results:
            self.add(result)

    @property
    def ok(self):
        return all(result.ok for result in self.results)

    def failures(self):
        return [result for result in self.results if not result.ok and not result.pending]

    def pending(self):
        return [result for result in self.results if result.pending]

    def for_step(self, step):
        return [result for result in self.results if result.step == step]

    def as_dict(self):
        return {
            "ok": self.ok,
            "steps": [
                {
                    "step": result.step,
                    "ok": result.ok,
                    "pending": result.pending,
                    "error": result.error_kind.value if result.error_kind else None,
                    "message": result.message,
                }
                for result in self.results
            ],
        }


@dataclass
class EmergencySession:
    """
    State of one SOS activation, owned by the countdown engine
    """
    pin: str
    seconds_remaining: int
    started_at: datetime.datetime
    state: SessionState = SessionState.COUNTDOWN
    recording_path: Optional[Path] = None
    last_location: Optional[Coordinate] = None
    failed_pin_attempts: int = 0
    triggered_at: Optional[datetime.datetime] = None
    report: SessionReport = field(default_factory=SessionReport)
