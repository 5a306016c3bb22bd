"""Per-invocation monitor state and child outcome variants."""

from __future__ import annotations

import signal
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from pulsecheck.models import PingKind

SIGNAL_EXIT_BASE = 128


class MonitorPhase(str, Enum):
    """Lifecycle of one wrapped run."""

    NOT_STARTED = "not_started"
    STARTED = "started"
    CHILD_RUNNING = "child_running"
    COMPLETING = "completing"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class Exited:
    """Child exited on its own with ``code``."""

    code: int

    @property
    def exit_code(self) -> int:
        return self.code

    @property
    def ping_kind(self) -> PingKind:
        return PingKind.SUCCESS if self.code == 0 else PingKind.FAIL

    def describe(self) -> str:
        return f"Exit code: {self.code}"


@dataclass(frozen=True, slots=True)
class Signaled:
    """Child was terminated by signal number ``signal``."""

    signal: int

    @property
    def exit_code(self) -> int:
        return SIGNAL_EXIT_BASE + self.signal

    @property
    def ping_kind(self) -> PingKind:
        return PingKind.FAIL

    def describe(self) -> str:
        try:
            name = signal.Signals(self.signal).name
        except ValueError:
            name = str(self.signal)
        return f"Exit code: {self.exit_code}\nSignal: {self.signal} ({name})"


ChildOutcome = Union[Exited, Signaled]


def outcome_from_returncode(returncode: int) -> ChildOutcome:
    """Map a ``Popen.returncode`` (negative on POSIX signal death) to an outcome."""

    if returncode < 0:
        return Signaled(signal=-returncode)
    return Exited(code=returncode)


@dataclass(slots=True)
class MonitorRun:
    """Ephemeral state of one orchestrated invocation."""

    slug_or_id: str
    run_id: str
    start_time: float | None = None
    end_time: float | None = None
    phase: MonitorPhase = MonitorPhase.NOT_STARTED
    exit_code: int | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def duration_ms(self) -> int | None:
        if self.start_time is None or self.end_time is None:
            return None
        return max(0, int((self.end_time - self.start_time) * 1000))
