"""Wrapped-command monitoring: process runner and lifecycle orchestrator."""

from pulsecheck.monitor.models import ChildOutcome, Exited, MonitorPhase, MonitorRun, Signaled
from pulsecheck.monitor.orchestrator import MonitorOrchestrator
from pulsecheck.monitor.runner import ProcessRunner, SubprocessRunner

__all__ = [
    "ChildOutcome",
    "Exited",
    "MonitorOrchestrator",
    "MonitorPhase",
    "MonitorRun",
    "ProcessRunner",
    "Signaled",
    "SubprocessRunner",
]
