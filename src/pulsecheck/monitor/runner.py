"""Spawn the wrapped command with inherited stdio and wait for it."""

from __future__ import annotations

import logging
import signal
import subprocess
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Protocol

from pulsecheck.errors import ExecutionError
from pulsecheck.monitor.models import ChildOutcome, outcome_from_returncode

logger = logging.getLogger(__name__)

EXIT_COMMAND_NOT_EXECUTABLE = 126
EXIT_COMMAND_NOT_FOUND = 127


class ProcessRunner(Protocol):
    """Runs one child process to completion."""

    def run(self, argv: Sequence[str]) -> ChildOutcome:
        """Run ``argv`` and return how it ended; raise ``ExecutionError`` if it never started."""


class SubprocessRunner:
    """Run the child in the foreground, passing stdin/stdout/stderr through untouched."""

    def run(self, argv: Sequence[str]) -> ChildOutcome:
        if not argv:
            raise ExecutionError("No command specified.", exit_code=EXIT_COMMAND_NOT_EXECUTABLE)

        command_head = argv[0]
        try:
            process = subprocess.Popen(list(argv))  # noqa: S603
        except FileNotFoundError as error:
            raise ExecutionError(
                f"Command not found: {command_head}",
                exit_code=EXIT_COMMAND_NOT_FOUND,
            ) from error
        except PermissionError as error:
            raise ExecutionError(
                f"Command not executable: {command_head} ({error.strerror or error})",
                exit_code=EXIT_COMMAND_NOT_EXECUTABLE,
            ) from error
        except OSError as error:
            raise ExecutionError(
                f"Failed to execute '{command_head}': {error}",
                exit_code=EXIT_COMMAND_NOT_EXECUTABLE,
            ) from error

        logger.debug("Spawned %s as pid %s", command_head, process.pid)
        with _forward_signals(process):
            returncode = process.wait()
        return outcome_from_returncode(returncode)


@contextmanager
def _forward_signals(process: subprocess.Popen[bytes]) -> Iterator[None]:
    """Keep the wrapper alive while the child runs so the finish ping still goes out.

    SIGTERM/SIGHUP are relayed to the child. SIGINT is ignored here because a
    terminal already delivers it to the whole foreground process group.
    """

    if not hasattr(signal, "SIGINT"):
        yield
        return

    relayed = [signal.SIGTERM]
    if hasattr(signal, "SIGHUP"):
        relayed.append(signal.SIGHUP)

    def _relay(signum: int, _: object | None) -> None:
        try:
            process.send_signal(signum)
        except OSError:
            return

    originals: dict[int, object] = {}
    try:
        originals[signal.SIGINT] = signal.signal(signal.SIGINT, signal.SIG_IGN)
        for signum in relayed:
            originals[signum] = signal.signal(signum, _relay)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        yield
        return

    try:
        yield
    finally:
        for signum, original in originals.items():
            signal.signal(signum, original)  # type: ignore[arg-type]
