"""Start/finish ping protocol around a wrapped command."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from uuid import uuid4

from pulsecheck.cache import IdentifierCache
from pulsecheck.config import Context
from pulsecheck.errors import ExecutionError, PingError
from pulsecheck.http.ping import PingTransport
from pulsecheck.models import ByPublicId, CheckIdentifier, PingKind
from pulsecheck.monitor.models import MonitorPhase, MonitorRun
from pulsecheck.monitor.runner import ProcessRunner, SubprocessRunner
from pulsecheck.services import resolve_target

logger = logging.getLogger(__name__)


class MonitorOrchestrator:
    """Run a command between a start ping and a success/fail ping.

    The return value of :meth:`run` is always the child's exit code (or the
    126/127 spawn-failure code). Ping delivery problems are logged as
    warnings and recorded on :attr:`last_run`; they never change the result.
    Identifier resolution happens before anything is spawned, so resolver
    and cache errors propagate and the command is not run.
    """

    def __init__(
        self,
        *,
        context: Context,
        cache: IdentifierCache,
        transport: PingTransport,
        runner: ProcessRunner | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._context = context
        self._cache = cache
        self._transport = transport
        self._runner = runner or SubprocessRunner()
        self._clock = clock
        self.last_run: MonitorRun | None = None

    def run(self, identifier: CheckIdentifier, command: str, args: Sequence[str] = ()) -> int:
        target = resolve_target(identifier, context=self._context, cache=self._cache)
        state = MonitorRun(slug_or_id=identifier.label, run_id=str(uuid4()))
        self.last_run = state

        state.start_time = self._clock()
        self._send(state, target, PingKind.START)
        state.phase = MonitorPhase.STARTED

        state.phase = MonitorPhase.CHILD_RUNNING
        try:
            outcome = self._runner.run([command, *args])
        except ExecutionError as error:
            state.end_time = self._clock()
            state.exit_code = error.exit_code
            logger.error("%s", error)
            self._send(
                state,
                target,
                PingKind.FAIL,
                exit_code=error.exit_code,
                body=f"Exit code: {error.exit_code}\n---\n{error}\n",
            )
            state.phase = MonitorPhase.DONE
            return error.exit_code

        state.end_time = self._clock()
        state.phase = MonitorPhase.COMPLETING
        state.exit_code = outcome.exit_code
        kind = outcome.ping_kind
        logger.debug(
            "Command finished: exit_code=%s duration=%sms",
            outcome.exit_code,
            state.duration_ms,
        )
        self._send(
            state,
            target,
            kind,
            exit_code=outcome.exit_code,
            body=None if kind is PingKind.SUCCESS else f"{outcome.describe()}\n",
        )
        state.phase = MonitorPhase.DONE
        return outcome.exit_code

    def _send(  # noqa: PLR0913
        self,
        state: MonitorRun,
        target: ByPublicId,
        kind: PingKind,
        *,
        exit_code: int | None = None,
        body: str | None = None,
    ) -> None:
        try:
            self._transport.send_ping(
                target,
                kind,
                exit_code=exit_code,
                duration_ms=None if kind is PingKind.START else state.duration_ms,
                run_id=state.run_id,
                body=body,
            )
        except PingError as error:
            self._warn(state, f"{kind.value} ping for '{state.slug_or_id}' failed: {error}")
        except Exception as error:  # noqa: BLE001
            self._warn(
                state,
                f"{kind.value} ping for '{state.slug_or_id}' failed unexpectedly: {error!r}",
            )

    @staticmethod
    def _warn(state: MonitorRun, message: str) -> None:
        state.warnings.append(message)
        logger.warning("%s", message)
