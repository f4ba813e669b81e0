"""Sequential dispatch of control commands to a list of instances."""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from rich.console import Console

from .errors import NoTargetsError, TransportError
from .exit_codes import ExitCode
from .models import InstanceState, InstanceStatus
from .providers.control import OK, ControlChannel

GOAL_VERBS = ("start", "stop", "kill")


@dataclass(slots=True)
class DispatchReport:
    """Per-target outcome of one dispatched command."""

    command: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return ``True`` when every target answered ``OK``."""
        return not self.failed

    @property
    def exit_code(self) -> int:
        """Return the process exit code reflecting the aggregated outcome."""
        return int(ExitCode.OK) if self.ok else int(ExitCode.FAILURE)

    def errors(self) -> list[str]:
        """Return failure messages prefixed with the instance name."""
        return [f"{name}: {message}" for name, message in self.failed]


def prune_for_goal(
    targets: Iterable[InstanceStatus],
    verb: str,
) -> tuple[tuple[InstanceStatus, ...], tuple[InstanceStatus, ...]]:
    """Split *targets* into (needing *verb*, already in its goal state).

    ``start`` skips running instances; ``stop`` and ``kill`` skip instances
    that are not running. Relative order is preserved in both parts.
    """
    if verb not in GOAL_VERBS:
        raise ValueError(f"no goal state known for {verb!r}")
    keep: list[InstanceStatus] = []
    skip: list[InstanceStatus] = []
    for status in targets:
        running = status.state is InstanceState.RUNNING
        satisfied = running if verb == "start" else not running
        (skip if satisfied else keep).append(status)
    return tuple(keep), tuple(skip)


class CommandDispatcher:
    """Send one control request per target and aggregate the answers.

    Application failures (any answer other than ``OK``) are reported and
    accumulated, and the remaining targets are still processed. A
    :class:`TransportError` aborts the whole batch immediately.
    """

    def __init__(
        self,
        control: ControlChannel,
        *,
        console: Console,
        err_console: Console,
        quiet: bool = False,
    ) -> None:
        """Bind the dispatcher to a control channel and output consoles."""
        self._control = control
        self._console = console
        self._err_console = err_console
        self._quiet = quiet

    def dispatch(
        self,
        command: str,
        targets: Sequence[InstanceStatus],
        verb: str,
        *,
        success_message: str | None = None,
        pre_message: str | None = None,
    ) -> DispatchReport:
        """Send *verb* to each of *targets* in order.

        With *pre_message*, ``<pre_message> '<name>'... `` is printed before
        each request followed by ``done`` or ``FAILED``; otherwise a
        ``<success_message>: <name>`` line is printed per success. Quiet mode
        suppresses both but never failures.
        """
        if not targets:
            raise NoTargetsError(f"{command}: no databases to act on")

        report = DispatchReport(command=command)
        announce = pre_message is not None and not self._quiet
        for status in targets:
            if announce:
                self._out(f"{pre_message} '{status.name}'... ", end="")
            try:
                answer = self._control.send(status.name, verb, want_body=False)
            except TransportError:
                if announce:
                    self._out("FAILED")
                raise

            if answer == OK:
                report.succeeded.append(status.name)
                if announce:
                    self._out("done")
                elif success_message is not None and not self._quiet:
                    self._out(f"{success_message}: {status.name}")
            else:
                report.failed.append((status.name, answer))
                if announce:
                    self._out("FAILED")
                self._err(f"{command}: {answer}")
        return report

    # ------------------------------------------------------------------
    def _out(self, text: str, *, end: str = "\n") -> None:
        self._console.print(
            text, end=end, markup=False, highlight=False, emoji=False, soft_wrap=True
        )

    def _err(self, text: str) -> None:
        self._err_console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)


__all__ = ["CommandDispatcher", "DispatchReport", "GOAL_VERBS", "prune_for_goal"]
