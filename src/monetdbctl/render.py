"""Plain-text status reports sized to the terminal width.

Three report modes exist: a one-line-per-instance short listing, a long
multi-line dump and a crash-history narrative. All helpers return lists of
lines; printing is left to the caller.
"""
from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .errors import UsageError
from .models import NEVER, InstanceState, InstanceStatus

TRUNCATION_MARKER = "..."
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Width taken by the state, uptime, health and last crash columns.
SHORT_RESERVED_WIDTH = 54
MIN_NAME_WIDTH = 6
MIN_SHORT_NAME_WIDTH = 14
UNLIMITED = 999

_DURATION_UNITS = (("d", 86400), ("h", 3600), ("m", 60), ("s", 1))

DEFAULT_STATE_SELECTOR = "rscl"
_SELECTOR_STATES = {
    "r": InstanceState.RUNNING,
    "s": InstanceState.INACTIVE,
    "c": InstanceState.CRASHED,
}
LOCKED_SELECTOR = "l"


class ReportMode(str, Enum):
    """Layout used to render a status report."""

    SHORT = "short"
    LONG = "long"
    CRASH = "crash"


def format_duration(seconds: float, precision: int) -> str:
    """Render *seconds* using at most *precision* of the coarsest units.

    Units are days, hours, minutes and seconds; units with a zero count are
    left out and ``0s`` is returned for durations under one second.
    """
    remaining = max(int(seconds), 0)
    parts: list[str] = []
    for suffix, size in _DURATION_UNITS:
        if len(parts) >= max(precision, 1) or remaining == 0:
            break
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count}{suffix}")
    return " ".join(parts) if parts else "0s"


def abbreviate(text: str, width: int) -> str:
    """Cut *text* to *width* characters, ending in the truncation marker."""
    if len(text) <= width:
        return text
    if width <= len(TRUNCATION_MARKER):
        return TRUNCATION_MARKER[: max(width, 0)]
    return text[: width - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def format_timestamp(epoch: int) -> str:
    """Render an epoch timestamp in local time, or ``(unknown)`` if unset."""
    if epoch == NEVER:
        return "(unknown)"
    return datetime.fromtimestamp(epoch).strftime(TIMESTAMP_FORMAT)


def available_width(term_width: int, reserved: int) -> int:
    """Return the width left for a free column, never below the minimum."""
    return max(term_width - reserved, MIN_NAME_WIDTH)


def short_name_width(term_width: int, names: Iterable[str]) -> int:
    """Return the name column width for the short report."""
    longest = max((len(name) for name in names), default=0)
    return min(max(longest, MIN_SHORT_NAME_WIDTH), available_width(term_width, SHORT_RESERVED_WIDTH))


def centred_header(label: str, width: int) -> str:
    """Return *label* padded so that it sits in the middle of *width*."""
    spare = max(width - len(label), 0)
    return " " * (spare - spare // 2) + label + " " * (spare // 2)


# ----------------------------------------------------------------------
# State selection


@dataclass(slots=True, frozen=True)
class StateFilter:
    """Restrict a report to some lifecycle states and lock modes.

    ``letters`` keeps the selector order: reports list the instances of
    the first letter, then those of the next one, and so on.
    """

    letters: tuple[str, ...]

    def accepts(self, status: InstanceStatus) -> bool:
        """Return ``True`` when *status* should be reported."""
        return any(_letter_accepts(letter, status) for letter in self.letters)


def _letter_accepts(letter: str, status: InstanceStatus) -> bool:
    if letter == LOCKED_SELECTOR:
        return status.locked
    return not status.locked and status.state is _SELECTOR_STATES[letter]


def parse_state_selector(selector: str) -> StateFilter:
    """Parse a selector such as ``rs`` or ``cl`` into a :class:`StateFilter`.

    ``r`` running, ``s`` stopped, ``c`` crashed (all unlocked) and ``l``
    locked instances in any state. Repeated letters count once.
    """
    if not selector:
        raise UsageError("status: -s needs an argument")
    letters: list[str] = []
    for letter in selector:
        if letter != LOCKED_SELECTOR and letter not in _SELECTOR_STATES:
            raise UsageError(f"status: unknown flag for -s: -{letter}")
        if letter not in letters:
            letters.append(letter)
    return StateFilter(letters=tuple(letters))


def filter_by_state(
    instances: Iterable[InstanceStatus],
    state_filter: StateFilter,
) -> list[InstanceStatus]:
    """Return the accepted instances grouped by selector letter.

    Within one letter the input order is kept.
    """
    pool = list(instances)
    return [
        status
        for letter in state_filter.letters
        for status in pool
        if _letter_accepts(letter, status)
    ]


# ----------------------------------------------------------------------
# Report modes


def render_short_header(name_width: int) -> str:
    """Return the column header line of the short report."""
    return f"{centred_header('name', name_width)}   state     uptime       health       last crash"


def render_short(status: InstanceStatus, name_width: int, now: float) -> str:
    """Return the one-line summary of *status*."""
    uplog = status.uplog
    state = "locked " if status.locked else status.state.label
    uptime = format_duration(now - uplog.last_start, 3) if status.is_running else ""
    name = abbreviate(status.name, name_width)
    line = f"{name:<{name_width}}  {state} {uptime:>12}"
    if uplog.start_count:
        crash = "-" if uplog.last_crash == NEVER else format_timestamp(uplog.last_crash)
        average = format_duration(uplog.avg_uptime, 1)
        line += f"  {uplog.health:>3}%, {average:>3}  {crash}"
    return line


def render_long(status: InstanceStatus, now: float) -> list[str]:
    """Return the full multi-line dump of *status*."""
    uplog = status.uplog
    lines = [
        f"{status.name}:",
        f"  location: {status.path}",
        f"  database name: {status.name}",
        f"  state: {status.state.label}",
        f"  locked: {'yes' if status.locked else 'no'}",
        f"  scenarios: {_join_or_none(status.scenarios)}",
        f"  connections: {_join_or_none(status.connections)}",
        f"  start count: {uplog.start_count}",
        f"  stop count: {uplog.stop_count}",
        f"  crash count: {uplog.crash_count}",
    ]
    if status.is_running:
        lines.append(f"  current uptime: {format_duration(now - uplog.last_start, UNLIMITED)}")
    lines.extend(
        [
            f"  average uptime: {format_duration(uplog.avg_uptime, UNLIMITED)}",
            f"  maximum uptime: {format_duration(uplog.max_uptime, UNLIMITED)}",
            f"  minimum uptime: {format_duration(uplog.min_uptime, UNLIMITED)}",
            f"  last start with crash: {format_timestamp(uplog.last_crash)}",
            f"  last start: {format_timestamp(uplog.last_start)}",
            f"  average of crashes in the last start attempt: {uplog.crash_avg1}",
            f"  average of crashes in the last 10 start attempts: {uplog.crash_avg10:.2f}",
            f"  average of crashes in the last 30 start attempts: {uplog.crash_avg30:.2f}",
        ]
    )
    return lines


def render_crash(status: InstanceStatus, now: float) -> list[str]:
    """Return the narrative summary of *status* and its crash history."""
    uplog = status.uplog
    if status.state is InstanceState.RUNNING:
        since = format_timestamp(uplog.last_start)
        phrase = f"up since {since}, {format_duration(now - uplog.last_start, UNLIMITED)}"
    elif status.state is InstanceState.CRASHED:
        phrase = f"crashed on {format_timestamp(uplog.last_crash)}"
    elif status.state is InstanceState.INACTIVE:
        phrase = "not running"
    else:
        phrase = "unknown"
    if status.locked:
        phrase += ", locked"

    minimum = format_duration(uplog.min_uptime, 1)
    average = format_duration(uplog.avg_uptime, 1)
    maximum = format_duration(uplog.max_uptime, 1)
    return [
        f"database {status.name}, {phrase}",
        f"  crash average: {uplog.crash_avg1}.00 {uplog.crash_avg10:.2f} "
        f"{uplog.crash_avg30:.2f} (over 1, 10, 30 starts) in total {uplog.crash_count} crashes",
        f"  uptime stats (min/avg/max): {minimum}/{average}/{maximum} over {uplog.stop_count} runs",
    ]


def render_report(
    instances: Sequence[InstanceStatus],
    mode: ReportMode,
    *,
    term_width: int,
    now: float | None = None,
    matched: Sequence[InstanceStatus] | None = None,
) -> list[str]:
    """Render *instances* in the requested *mode*.

    *matched* is the selection before state filtering. In short mode it sizes
    the name column and the header is printed whenever it is non-empty,
    even if the state filter left nothing to show.
    """
    current = time.time() if now is None else now
    lines: list[str] = []
    if mode is ReportMode.SHORT:
        pool = instances if matched is None else matched
        if not pool:
            return lines
        width = short_name_width(term_width, (status.name for status in pool))
        lines.append(render_short_header(width))
        lines.extend(render_short(status, width, current) for status in instances)
        return lines
    for status in instances:
        if mode is ReportMode.LONG:
            lines.extend(render_long(status, current))
        else:
            lines.extend(render_crash(status, current))
    return lines


def _join_or_none(values: Sequence[str]) -> str:
    return " ".join(values) if values else "(none)"


__all__ = [
    "DEFAULT_STATE_SELECTOR",
    "ReportMode",
    "StateFilter",
    "TRUNCATION_MARKER",
    "abbreviate",
    "available_width",
    "centred_header",
    "filter_by_state",
    "format_duration",
    "format_timestamp",
    "parse_state_selector",
    "render_crash",
    "render_long",
    "render_report",
    "render_short",
    "render_short_header",
    "short_name_width",
]
