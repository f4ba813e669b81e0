"""Data models describing managed database instances."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import IntEnum


class InstanceState(IntEnum):
    """Lifecycle state of an instance as reported by the controller."""

    UNKNOWN = 0
    RUNNING = 1
    CRASHED = 2
    INACTIVE = 3

    @property
    def label(self) -> str:
        """Return the short label used in reports."""
        return _STATE_LABELS[self]

    @classmethod
    def from_wire(cls, value: int) -> InstanceState:
        """Translate a wire value, mapping unrecognised values to ``UNKNOWN``."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


_STATE_LABELS = {
    InstanceState.UNKNOWN: "unknown",
    InstanceState.RUNNING: "running",
    InstanceState.CRASHED: "crashed",
    InstanceState.INACTIVE: "stopped",
}

NEVER = -1


@dataclass(slots=True, frozen=True)
class UptimeLog:
    """Start/stop/crash statistics kept by the controller for one instance."""

    start_count: int = 0
    stop_count: int = 0
    crash_count: int = 0
    avg_uptime: int = 0
    max_uptime: int = 0
    min_uptime: int = 0
    last_crash: int = NEVER
    last_start: int = NEVER
    last_stop: int = NEVER
    crash_avg1: int = 0
    crash_avg10: float = 0.0
    crash_avg30: float = 0.0

    @property
    def health(self) -> int | None:
        """Return the crash-free percentage, or ``None`` if never started."""
        if self.start_count <= 0:
            return None
        return 100 - (self.crash_count * 100 // self.start_count)


@dataclass(slots=True, frozen=True)
class InstanceStatus:
    """Runtime status of a single managed instance."""

    name: str
    path: str = ""
    state: InstanceState = InstanceState.UNKNOWN
    locked: bool = False
    scenarios: tuple[str, ...] = ()
    connections: tuple[str, ...] = ()
    uplog: UptimeLog = field(default_factory=UptimeLog)

    @property
    def is_running(self) -> bool:
        """Return ``True`` when the instance is currently running."""
        return self.state is InstanceState.RUNNING


@dataclass(slots=True, frozen=True)
class StatusSnapshot:
    """Ordered collection of instance statuses returned by one status fetch."""

    instances: tuple[InstanceStatus, ...] = ()
    warnings: tuple[str, ...] = ()

    @classmethod
    def from_records(
        cls,
        records: Iterable[InstanceStatus],
        *,
        warnings: Iterable[str] = (),
    ) -> StatusSnapshot:
        """Build a snapshot ordered by instance name."""
        ordered = sorted(records, key=lambda status: status.name)
        return cls(instances=tuple(ordered), warnings=tuple(warnings))

    def __iter__(self) -> Iterator[InstanceStatus]:
        return iter(self.instances)

    def __len__(self) -> int:
        return len(self.instances)

    def __bool__(self) -> bool:
        return bool(self.instances)

    def names(self) -> list[str]:
        """Return instance names in snapshot order."""
        return [status.name for status in self.instances]

    def get(self, name: str) -> InstanceStatus | None:
        """Return the status for *name*, if present."""
        for status in self.instances:
            if status.name == name:
                return status
        return None


__all__ = [
    "NEVER",
    "InstanceState",
    "InstanceStatus",
    "StatusSnapshot",
    "UptimeLog",
]
