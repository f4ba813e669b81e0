"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import pytest

from monetdbctl.errors import TransportError

Answer = str | Callable[[], str]


def status_line(
    name: str,
    *,
    state: int = 3,
    locked: bool = False,
    path: str | None = None,
    scenarios: str = "sql'mal",
    connections: str = "",
    starts: int = 0,
    stops: int = 0,
    crashes: int = 0,
    avg_uptime: int = 0,
    max_uptime: int = 0,
    min_uptime: int = 0,
    last_crash: int = -1,
    last_start: int = -1,
    last_stop: int = -1,
) -> str:
    """Return a ``sabdb:2`` status record for *name*."""
    fields = [
        name,
        path or f"/var/dbfarm/{name}",
        "1" if locked else "0",
        str(state),
        scenarios,
        connections,
        str(starts),
        str(stops),
        str(crashes),
        str(avg_uptime),
        str(max_uptime),
        str(min_uptime),
        str(last_crash),
        str(last_start),
        str(last_stop),
        "0",
        "0.00",
        "0.00",
    ]
    return "sabdb:2:" + ",".join(fields)


def running_line(name: str, *, uptime: int = 3600) -> str:
    """Return a status record of an instance running for *uptime* seconds."""
    return status_line(
        name,
        state=1,
        starts=1,
        avg_uptime=uptime,
        max_uptime=uptime,
        min_uptime=uptime,
        last_start=int(time.time()) - uptime,
    )


@dataclass
class FakeControl:
    """In-memory stand-in for the controller's control channel.

    Answers are keyed by ``(target, verb)``; a callable answer is invoked on
    every request so that it can raise :class:`TransportError`.
    """

    answers: dict[tuple[str, str], Answer] = field(default_factory=dict)
    default: str = "OK"
    calls: list[tuple[str, str]] = field(default_factory=list)

    def send(self, target: str, verb: str, *, want_body: bool = True) -> str:
        self.calls.append((target, verb))
        answer = self.answers.get((target, verb), self.default)
        text = answer() if callable(answer) else answer
        return text if want_body else text.split("\n", 1)[0]

    def set_status(self, *lines: str) -> None:
        """Install an ``#all status`` answer made of *lines*."""
        self.answers[("#all", "status")] = "\n".join(["OK", *lines])

    def set_properties(self, target: str, values: Mapping[str, str]) -> None:
        """Install a ``get`` answer for *target*."""
        body = [f"{key}={value}" for key, value in values.items()]
        self.answers[(target, "get")] = "\n".join(["OK", *body])

    def verbs_sent(self, verb: str) -> list[str]:
        """Return the targets that received *verb*, in order."""
        return [target for target, sent in self.calls if sent == verb]


def transport_failure(message: str = "connection reset by peer") -> Callable[[], str]:
    """Return an answer that raises :class:`TransportError` when requested."""

    def _raise() -> str:
        raise TransportError(message)

    return _raise


@pytest.fixture
def fake_control() -> FakeControl:
    """Provide an empty :class:`FakeControl`."""
    return FakeControl()
