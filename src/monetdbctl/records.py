"""Decoding of serialized status records sent by the controller.

A status record is one line of text::

    sabdb:2:name,path,locked,state,scenarios,connections,<uptime log fields>

``scenarios`` and ``connections`` are ``'``-separated lists. Version 2
records append twelve uptime log fields (counters, uptimes, timestamps and
crash averages); version 1 records stop after ``connections``.
"""
from __future__ import annotations

from .errors import ProtocolError
from .models import InstanceState, InstanceStatus, UptimeLog

RECORD_PREFIX = "sabdb:"
LIST_SEPARATOR = "'"
V1_FIELDS = 6
V2_FIELDS = 18


def decode_status(line: str) -> InstanceStatus:
    """Decode a single status record line into an :class:`InstanceStatus`."""
    text = line.strip()
    if not text.startswith(RECORD_PREFIX):
        raise ProtocolError(f"string is not a sabdb struct: {_preview(text)}")
    version_text, sep, payload = text[len(RECORD_PREFIX) :].partition(":")
    if not sep:
        raise ProtocolError(f"string is not a sabdb struct: {_preview(text)}")
    try:
        version = int(version_text)
    except ValueError as exc:
        raise ProtocolError(f"invalid sabdb version: {version_text!r}") from exc

    fields = payload.split(",")
    if version == 1:
        expected = V1_FIELDS
    elif version == 2:
        expected = V2_FIELDS
    else:
        raise ProtocolError(f"unknown sabdb version: {version}")
    if len(fields) != expected:
        raise ProtocolError(
            f"sabdb:{version} record needs {expected} fields, got {len(fields)}: "
            f"{_preview(text)}"
        )

    name = fields[0]
    if not name:
        raise ProtocolError("sabdb record has an empty database name")

    uplog = UptimeLog()
    if version == 2:
        uplog = _decode_uplog(fields[V1_FIELDS:])

    return InstanceStatus(
        name=name,
        path=fields[1],
        locked=_to_int(fields[2], "locked") == 1,
        state=InstanceState.from_wire(_to_int(fields[3], "state")),
        scenarios=_split_list(fields[4]),
        connections=_split_list(fields[5]),
        uplog=uplog,
    )


def _decode_uplog(fields: list[str]) -> UptimeLog:
    return UptimeLog(
        start_count=_to_int(fields[0], "start count"),
        stop_count=_to_int(fields[1], "stop count"),
        crash_count=_to_int(fields[2], "crash count"),
        avg_uptime=_to_int(fields[3], "average uptime"),
        max_uptime=_to_int(fields[4], "maximum uptime"),
        min_uptime=_to_int(fields[5], "minimum uptime"),
        last_crash=_to_int(fields[6], "last crash"),
        last_start=_to_int(fields[7], "last start"),
        last_stop=_to_int(fields[8], "last stop"),
        crash_avg1=_to_int(fields[9], "crash average (1)"),
        crash_avg10=_to_float(fields[10], "crash average (10)"),
        crash_avg30=_to_float(fields[11], "crash average (30)"),
    )


def _split_list(value: str) -> tuple[str, ...]:
    return tuple(item for item in value.split(LIST_SEPARATOR) if item)


def _to_int(value: str, label: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ProtocolError(f"invalid {label} value: {value!r}") from exc


def _to_float(value: str, label: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise ProtocolError(f"invalid {label} value: {value!r}") from exc


def _preview(text: str, limit: int = 40) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


__all__ = ["decode_status"]
