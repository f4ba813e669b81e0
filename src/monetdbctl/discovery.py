"""Listing of remote databases discovered by the controller."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .errors import ApplicationError
from .providers.control import DISCOVERY_TARGET, DISCOVERY_VERB, OK, ControlChannel, split_response
from .selection import glob_match

URL_SCHEME = "mapi:monetdb://"


@dataclass(slots=True)
class DiscoveryReport:
    """Locations announced by the controller plus lines that were discarded."""

    locations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def location_sort_key(location: str) -> str:
    """Sort key ignoring the ``mapi:monetdb://`` scheme prefix."""
    if location.startswith(URL_SCHEME):
        return location[len(URL_SCHEME) :]
    return location


def parse_discovery(lines: Iterable[str], pattern: str | None = None) -> DiscoveryReport:
    """Parse ``<path>\\t<prefix>`` lines into sorted locations.

    The location is the prefix followed by the path. When *pattern* is given
    only locations matching it are kept.
    """
    report = DiscoveryReport()
    for line in lines:
        path, sep, prefix = line.partition("\t")
        if not sep:
            report.warnings.append(f"discarding incorrect line: {line}")
            continue
        location = f"{prefix}{path}"
        if pattern is None or glob_match(pattern, location):
            report.locations.append(location)
    report.locations.sort(key=location_sort_key)
    return report


def discover(control: ControlChannel, pattern: str | None = None) -> DiscoveryReport:
    """Ask the controller for the databases it discovered."""
    head, lines = split_response(control.send(DISCOVERY_TARGET, DISCOVERY_VERB, want_body=True))
    if head != OK:
        raise ApplicationError(head)
    return parse_discovery(lines, pattern)


__all__ = ["DiscoveryReport", "discover", "location_sort_key", "parse_discovery"]
