"""Glob-style selection of instances from a status snapshot."""
from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import lru_cache

from .errors import SelectionError
from .models import InstanceStatus


@dataclass(slots=True, frozen=True)
class Selection:
    """Outcome of matching name patterns against a snapshot.

    ``matched`` holds each selected instance once, in the order patterns
    selected them; ``remainder`` holds everything not selected in its
    original order; ``unmatched`` lists the patterns that selected nothing.
    """

    matched: tuple[InstanceStatus, ...] = ()
    remainder: tuple[InstanceStatus, ...] = ()
    unmatched: tuple[str, ...] = ()

    def names(self) -> list[str]:
        """Return the names of the matched instances."""
        return [status.name for status in self.matched]

    def errors(self) -> list[SelectionError]:
        """Return one :class:`SelectionError` per unmatched pattern."""
        return [SelectionError(f"no such database: {pattern}") for pattern in self.unmatched]


@lru_cache(maxsize=128)
def _compile(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def glob_match(pattern: str, name: str) -> bool:
    """Return ``True`` when *name* matches *pattern* as a whole.

    Only ``*`` (any run of characters) and ``?`` (one character) are special;
    matching is case-sensitive.
    """
    return _compile(pattern).fullmatch(name) is not None


def select_instances(
    patterns: Sequence[str],
    instances: Iterable[InstanceStatus],
) -> Selection:
    """Partition *instances* by *patterns*, in pattern order.

    Every instance matched by a pattern leaves the remainder, so a later
    pattern can never select it a second time.
    """
    remaining = list(instances)
    matched: list[InstanceStatus] = []
    unmatched: list[str] = []
    for pattern in patterns:
        hits = [status for status in remaining if glob_match(pattern, status.name)]
        if not hits:
            unmatched.append(pattern)
            continue
        matched.extend(hits)
        remaining = [status for status in remaining if not glob_match(pattern, status.name)]
    return Selection(matched=tuple(matched), remainder=tuple(remaining), unmatched=tuple(unmatched))


__all__ = ["Selection", "glob_match", "select_instances"]
