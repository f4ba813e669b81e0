"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes enforced across the CLI.

    ``FAILURE`` is the bit set by batch commands when at least one target
    reported an application-level failure. It shares its value with
    ``USAGE`` but is kept as a separate name so callers state which of the
    two situations they are reporting.
    """

    OK = 0
    USAGE = 1
    FAILURE = 1
    INTERNAL = 2
