"""Error taxonomy shared by the monetdbctl modules.

Every failure the client can report is a :class:`ControlError` tagged with
an :class:`ErrorKind` and the exit code the CLI should terminate with. The
modules raise these values; only the command layer turns them into output
and process exit codes.
"""
from __future__ import annotations

from enum import Enum

from .exit_codes import ExitCode


class ErrorKind(str, Enum):
    """Category of a :class:`ControlError`."""

    USAGE = "usage"
    SELECTION = "selection"
    CONNECTION = "connection"
    PROTOCOL = "protocol"
    APPLICATION = "application"
    TRANSPORT = "transport"
    CONFIRMATION = "confirmation"


class ControlError(RuntimeError):
    """Base class for errors carrying a kind and an exit code."""

    kind: ErrorKind = ErrorKind.APPLICATION
    exit_code: ExitCode = ExitCode.FAILURE

    def __init__(self, message: str) -> None:
        """Store the human readable *message*."""
        super().__init__(message)
        self.message = message


class UsageError(ControlError):
    """Raised for bad flags or missing arguments; no request is sent."""

    kind = ErrorKind.USAGE
    exit_code = ExitCode.USAGE


class NoTargetsError(UsageError):
    """Raised when a command resolved to an empty target list."""


class SelectionError(ControlError):
    """A name pattern matched no instance; other patterns still apply."""

    kind = ErrorKind.SELECTION
    exit_code = ExitCode.USAGE


class EndpointError(ControlError):
    """Raised when no reachable control endpoint could be found."""

    kind = ErrorKind.CONNECTION
    exit_code = ExitCode.INTERNAL


class ProtocolError(ControlError):
    """Raised when a single status record cannot be decoded."""

    kind = ErrorKind.PROTOCOL
    exit_code = ExitCode.INTERNAL


class ApplicationError(ControlError):
    """Raised when the daemon answered with something other than ``OK``."""

    kind = ErrorKind.APPLICATION
    exit_code = ExitCode.FAILURE


class UnknownPropertyError(ApplicationError):
    """Raised when a property key is not known to the daemon."""


class TransportError(ControlError):
    """Raised when sending or receiving a control request fails."""

    kind = ErrorKind.TRANSPORT
    exit_code = ExitCode.INTERNAL


class ConfirmationDeclined(ControlError):
    """Raised when the user does not confirm a destructive command."""

    kind = ErrorKind.CONFIRMATION
    exit_code = ExitCode.USAGE


__all__ = [
    "ApplicationError",
    "ConfirmationDeclined",
    "ControlError",
    "EndpointError",
    "ErrorKind",
    "NoTargetsError",
    "ProtocolError",
    "SelectionError",
    "TransportError",
    "UnknownPropertyError",
    "UsageError",
]
