"""Resolution of the controller's control endpoint.

The controller listens on a UNIX socket named ``.s.merovingian.<port>``
inside a socket directory (``/tmp`` by default) and, optionally, on a TCP
port. When no TCP host is given the client looks for a live local socket:
first the one for the requested (or default) port, then, when no port was
requested, any other control socket present in the directory.
"""
from __future__ import annotations

import os
import socket
import stat
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .errors import EndpointError

SOCKET_PREFIX = ".s.merovingian."
PING_TIMEOUT = 1.0

Ping = Callable[[Path], bool]


@dataclass(slots=True, frozen=True)
class Endpoint:
    """Where and how to reach the controller."""

    host: str
    port: int | None
    password: str | None = None
    socket_path: Path | None = None

    @property
    def is_local(self) -> bool:
        """Return ``True`` when the endpoint is a local UNIX socket."""
        return self.socket_path is not None

    def describe(self) -> str:
        """Return a human readable location for messages."""
        if self.socket_path is not None:
            return str(self.socket_path)
        return f"{self.host}:{self.port}"


def socket_name(port: int) -> str:
    """Return the control socket file name for *port*."""
    return f"{SOCKET_PREFIX}{port}"


def is_local_host(host: str | None) -> bool:
    """Return ``True`` when *host* is unset or names a socket directory."""
    return host is None or host.startswith("/")


def ping_unix_socket(path: Path) -> bool:
    """Return ``True`` when a control socket accepts connections at *path*."""
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(PING_TIMEOUT)
            sock.connect(str(path))
    except OSError:
        return False
    return True


def resolve_endpoint(
    host: str | None,
    port: int | None,
    password: str | None,
    *,
    socket_dir: Path,
    default_port: int,
    ping: Ping = ping_unix_socket,
) -> Endpoint:
    """Return the :class:`Endpoint` to use for control requests.

    Raises :class:`EndpointError` when no local control socket responds.
    """
    if host is not None and not is_local_host(host):
        return Endpoint(
            host=host,
            port=port if port is not None else default_port,
            password=password,
        )

    directory = Path(host) if host is not None else socket_dir
    candidate = directory / socket_name(port if port is not None else default_port)
    if ping(candidate):
        return Endpoint(host=str(directory), port=None, password=password, socket_path=candidate)

    if port is None:
        for found in _scan_sockets(directory):
            if found == candidate:
                continue
            if ping(found):
                return Endpoint(
                    host=str(directory),
                    port=None,
                    password=password,
                    socket_path=found,
                )

    raise EndpointError("cannot find a control socket, use -h and/or -p")


def _scan_sockets(directory: Path) -> list[Path]:
    """Return control sockets found in *directory*, sorted by name."""
    try:
        names = sorted(os.listdir(directory))
    except OSError as exc:
        raise EndpointError("cannot find a control socket, use -h and/or -p") from exc

    sockets: list[Path] = []
    for name in names:
        if not name.startswith(SOCKET_PREFIX):
            continue
        path = directory / name
        try:
            mode = path.stat().st_mode
        except OSError:
            continue
        if stat.S_ISSOCK(mode):
            sockets.append(path)
    return sockets


__all__ = [
    "Endpoint",
    "SOCKET_PREFIX",
    "is_local_host",
    "ping_unix_socket",
    "resolve_endpoint",
    "socket_name",
]
