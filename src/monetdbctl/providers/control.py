"""Blocking control-protocol client for the fleet controller."""
from __future__ import annotations

import hashlib
import socket
from dataclasses import dataclass
from typing import Protocol

from ..endpoint import Endpoint
from ..errors import TransportError

OK = "OK"
ALL_TARGETS = "#all"
DEFAULTS_TARGET = "#defaults"
DISCOVERY_TARGET = "anelosimus"
DISCOVERY_VERB = "eximius"
RECV_CHUNK = 8192


class ControlChannel(Protocol):
    """Anything able to perform a control request/response round trip."""

    def send(self, target: str, verb: str, *, want_body: bool = True) -> str:
        """Send *verb* for *target* and return the response text."""
        ...


def split_response(text: str) -> tuple[str, list[str]]:
    """Split a response into its status line and the remaining lines."""
    lines = text.split("\n")
    head = lines[0].rstrip("\r")
    body = [line.rstrip("\r") for line in lines[1:] if line.strip()]
    return head, body


@dataclass(slots=True)
class ControlProvider:
    """Send control requests to the controller over its socket.

    Every call opens a fresh connection, writes one request line, and reads
    the answer until the controller closes the connection. Requests are never
    retried and no timeout is applied beyond the socket defaults.
    """

    endpoint: Endpoint

    def send(self, target: str, verb: str, *, want_body: bool = True) -> str:
        """Send ``<target> <verb>`` and return the response text.

        With ``want_body`` false only the first response line (``OK`` or an
        error message) is returned.
        """
        request = f"{target} {verb}\n".encode()
        try:
            with self._connect() as sock:
                if not self.endpoint.is_local:
                    self._login(sock)
                sock.sendall(request)
                raw = self._read_all(sock)
        except OSError as exc:
            raise TransportError(
                f"cannot talk to merovingian at {self.endpoint.describe()}: {exc}"
            ) from exc

        text = raw.decode("utf-8", errors="replace")
        if not text:
            raise TransportError("merovingian closed the connection without a response")
        if want_body:
            return text.rstrip("\n")
        return text.split("\n", 1)[0].rstrip("\r")

    # ------------------------------------------------------------------
    def _connect(self) -> socket.socket:
        if self.endpoint.socket_path is not None:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.connect(str(self.endpoint.socket_path))
            except OSError:
                sock.close()
                raise
            return sock
        return socket.create_connection((self.endpoint.host, self.endpoint.port or 0))

    def _login(self, sock: socket.socket) -> None:
        challenge = self._read_line(sock)
        salt = challenge.split(":", 1)[0]
        if not salt:
            raise TransportError("merovingian did not send a login challenge")
        password = self.endpoint.password or ""
        digest = hashlib.sha512((password + salt).encode()).hexdigest()
        sock.sendall(f"BIG:monetdb:{{SHA512}}{digest}:control:merovingian:\n".encode())
        answer = self._read_line(sock)
        if answer != OK:
            raise TransportError(f"login rejected: {answer or 'no answer'}")

    @staticmethod
    def _read_line(sock: socket.socket) -> str:
        buffer = bytearray()
        while True:
            chunk = sock.recv(1)
            if not chunk or chunk == b"\n":
                break
            buffer.extend(chunk)
        return buffer.decode("utf-8", errors="replace").rstrip("\r")

    @staticmethod
    def _read_all(sock: socket.socket) -> bytes:
        chunks: list[bytes] = []
        while True:
            chunk = sock.recv(RECV_CHUNK)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)


__all__ = [
    "ALL_TARGETS",
    "ControlChannel",
    "ControlProvider",
    "DEFAULTS_TARGET",
    "DISCOVERY_TARGET",
    "DISCOVERY_VERB",
    "OK",
    "split_response",
]
