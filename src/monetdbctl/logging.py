"""Structured operation logging for monetdbctl.

Each CLI command runs inside :meth:`StructuredLogger.operation`, which
appends one JSON object per operation to ``operations.jsonl`` in the logs
directory. Logging is best effort: when the directory cannot be created or
a write fails, the logger disables itself and the command carries on.
"""
from __future__ import annotations

import json
import secrets
import time
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

REDACTED = "***"
SENSITIVE_ARG_KEYS = frozenset({"password", "pass"})


class OperationScope:
    """Collects the outcome of a single logged operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Prepare a scope for *command*; nothing is written until it closes."""
        self._logger = logger
        self.command = command
        self.args = _redact(dict(args or {}))
        self.target = dict(target or {})
        self.op_id = secrets.token_hex(8)
        self._started = time.monotonic()
        self._result: dict[str, object] | None = None

    @property
    def recorded(self) -> bool:
        """Return ``True`` once an outcome has been recorded."""
        return self._result is not None

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] = (),
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a successful outcome."""
        self._record("success", message, changed=changed, warnings=warnings, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] = (),
        errors: Iterable[str] = (),
        changed: int = 0,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record an outcome that completed with warnings or partial failures."""
        self._record(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            rc=rc,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a failed outcome; *errors* defaults to ``[message]``."""
        self._record(
            "error",
            message,
            errors=[message] if errors is None else errors,
            rc=rc,
            context=context,
        )

    # ------------------------------------------------------------------
    def _record(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] = (),
        errors: Iterable[str] = (),
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        self._result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": [str(item) for item in warnings],
            "errors": [str(item) for item in errors],
            "rc": rc,
            "context": _sanitise(dict(context or {})),
        }

    def _finish(self, exc: BaseException | None) -> None:
        if self._result is None:
            if exc is None:
                self._record("success", "completed")
            else:
                text = str(exc) or type(exc).__name__
                self._record("error", text, errors=[text])
        record = {
            "ts": datetime.now(UTC).isoformat(),
            "op_id": self.op_id,
            "command": self.command,
            "args": _sanitise(self.args),
            "target": _sanitise(self.target),
            "duration_ms": int((time.monotonic() - self._started) * 1000),
            "result": self._result,
        }
        self._logger.write(record)


class StructuredLogger:
    """Append JSON operation records under *log_dir*."""

    def __init__(self, log_dir: Path) -> None:
        """Create the log directory, disabling the logger when that fails."""
        self._log_dir = Path(log_dir)
        self._operations_log_path = self._log_dir / "operations.jsonl"
        self._enabled = True
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @property
    def enabled(self) -> bool:
        """Return ``True`` while records are being written."""
        return self._enabled

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            scope._finish(exc)
            raise
        scope._finish(None)

    def write(self, record: Mapping[str, object]) -> None:
        """Append *record* as one JSON line; failures disable the logger."""
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError:
            self._enabled = False


def _redact(args: dict[str, object]) -> dict[str, object]:
    for key in list(args):
        if key in SENSITIVE_ARG_KEYS and args[key] is not None:
            args[key] = REDACTED
    return args


def _sanitise(value: object) -> object:
    """Return a JSON-safe copy of *value*."""
    if isinstance(value, Mapping):
        return {str(key): _sanitise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitise(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    return str(value)


__all__ = ["OperationScope", "StructuredLogger"]
