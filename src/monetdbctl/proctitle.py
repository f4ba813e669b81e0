"""Keep the control password out of the arguments the OS exposes.

``sys.argv`` is a copy made at startup; ``ps`` and ``/proc/<pid>/cmdline``
read the original argument memory, which only
:func:`setproctitle.setproctitle` rewrites.
"""
from __future__ import annotations

import sys
from collections.abc import Sequence

import setproctitle

PASSWORD_SHORT = "P"
PASSWORD_LONG = "--password"
# Root short options that take a value, besides the password.
VALUE_SHORT_OPTIONS = frozenset("hp")
VALUE_LONG_OPTIONS = frozenset({"--host", "--port", "--config-file"})


def _scrub_cluster(arg: str) -> tuple[str, str]:
    """Scrub one short option cluster such as ``-qPsecret``.

    Returns the cluster to keep (empty to drop it) and what to do with the
    next argument: ``"keep"`` (it is a value of another option), ``"drop"``
    (it is the password) or ``""``.
    """
    for pos in range(1, len(arg)):
        char = arg[pos]
        if char == PASSWORD_SHORT:
            kept = arg[:pos] if pos > 1 else ""
            return kept, "" if arg[pos + 1 :] else "drop"
        if char in VALUE_SHORT_OPTIONS:
            return arg, "" if arg[pos + 1 :] else "keep"
    return arg, ""


def scrub_password(args: Sequence[str]) -> list[str]:
    """Return *args* without the password option and its value.

    Handles ``-P value``, ``-Pvalue``, clusters like ``-qPvalue`` and
    ``-qP value``, ``--password value`` and ``--password=value``. Scanning
    stops at ``--`` or the first positional argument (the command name).
    """
    result: list[str] = []
    index = 0
    while index < len(args):
        arg = args[index]
        index += 1
        if arg == "--" or not arg.startswith("-") or arg == "-":
            result.extend(args[index - 1 :])
            break
        if arg == PASSWORD_LONG:
            index += 1
            continue
        if arg.startswith(PASSWORD_LONG + "="):
            continue
        if arg.startswith("--"):
            result.append(arg)
            if arg in VALUE_LONG_OPTIONS and index < len(args):
                result.append(args[index])
                index += 1
            continue

        kept, follow = _scrub_cluster(arg)
        if kept:
            result.append(kept)
        if follow and index < len(args):
            if follow == "keep":
                result.append(args[index])
            index += 1
    return result


def hide_password_from_process() -> bool:
    """Rewrite the process title and ``sys.argv`` without the password.

    Returns ``True`` when the command line carried a password.
    """
    user_args = sys.argv[1:]
    scrubbed = scrub_password(user_args)
    if scrubbed == user_args:
        return False
    full = list(sys.orig_argv)
    prefix = full[: len(full) - len(user_args)]
    setproctitle.setproctitle(" ".join([*prefix, *scrubbed]))
    sys.argv[1:] = scrubbed
    return True


__all__ = ["hide_password_from_process", "scrub_password"]
