"""Typer-powered command line interface for ``monetdb``.

``monetdb`` is the administrator's interface to a dbfarm under control of
the merovingian controller: it creates and destroys databases, puts them
in and out of maintenance, starts and stops them, edits their properties
and reports their status. Every command talks to the controller through a
single control endpoint resolved once per invocation.
"""
from __future__ import annotations

import shutil
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import click
import typer
from click.core import ParameterSource
from rich.console import Console
from rich.markup import escape
from typer.core import TyperGroup

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .discovery import discover as discover_locations
from .dispatch import CommandDispatcher, DispatchReport, prune_for_goal
from .endpoint import Endpoint, is_local_host, resolve_endpoint
from .errors import (
    ApplicationError,
    ConfirmationDeclined,
    EndpointError,
    NoTargetsError,
    TransportError,
    UnknownPropertyError,
    UsageError,
)
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .models import InstanceStatus, StatusSnapshot
from .proctitle import hide_password_from_process
from .properties import IDENTITY_KEY, PropertyAccessor, expand_keys, split_assignment
from .providers import ControlProvider, InstanceStatusProvider
from .render import (
    DEFAULT_STATE_SELECTOR,
    ReportMode,
    abbreviate,
    available_width,
    centred_header,
    filter_by_state,
    parse_state_selector,
    render_report,
)
from .selection import Selection, select_instances

console = Console()
err_console = Console(stderr=True)

OFFLINE_COMMANDS = frozenset({"help", "version"})
PASSWORD_ENV_VAR = "MONETDB_PASSWORD"
# name, prop and source columns of the ``get`` listing plus their gaps.
GET_RESERVED_WIDTH = 15 + 2 + 8 + 2 + 7 + 2
GET_HEADER = "     name          prop     source           value"

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to monetdbctl's YAML config file.",
)

DATABASES_ARGUMENT = typer.Argument(
    None,
    metavar="DATABASE...",
    help="Database names or glob-style patterns (* and ?).",
    show_default=False,
)

ALL_OPTION_HELP = "Act on all known databases."

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        MonetDB Database Server administrator's toolkit.

        A group of database servers in a dbfarm is supervised by the
        merovingian controller. This tool is the interface for the DBA to
        the dbfarm: create, destroy, lock, release, start, stop and inspect
        databases.
        """
    ).strip(),
)


@dataclass(frozen=True)
class RuntimeContext:
    """Immutable settings shared by every command of one invocation."""

    config: AppConfig
    logger: StructuredLogger
    endpoint: Endpoint
    quiet: bool
    term_width: int

    def control(self) -> ControlProvider:
        """Return a control provider bound to the resolved endpoint."""
        return ControlProvider(self.endpoint)

    def statuses(self) -> InstanceStatusProvider:
        """Return the status provider for the resolved endpoint."""
        return InstanceStatusProvider(self.control())

    def dispatcher(self) -> CommandDispatcher:
        """Return a dispatcher honouring the quiet flag."""
        return CommandDispatcher(
            self.control(),
            console=console,
            err_console=err_console,
            quiet=self.quiet,
        )


def _out(text: str, *, end: str = "\n") -> None:
    console.print(text, end=end, markup=False, highlight=False, emoji=False, soft_wrap=True)


def _err(text: str) -> None:
    err_console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)


def _usage(ctx: typer.Context, message: str | None = None) -> NoReturn:
    """Print *message* and the command help, then exit with the usage code."""
    if message:
        _err(message)
    console.print(ctx.get_help())
    raise typer.Exit(code=ExitCode.USAGE)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.INTERNAL,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    err_console.print(f"[red]{escape(message)}[/red]", highlight=False, soft_wrap=True)
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _check_connection_flags(host: str | None, password: str | None) -> None:
    if password is not None and is_local_host(host):
        raise UsageError("monetdb: -P requires -h to be used with a TCP hostname")
    if not is_local_host(host) and password is None:
        raise UsageError("monetdb: -h requires -P to be used")


def _terminal_width(config: AppConfig) -> int:
    return shutil.get_terminal_size(fallback=(config.terminal_width, 24)).columns


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    raise RuntimeError("monetdb runtime context was not initialised")


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Suppress status output."),
    host: str | None = typer.Option(
        None,
        "-h",
        "--host",
        help="Hostname of a remote merovingian, or the directory holding its socket.",
    ),
    port: int | None = typer.Option(None, "-p", "--port", help="Port to contact."),
    password: str | None = typer.Option(
        None,
        "-P",
        "--password",
        envvar=PASSWORD_ENV_VAR,
        show_envvar=True,
        help="Password to log in at a remote merovingian.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the toolkit version and exit.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if password is not None:
        if ctx.get_parameter_source("password") is ParameterSource.ENVIRONMENT:
            # A password from the environment only applies to TCP hosts.
            if is_local_host(host):
                password = None
        else:
            hide_password_from_process()

    if version:
        _out(f"MonetDB Database Server Toolkit v{__version__}")
        raise typer.Exit(code=ExitCode.OK)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.USAGE)

    if ctx.invoked_subcommand in OFFLINE_COMMANDS:
        return

    try:
        _check_connection_flags(host, password)
    except UsageError as exc:
        _usage(ctx, exc.message)

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        _err(f"monetdb: {exc}")
        raise typer.Exit(code=ExitCode.INTERNAL) from exc

    logger = StructuredLogger(config.logs_dir)
    try:
        endpoint = resolve_endpoint(
            host,
            port,
            password,
            socket_dir=config.socket_dir,
            default_port=config.default_port,
        )
    except EndpointError as exc:
        with logger.operation(
            "resolve endpoint",
            args={"host": host, "port": port, "password": password},
            target={"kind": "endpoint"},
        ) as op:
            _command_error(op, f"monetdb: {exc.message}", rc=exc.exit_code)

    ctx.obj = RuntimeContext(
        config=config,
        logger=logger,
        endpoint=endpoint,
        quiet=quiet,
        term_width=_terminal_width(config),
    )


# ----------------------------------------------------------------------
# Shared command helpers


def _fetch_snapshot(runtime: RuntimeContext, command: str, op: OperationScope) -> StatusSnapshot:
    """Fetch the status of every instance, terminating on failure."""
    try:
        snapshot = runtime.statuses().fetch()
    except (TransportError, ApplicationError) as exc:
        _command_error(op, f"{command}: internal error: {exc.message}", rc=ExitCode.INTERNAL)
    for warning in snapshot.warnings:
        _err(f"{command}: WARNING: {warning}")
    return snapshot


def _select(command: str, patterns: Sequence[str], snapshot: StatusSnapshot) -> Selection:
    """Select instances by *patterns*, warning about patterns matching nothing."""
    selection = select_instances(patterns, snapshot)
    for error in selection.errors():
        _err(f"{command}: {error.message}")
    return selection


def _finish_dispatch(op: OperationScope, report: DispatchReport, summary: str) -> None:
    """Record the aggregated outcome and exit with the failure bit if needed."""
    context = {"succeeded": report.succeeded, "failed": [name for name, _ in report.failed]}
    if report.ok:
        op.success(summary, changed=len(report.succeeded), context=context)
        return
    op.warning(
        f"{summary} with failures.",
        errors=report.errors(),
        changed=len(report.succeeded),
        rc=report.exit_code,
        context=context,
    )
    raise typer.Exit(code=report.exit_code)


def _dispatch(
    ctx: typer.Context,
    op: OperationScope,
    runtime: RuntimeContext,
    command: str,
    targets: Sequence[InstanceStatus],
    verb: str,
    *,
    success_message: str | None = None,
    pre_message: str | None = None,
) -> None:
    """Dispatch *verb* to *targets* and turn the outcome into an exit code."""
    try:
        report = runtime.dispatcher().dispatch(
            command,
            targets,
            verb,
            success_message=success_message,
            pre_message=pre_message,
        )
    except NoTargetsError:
        op.error(f"{command}: no databases to act on.", rc=int(ExitCode.USAGE))
        _usage(ctx)
    except TransportError as exc:
        _command_error(op, f"{command}: failed to perform command: {exc.message}")
    _finish_dispatch(op, report, f"{command} dispatched")


def _glob_command(
    ctx: typer.Context,
    command: str,
    databases: list[str] | None,
    success_message: str,
) -> None:
    """Run *command* against the databases matching *databases*."""
    if not databases:
        _usage(ctx)
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        command,
        args={"databases": databases},
        target={"kind": "instance", "patterns": databases},
    ) as op:
        snapshot = _fetch_snapshot(runtime, command, op)
        selection = _select(command, databases, snapshot)
        _dispatch(
            ctx,
            op,
            runtime,
            command,
            selection.matched,
            command,
            success_message=success_message,
        )


# ----------------------------------------------------------------------
# Commands


@app.command()
def create(
    ctx: typer.Context,
    databases: list[str] | None = DATABASES_ARGUMENT,
) -> None:
    """Create new databases; they start out in maintenance mode."""
    if not databases:
        _usage(ctx)
    runtime = _get_runtime(ctx)
    targets = tuple(InstanceStatus(name=name) for name in databases)
    with runtime.logger.operation(
        "create",
        args={"databases": databases},
        target={"kind": "instance", "names": databases},
    ) as op:
        _dispatch(
            ctx,
            op,
            runtime,
            "create",
            targets,
            "create",
            success_message="created database in maintenance mode",
        )


def _confirm_destroy(targets: Sequence[InstanceStatus]) -> None:
    """Ask before destroying *targets*; raise when the answer is no."""
    plural = len(targets) > 1
    names = ", ".join(f"'{status.name}'" for status in targets)
    _out(f"you are about to remove database{'s' if plural else ''} {names}")
    scope = "these databases" if plural else "this database"
    if not typer.confirm(f"ALL data in {scope} will be lost, are you sure?", default=False):
        raise ConfirmationDeclined("aborted")


@app.command()
def destroy(
    ctx: typer.Context,
    databases: list[str] | None = DATABASES_ARGUMENT,
    force: bool = typer.Option(
        False,
        "-f",
        "--force",
        help="Do not ask for confirmation, destroy right away.",
    ),
) -> None:
    """Remove databases including all their data and logfiles."""
    if not databases:
        _usage(ctx)
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "destroy",
        args={"databases": databases, "force": force},
        target={"kind": "instance", "patterns": databases},
    ) as op:
        snapshot = _fetch_snapshot(runtime, "destroy", op)
        targets = _select("destroy", databases, snapshot).matched
        if not targets:
            op.error("destroy: no databases to act on.", rc=int(ExitCode.USAGE))
            _usage(ctx)

        if not force:
            try:
                _confirm_destroy(targets)
            except ConfirmationDeclined as exc:
                _out(exc.message)
                op.error("Destroy aborted by user.", rc=int(exc.exit_code))
                raise typer.Exit(code=exc.exit_code) from exc

        _dispatch(
            ctx,
            op,
            runtime,
            "destroy",
            targets,
            "destroy",
            success_message="destroyed database",
        )


@app.command()
def lock(
    ctx: typer.Context,
    databases: list[str] | None = DATABASES_ARGUMENT,
) -> None:
    """Put databases in maintenance mode; only the DBA can connect."""
    _glob_command(ctx, "lock", databases, "put database under maintenance")


@app.command()
def release(
    ctx: typer.Context,
    databases: list[str] | None = DATABASES_ARGUMENT,
) -> None:
    """Bring databases back from maintenance mode for normal use."""
    _glob_command(ctx, "release", databases, "taken database out of maintenance mode")


@app.command()
def status(
    ctx: typer.Context,
    patterns: list[str] | None = typer.Argument(
        None,
        metavar="[PATTERN]...",
        help="Glob-style expressions selecting databases (default: all).",
        show_default=False,
    ),
    long_mode: bool = typer.Option(False, "-l", "--long", help="Extended information listing."),
    crash_mode: bool = typer.Option(False, "-c", "--crash", help="Crash statistics listing."),
    states: str = typer.Option(
        DEFAULT_STATE_SELECTOR,
        "-s",
        "--states",
        help="Only show databases in these states: r(unning), s(topped), c(rashed), l(ocked).",
    ),
) -> None:
    """Show the state of the matching databases, or all known ones."""
    if long_mode and crash_mode:
        _usage(ctx, "status: -l and -c are mutually exclusive")
    try:
        state_filter = parse_state_selector(states)
    except UsageError as exc:
        _usage(ctx, exc.message)

    mode = ReportMode.LONG if long_mode else ReportMode.CRASH if crash_mode else ReportMode.SHORT
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "status",
        args={"patterns": patterns or [], "mode": mode.value, "states": states},
        target={"kind": "instance", "patterns": patterns or ["*"]},
    ) as op:
        snapshot = _fetch_snapshot(runtime, "status", op)
        instances = _select("status", patterns, snapshot).matched if patterns else snapshot.instances
        shown = filter_by_state(instances, state_filter)
        for line in render_report(
            shown, mode, term_width=runtime.term_width, matched=instances
        ):
            _out(line)
        op.success("Reported database status.", context={"shown": [s.name for s in shown]})


_START_STOP_MESSAGES = {
    "start": "starting database",
    "stop": "stopping database",
    "kill": "killing database",
}


def _start_stop(
    ctx: typer.Context,
    verb: str,
    databases: list[str] | None,
    all_databases: bool,
) -> None:
    if not databases and not all_databases:
        _usage(ctx)
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        verb,
        args={"databases": databases or [], "all": all_databases},
        target={"kind": "instance", "patterns": ["*"] if all_databases else databases},
    ) as op:
        snapshot = _fetch_snapshot(runtime, verb, op)
        if all_databases:
            targets, skipped = prune_for_goal(snapshot.instances, verb)
            if not targets:
                op.success(
                    f"Nothing to {verb}.",
                    context={"skipped": [status.name for status in skipped]},
                )
                return
        else:
            targets = _select(verb, databases or [], snapshot).matched
        _dispatch(ctx, op, runtime, verb, targets, verb, pre_message=_START_STOP_MESSAGES[verb])


@app.command()
def start(
    ctx: typer.Context,
    databases: list[str] | None = DATABASES_ARGUMENT,
    all_databases: bool = typer.Option(False, "-a", "--all", help=ALL_OPTION_HELP),
) -> None:
    """Start the given databases."""
    _start_stop(ctx, "start", databases, all_databases)


@app.command()
def stop(
    ctx: typer.Context,
    databases: list[str] | None = DATABASES_ARGUMENT,
    all_databases: bool = typer.Option(False, "-a", "--all", help=ALL_OPTION_HELP),
) -> None:
    """Stop the given databases."""
    _start_stop(ctx, "stop", databases, all_databases)


@app.command()
def kill(
    ctx: typer.Context,
    databases: list[str] | None = DATABASES_ARGUMENT,
    all_databases: bool = typer.Option(False, "-a", "--all", help=ALL_OPTION_HELP),
) -> None:
    """Kill the given databases; a last resort that may lose data."""
    _start_stop(ctx, "kill", databases, all_databases)


@app.command("set")
def set_property(
    ctx: typer.Context,
    assignment: str | None = typer.Argument(
        None,
        metavar="PROPERTY=VALUE",
        help="Property assignment; use `monetdb get all` for a list of properties.",
        show_default=False,
    ),
    databases: list[str] | None = DATABASES_ARGUMENT,
) -> None:
    """Set a property to a value for the given databases."""
    if assignment is None:
        _usage(ctx)
    try:
        key, _ = split_assignment(assignment)
    except UsageError as exc:
        _usage(ctx, exc.message)
    _apply_property(ctx, "set", key, assignment, databases)


@app.command()
def inherit(
    ctx: typer.Context,
    key: str | None = typer.Argument(None, metavar="PROPERTY", show_default=False),
    databases: list[str] | None = DATABASES_ARGUMENT,
) -> None:
    """Unset a property, reverting to the default configuration value."""
    if key is None:
        _usage(ctx)
    if key == IDENTITY_KEY:
        _err("inherit: cannot default to a database name")
        raise typer.Exit(code=ExitCode.USAGE)
    _apply_property(ctx, "inherit", key, f"{key}=", databases)


def _apply_property(
    ctx: typer.Context,
    command: str,
    key: str,
    verb: str,
    databases: list[str] | None,
) -> None:
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        command,
        args={"property": key, "databases": databases or []},
        target={"kind": "property", "key": key, "patterns": databases or []},
    ) as op:
        snapshot = _fetch_snapshot(runtime, command, op)
        targets = _select(command, databases or [], snapshot).matched
        if key == IDENTITY_KEY and len(targets) > 1:
            _command_error(
                op,
                f"{command}: cannot rename multiple databases to the same name",
                rc=ExitCode.USAGE,
            )
        _dispatch(ctx, op, runtime, command, targets, verb)


@app.command()
def get(
    ctx: typer.Context,
    keys: str | None = typer.Argument(
        None,
        metavar='"all" | PROPERTY[,PROPERTY...]',
        show_default=False,
    ),
    databases: list[str] | None = DATABASES_ARGUMENT,
) -> None:
    """Show property values for the given databases, or all known ones."""
    if keys is None:
        _usage(ctx)
    key_list = expand_keys(keys)
    if not key_list:
        _usage(ctx, "get: need a property argument")

    runtime = _get_runtime(ctx)
    accessor = PropertyAccessor(runtime.control())
    with runtime.logger.operation(
        "get",
        args={"keys": key_list, "databases": databases or []},
        target={"kind": "property", "patterns": databases or ["*"]},
    ) as op:
        try:
            accessor.defaults()
        except TransportError as exc:
            _command_error(op, f"get: internal error: {exc.message}")
        except ApplicationError as exc:
            _command_error(op, f"get: {exc.message}", rc=ExitCode.FAILURE)

        snapshot = _fetch_snapshot(runtime, "get", op)
        instances = _select("get", databases, snapshot).matched if databases else snapshot.instances
        if not instances:
            op.success("No databases to report.")
            return

        value_width = available_width(runtime.term_width, GET_RESERVED_WIDTH)
        unknown: list[str] = []
        _out(GET_HEADER)
        for key in key_list:
            for instance in instances:
                try:
                    row = accessor.resolve(instance, key)
                except UnknownPropertyError as exc:
                    _err(f"get: {exc.message}")
                    unknown.append(key)
                    break
                except ApplicationError as exc:
                    _command_error(op, f"get: {exc.message}", rc=ExitCode.FAILURE)
                except TransportError as exc:
                    _command_error(op, f"get: internal error: {exc.message}")
                value = abbreviate(row.value, value_width)
                _out(f"{row.instance:<15}  {row.key:<8}  {row.source.value:<7}  {value}")

        if unknown:
            # Unknown keys are only warned about; the exit code stays 0.
            op.warning(
                "Reported properties with unknown keys.",
                warnings=[f"no such property: {key}" for key in unknown],
                rc=int(ExitCode.OK),
            )
            return
        op.success("Reported properties.", context={"keys": key_list})


@app.command()
def discover(
    ctx: typer.Context,
    pattern: str | None = typer.Argument(
        None,
        metavar="[EXPRESSION]",
        help="Glob-style expression matched against each location.",
        show_default=False,
    ),
) -> None:
    """List the remote databases discovered by the controller."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "discover",
        args={"pattern": pattern},
        target={"kind": "discovery"},
    ) as op:
        try:
            report = discover_locations(runtime.control(), pattern)
        except TransportError as exc:
            _command_error(op, f"discover: {exc.message}")
        except ApplicationError as exc:
            _command_error(op, f"discover: {exc.message}", rc=ExitCode.FAILURE)

        for warning in report.warnings:
            _err(f"discover: WARNING: {warning}")
        locations = [abbreviate(location, runtime.term_width) for location in report.locations]
        if locations:
            width = max(len(location) for location in locations)
            _out(centred_header("location", width).rstrip())
            for location in locations:
                _out(location)
        op.success(
            "Reported discovered databases.",
            warnings=report.warnings,
            context={"count": len(locations)},
        )


@app.command("help")
def help_command(
    ctx: typer.Context,
    command: str | None = typer.Argument(None, metavar="[COMMAND]", show_default=False),
) -> None:
    """Show general help, or help for a particular command."""
    root = ctx.parent if ctx.parent is not None else ctx
    if command is None:
        console.print(root.get_help())
        return
    group = root.command
    sub = group.get_command(root, command) if isinstance(group, TyperGroup) else None
    if sub is None:
        _err(f"help: unknown command: {command}")
        raise typer.Exit(code=ExitCode.USAGE)
    sub_ctx = typer.Context(sub, info_name=command, parent=root)
    console.print(sub.get_help(sub_ctx))


@app.command()
def version() -> None:
    """Print the version of this monetdb utility."""
    _out(f"MonetDB Database Server Toolkit v{__version__}")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return its exit code; usage errors map to 1."""
    command = typer.main.get_command(app)
    try:
        result = command.main(
            args=list(argv) if argv is not None else None,
            prog_name="monetdb",
            standalone_mode=False,
        )
    except click.UsageError as exc:
        exc.show()
        return int(ExitCode.USAGE)
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.Abort:
        _err("aborted")
        return int(ExitCode.USAGE)
    return result if isinstance(result, int) else int(ExitCode.OK)


__all__ = ["RuntimeContext", "app", "main"]
