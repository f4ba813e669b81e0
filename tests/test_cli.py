"""Tests for the monetdb command line interface."""
from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FakeControl, running_line, status_line, transport_failure
from monetdbctl import __version__, cli
from monetdbctl.cli import app, main
from monetdbctl.endpoint import Endpoint
from monetdbctl.errors import EndpointError
from monetdbctl.providers import ControlProvider

runner = CliRunner()


def _prepare_environment(tmp_path: Path) -> dict[str, str | None]:
    """Return an environment isolating config, logs and terminal width."""
    return {
        "MONETDBCTL_CONFIG_FILE": str(tmp_path / "config.yml"),
        "MONETDBCTL_LOGS_DIR": str(tmp_path / "logs"),
        "COLUMNS": "80",
        "MONETDB_PASSWORD": None,
    }


@pytest.fixture
def controller(monkeypatch: pytest.MonkeyPatch, fake_control: FakeControl) -> FakeControl:
    """Route every control request of the CLI to a :class:`FakeControl`."""
    endpoint = Endpoint(
        host="/tmp",
        port=None,
        socket_path=Path("/tmp/.s.merovingian.50001"),
    )
    monkeypatch.setattr(cli, "resolve_endpoint", lambda *args, **kwargs: endpoint)

    def send(self: ControlProvider, target: str, verb: str, *, want_body: bool = True) -> str:
        return fake_control.send(target, verb, want_body=want_body)

    monkeypatch.setattr(ControlProvider, "send", send)
    return fake_control


def _lines(output: str) -> list[str]:
    return [line for line in output.splitlines() if line.strip()]


def test_version_option_outputs_package_version(tmp_path: Path) -> None:
    """``--version`` prints the toolkit banner."""
    result = runner.invoke(app, ["--version"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert f"MonetDB Database Server Toolkit v{__version__}" in result.output


def test_version_command_needs_no_controller(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """``version`` never resolves an endpoint."""

    def fail(*args: object, **kwargs: object) -> Endpoint:
        raise AssertionError("endpoint resolution not expected")

    monkeypatch.setattr(cli, "resolve_endpoint", fail)

    result = runner.invoke(app, ["version"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert __version__ in result.output


def test_invocation_without_subcommand_shows_help(tmp_path: Path) -> None:
    """Running without a command prints usage and exits 1."""
    result = runner.invoke(app, [], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "Usage" in result.output


def test_help_for_command(tmp_path: Path) -> None:
    """``help <command>`` shows that command's help."""
    result = runner.invoke(app, ["help", "lock"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert "maintenance" in result.output


def test_help_for_unknown_command(tmp_path: Path) -> None:
    """Unknown commands are reported by ``help``."""
    result = runner.invoke(app, ["help", "frobnicate"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "help: unknown command: frobnicate" in result.output


def test_status_short_lists_instances_in_name_order(
    tmp_path: Path, controller: FakeControl
) -> None:
    """The short report is sorted by name and shows the last crash column."""
    controller.set_status(status_line("db2"), running_line("db1"))

    result = runner.invoke(app, ["status"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    header, first, second = _lines(result.output)
    assert "state" in header and "last crash" in header
    assert first.startswith("db1")
    assert "running" in first
    assert "1h" in first
    assert first.endswith("-")
    assert second.startswith("db2")
    assert "stopped" in second


def test_status_abbreviates_names_to_terminal(tmp_path: Path, controller: FakeControl) -> None:
    """Long names are cut to the available width."""
    controller.set_status(status_line("x" * 60))

    result = runner.invoke(app, ["status"], env=_prepare_environment(tmp_path))

    row = _lines(result.output)[1]
    name = row.split(" ", 1)[0]
    assert len(name) == 80 - 54
    assert name.endswith("...")


def test_status_state_filter(tmp_path: Path, controller: FakeControl) -> None:
    """``-s`` restricts the report to the requested states."""
    controller.set_status(running_line("db1"), status_line("db2"), status_line("db3", locked=True))

    result = runner.invoke(app, ["status", "-s", "l"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    rows = _lines(result.output)[1:]
    assert [row.split()[0] for row in rows] == ["db3"]


def test_status_state_filter_groups_by_letter(tmp_path: Path, controller: FakeControl) -> None:
    """``-s sr`` lists stopped instances before running ones."""
    controller.set_status(running_line("db1"), status_line("db2"))

    result = runner.invoke(app, ["status", "-s", "sr"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    rows = _lines(result.output)[1:]
    assert [row.split()[0] for row in rows] == ["db2", "db1"]


@pytest.mark.parametrize("args", [["help"], ["help", "status"], ["version"]])
def test_offline_commands_ignore_broken_config(tmp_path: Path, args: list[str]) -> None:
    """``help`` and ``version`` neither read the config nor create the log directory."""
    (tmp_path / "config.yml").write_text("- not\n- a mapping\n", encoding="utf-8")

    result = runner.invoke(app, args, env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert not (tmp_path / "logs").exists()


def test_status_bad_state_flag_is_usage_error(tmp_path: Path, controller: FakeControl) -> None:
    """Unknown state letters are rejected before contacting the controller."""
    result = runner.invoke(app, ["status", "-s", "q"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "unknown flag for -s: -q" in result.output
    assert controller.calls == []


def test_status_long_and_crash_modes(tmp_path: Path, controller: FakeControl) -> None:
    """``-l`` and ``-c`` switch the report layout."""
    controller.set_status(running_line("db1"))
    env = _prepare_environment(tmp_path)

    long_result = runner.invoke(app, ["status", "-l", "db1"], env=env)
    crash_result = runner.invoke(app, ["status", "-c"], env=env)

    assert "  database name: db1" in long_result.output
    assert "database db1, up since" in crash_result.output


def test_status_parse_warning_is_reported(tmp_path: Path, controller: FakeControl) -> None:
    """A bad record is skipped with a warning."""
    controller.set_status(status_line("db1"), "sabdb:2:broken")

    result = runner.invoke(app, ["status"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert "failed to parse response from merovingian" in result.output
    assert "db1" in result.output


def test_get_all_reports_sources(tmp_path: Path, controller: FakeControl) -> None:
    """Local values win over defaults and the name is read directly."""
    controller.set_status(status_line("demo"))
    controller.set_properties(
        "#defaults",
        {
            "forward": "proxy",
            "shared": "yes",
            "nthreads": "8",
            "optpipe": "default_pipe",
            "readonly": "no",
            "nclients": "64",
        },
    )
    controller.set_properties("demo", {"nthreads": "4"})

    result = runner.invoke(app, ["get", "all", "demo"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    lines = _lines(result.output)
    assert lines[0] == "     name          prop     source           value"
    assert f"{'demo':<15}  {'name':<8}  {'direct':<7}  demo" in lines
    assert f"{'demo':<15}  {'nthreads':<8}  {'local':<7}  4" in lines
    assert f"{'demo':<15}  {'shared':<8}  {'default':<7}  yes" in lines
    assert len(lines) == 1 + 7


def test_get_unknown_property_warns_and_continues(
    tmp_path: Path, controller: FakeControl
) -> None:
    """Unknown keys are warned about; the remaining keys are still reported."""
    controller.set_status(status_line("demo"))
    controller.set_properties("#defaults", {"nthreads": "8"})
    controller.set_properties("demo", {})

    result = runner.invoke(app, ["get", "bogus,nthreads"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert "get: no such property: bogus" in result.output
    assert "nthreads" in result.output


def test_start_all_only_starts_stopped_instances(
    tmp_path: Path, controller: FakeControl
) -> None:
    """``start -a`` leaves running instances alone."""
    controller.set_status(running_line("db1"), status_line("db2"))

    result = runner.invoke(app, ["start", "-a"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert controller.verbs_sent("start") == ["db2"]
    assert "starting database 'db2'... done" in result.output


def test_stop_all_with_nothing_running_is_silent(tmp_path: Path, controller: FakeControl) -> None:
    """Nothing to do is not an error."""
    controller.set_status(status_line("db1"))

    result = runner.invoke(app, ["stop", "-a"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert controller.verbs_sent("stop") == []
    assert result.output == ""


def test_partial_failure_exits_with_failure_bit(tmp_path: Path, controller: FakeControl) -> None:
    """One failed target out of two yields exit code 1."""
    controller.set_status(status_line("db1"), status_line("db2"))
    controller.answers[("db2", "lock")] = "database is already under maintenance"

    result = runner.invoke(app, ["lock", "db1", "db2"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert controller.verbs_sent("lock") == ["db1", "db2"]
    assert "put database under maintenance: db1" in result.output
    assert "lock: database is already under maintenance" in result.output


def test_transport_failure_stops_dispatch(tmp_path: Path, controller: FakeControl) -> None:
    """A broken connection on the second target aborts the third."""
    controller.set_status(status_line("db1"), status_line("db2"), status_line("db3"))
    controller.answers[("db2", "start")] = transport_failure()

    result = runner.invoke(app, ["start", "db*"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 2
    assert controller.verbs_sent("start") == ["db1", "db2"]
    assert "start: failed to perform command" in result.output


def test_quiet_suppresses_progress(tmp_path: Path, controller: FakeControl) -> None:
    """``-q`` hides success output."""
    controller.set_status(status_line("db1"))

    result = runner.invoke(app, ["-q", "start", "db1"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert result.output == ""
    assert controller.verbs_sent("start") == ["db1"]


def test_unmatched_pattern_warns_and_fails(tmp_path: Path, controller: FakeControl) -> None:
    """A selection matching nothing prints a warning and usage."""
    controller.set_status(status_line("db1"))

    result = runner.invoke(app, ["release", "nope"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "release: no such database: nope" in result.output
    assert controller.verbs_sent("release") == []


def test_create_without_arguments_prints_usage(tmp_path: Path, controller: FakeControl) -> None:
    """Commands that need targets refuse to run without them."""
    result = runner.invoke(app, ["create"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert controller.calls == []


def test_create_sends_literal_names(tmp_path: Path, controller: FakeControl) -> None:
    """Create does not consult the status list."""
    result = runner.invoke(app, ["create", "new1", "new2"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert controller.calls == [("new1", "create"), ("new2", "create")]
    assert "created database in maintenance mode: new1" in result.output


def test_destroy_declined_sends_nothing(tmp_path: Path, controller: FakeControl) -> None:
    """Answering no to the confirmation aborts."""
    controller.set_status(status_line("db1"))

    result = runner.invoke(app, ["destroy", "db1"], input="n\n", env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "you are about to remove database 'db1'" in result.output
    assert "aborted" in result.output
    assert controller.verbs_sent("destroy") == []


def test_destroy_force_skips_confirmation(tmp_path: Path, controller: FakeControl) -> None:
    """``-f`` destroys right away."""
    controller.set_status(status_line("db1"), status_line("db2"))

    result = runner.invoke(app, ["destroy", "-f", "db*"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert controller.verbs_sent("destroy") == ["db1", "db2"]


def test_set_sends_assignment(tmp_path: Path, controller: FakeControl) -> None:
    """``set`` forwards ``key=value`` verbatim."""
    controller.set_status(status_line("db1"))

    result = runner.invoke(app, ["set", "nthreads=4", "db1"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert controller.calls[-1] == ("db1", "nthreads=4")


def test_set_rename_requires_single_target(tmp_path: Path, controller: FakeControl) -> None:
    """Several databases cannot all get the same name."""
    controller.set_status(status_line("db1"), status_line("db2"))

    result = runner.invoke(app, ["set", "name=new", "db*"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "cannot rename multiple databases" in result.output
    assert controller.verbs_sent("name=new") == []


def test_set_without_equals_is_usage_error(tmp_path: Path, controller: FakeControl) -> None:
    """A property assignment needs ``=``."""
    result = runner.invoke(app, ["set", "nthreads", "db1"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "set: need property=value" in result.output


def test_inherit_sends_empty_assignment(tmp_path: Path, controller: FakeControl) -> None:
    """``inherit`` clears the local value."""
    controller.set_status(status_line("db1"))

    result = runner.invoke(app, ["inherit", "nthreads", "db1"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    assert controller.calls[-1] == ("db1", "nthreads=")


def test_inherit_name_is_refused(tmp_path: Path, controller: FakeControl) -> None:
    """The name has no default to fall back to."""
    result = runner.invoke(app, ["inherit", "name", "db1"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "cannot default to a database name" in result.output


def test_discover_lists_locations(tmp_path: Path, controller: FakeControl) -> None:
    """Discovered databases are listed under a location header."""
    controller.answers[("anelosimus", "eximius")] = (
        "OK\nzeta\tmapi:monetdb://b:50000/\nalpha\tmapi:monetdb://a:50000/"
    )

    result = runner.invoke(app, ["discover"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 0
    lines = _lines(result.output)
    assert lines[0].strip() == "location"
    assert lines[1:] == ["mapi:monetdb://a:50000/alpha", "mapi:monetdb://b:50000/zeta"]


def test_password_requires_tcp_host(tmp_path: Path, controller: FakeControl) -> None:
    """``-P`` without ``-h <hostname>`` is a usage error."""
    result = runner.invoke(app, ["-P", "secret", "status"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "-P requires -h" in result.output


def test_password_from_environment_ignored_for_local_socket(
    tmp_path: Path, controller: FakeControl
) -> None:
    """``MONETDB_PASSWORD`` does not break commands on the local socket."""
    controller.set_status(status_line("db1"))
    env = _prepare_environment(tmp_path)
    env["MONETDB_PASSWORD"] = "secret"

    result = runner.invoke(app, ["status"], env=env)

    assert result.exit_code == 0
    assert "db1" in result.output


def test_tcp_host_requires_password(tmp_path: Path, controller: FakeControl) -> None:
    """A TCP host without a password is a usage error."""
    result = runner.invoke(app, ["-h", "db.example", "status"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 1
    assert "-h requires -P" in result.output


def test_endpoint_failure_exits_internal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """No reachable controller is an internal error."""

    def fail(*args: object, **kwargs: object) -> Endpoint:
        raise EndpointError("cannot find a control socket, use -h and/or -p")

    monkeypatch.setattr(cli, "resolve_endpoint", fail)

    result = runner.invoke(app, ["status"], env=_prepare_environment(tmp_path))

    assert result.exit_code == 2
    assert "cannot find a control socket" in result.output


def test_operations_are_logged(tmp_path: Path, controller: FakeControl) -> None:
    """Each command appends a record to the operations log."""
    controller.set_status(status_line("db1"))

    runner.invoke(app, ["lock", "db1"], env=_prepare_environment(tmp_path))

    log_text = (tmp_path / "logs" / "operations.jsonl").read_text(encoding="utf-8")
    assert '"command": "lock"' in log_text
    assert '"status": "success"' in log_text


def test_main_maps_click_usage_errors_to_one(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, controller: FakeControl
) -> None:
    """Unknown options exit with the usage code rather than click's 2."""
    for key, value in _prepare_environment(tmp_path).items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)
    controller.set_status(status_line("db1"))

    assert main(["status", "--bogus"]) == 1
    assert main(["lock", "db1"]) == 0
