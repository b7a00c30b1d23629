import sys
from datetime import timedelta
from unittest.mock import patch

import pytest

from thds.k8slock import cli
from thds.k8slock._funcs import utc_now


def test_status_of_missing_lease(store, capsys):
    assert cli.show_status("test-lease", "test-ns", store=store) == 1
    assert "does not exist" in capsys.readouterr().out


def test_status_shows_holder(store, capsys):
    store.put(
        holder_identity="pod-7", renew_time=utc_now() + timedelta(minutes=5), lease_transitions=2
    )

    assert cli.show_status("test-lease", "test-ns", store=store) == 0

    out = capsys.readouterr().out
    assert "test-ns/test-lease" in out
    assert "pod-7" in out
    assert "expired:      False" in out


def test_run_holding_returns_the_command_exit_code(store):
    code = cli.run_holding(
        "test-lease",
        [sys.executable, "-c", "raise SystemExit(3)"],
        namespace="test-ns",
        holder_identity="runner",
        store=store,
    )

    assert code == 3
    assert store.current().holder_identity == "runner"


@patch("thds.k8slock.cli.run_holding", return_value=0)
def test_main_passes_run_arguments_through(run_holding):
    argv = ["run", "my-lease", "-n", "ns", "--duration", "20", "--no-create", "--", "echo", "hi"]
    assert cli.main(argv) == 0

    run_holding.assert_called_once_with(
        "my-lease",
        ["echo", "hi"],
        namespace="ns",
        holder_identity="",
        lease_duration=timedelta(seconds=20),
        create_lease_if_not_exist=False,
    )


@patch("thds.k8slock.cli.run_holding", return_value=0)
def test_command_options_after_the_separator_are_left_alone(run_holding):
    assert cli.main(["run", "my-lease", "--", "python", "-n", "--duration", "--", "x"]) == 0

    args, kwargs = run_holding.call_args
    assert args == ("my-lease", ["python", "-n", "--duration", "--", "x"])
    assert kwargs["namespace"] == ""
    assert kwargs["lease_duration"] is None


@patch("thds.k8slock.cli.run_holding", return_value=0)
def test_simple_command_needs_no_separator(run_holding):
    assert cli.main(["run", "-n", "ns", "my-lease", "echo", "hi"]) == 0

    args, kwargs = run_holding.call_args
    assert args == ("my-lease", ["echo", "hi"])
    assert kwargs["namespace"] == "ns"


@patch("thds.k8slock.cli.run_holding", return_value=0)
def test_run_requires_a_command(run_holding):
    with pytest.raises(SystemExit):
        cli.main(["run", "my-lease", "-n", "ns", "--"])
    assert not run_holding.called
