"""Tests for the command-line entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from broker_ssh.__main__ import _run, _validate, build_parser, main
from broker_ssh.errors import CommandExecutionFailure, PoolAcquireFailure
from broker_ssh.models import SSHResult


def make_deps() -> MagicMock:
    deps = MagicMock()
    deps.template.execute = AsyncMock()
    deps.template.validate = AsyncMock()
    return deps


def test_parser_run() -> None:
    args = build_parser().parse_args(["run", "10.0.0.1", "df -h", "--timeout-ms", "3000"])

    assert args.action == "run"
    assert args.host == "10.0.0.1"
    assert args.remote_command == "df -h"
    assert args.timeout_ms == 3000


def test_parser_requires_action() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


@pytest.mark.asyncio
async def test_run_prints_output(capsys) -> None:
    deps = make_deps()
    deps.template.execute.return_value = SSHResult.ok("/dev/sda1 40%")

    code = await _run(deps, "h", "df -h", None)

    assert code == 0
    assert capsys.readouterr().out == "/dev/sda1 40%\n"


@pytest.mark.asyncio
async def test_run_reports_command_failure(capsys) -> None:
    deps = make_deps()
    deps.template.execute.return_value = SSHResult.fail(CommandExecutionFailure("denied"))

    code = await _run(deps, "h", "cat /root/x", None)

    assert code == 1
    assert "denied" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_run_reports_pool_failure(capsys) -> None:
    deps = make_deps()
    deps.template.execute.side_effect = PoolAcquireFailure("exhausted", host="h")

    code = await _run(deps, "h", "date", None)

    assert code == 2
    assert "exhausted" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_validate_reports_each_host(capsys) -> None:
    deps = make_deps()
    deps.template.validate.side_effect = [True, False]

    code = await _validate(deps, ["a", "b"])

    assert code == 1
    assert capsys.readouterr().out == "a\tok\nb\tFAILED\n"


def test_main_configures_logging_and_runs() -> None:
    with patch("broker_ssh.__main__.configure_logging") as mock_logging, patch(
        "broker_ssh.__main__.main_async", new=AsyncMock(return_value=0)
    ) as mock_main:
        code = main(["validate", "10.0.0.1"])

    assert code == 0
    mock_logging.assert_called_once()
    args, _ = mock_main.await_args
    assert args[0].hosts == ["10.0.0.1"]
