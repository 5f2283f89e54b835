from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from ci_operator_lsp import cli
from ci_operator_lsp.exceptions import InitializationError
from ci_operator_lsp.lsp_client import DefinitionRequest, LspClientError
from ci_operator_lsp.schema import ServerSettings


def test_cli_help_lists_subcommands() -> None:
    result = CliRunner().invoke(cli.app, ["--help"])
    assert result.exit_code == 0
    assert "serve" in result.output
    assert "definition" in result.output


def test_definition_direct_prints_locations(workspace: Path, tmp_path: Path) -> None:
    doc = tmp_path / "job.yaml"
    doc.write_text("tests:\n- as: e2e\n  steps:\n    workflow: ipi-aws\n", encoding="utf-8")
    result = CliRunner().invoke(
        cli.app,
        ["definition", str(doc), "3", "--root", str(workspace), "--direct"],
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    target = workspace.resolve() / "ci-operator" / "step-registry" / "ipi" / "aws" / "ipi-aws-workflow.yaml"
    assert payload == {
        "locations": [
            {
                "uri": target.as_uri(),
                "range": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 0}},
            }
        ]
    }


def test_definition_direct_with_missing_root_exits_2(tmp_path: Path) -> None:
    doc = tmp_path / "job.yaml"
    doc.write_text("workflow: ipi-aws\n", encoding="utf-8")
    result = CliRunner().invoke(
        cli.app,
        ["definition", str(doc), "0", "--root", str(tmp_path / "absent"), "--direct"],
    )
    assert result.exit_code == 2
    assert "not accessible" in result.output


def test_run_definition_routes_to_stdio_runner(tmp_path: Path, capsys) -> None:
    calls: list[dict] = []

    def _runner(request, **kwargs):
        calls.append({"request": request, **kwargs})
        return []

    def _direct_runner(request, **kwargs):
        raise AssertionError("direct runner should not be used")

    request = DefinitionRequest(document=tmp_path / "job.yaml", line=2)
    cli._run_definition(
        request,
        root=tmp_path,
        direct=False,
        timeout=3.5,
        runner=_runner,
        direct_runner=_direct_runner,
    )
    assert calls == [{"request": request, "root": tmp_path, "timeout_seconds": 3.5}]
    assert json.loads(capsys.readouterr().out) == {"locations": []}


@pytest.mark.parametrize(
    "error",
    [LspClientError("LSP response timed out"), InitializationError("session already initialized")],
)
def test_run_definition_failures_exit_2(tmp_path: Path, error: Exception) -> None:
    def _runner(request, **kwargs):
        raise error

    with pytest.raises(typer.Exit) as exc_info:
        cli._run_definition(
            DefinitionRequest(document=tmp_path / "job.yaml", line=0),
            root=None,
            direct=False,
            timeout=1.0,
            runner=_runner,
        )
    assert exc_info.value.exit_code == 2


def test_resolve_server_settings_layers_cli_over_config(tmp_path: Path) -> None:
    config_path = tmp_path / "lsp.toml"
    config_path.write_text(
        '[server]\nlog_level = "debug"\ntransport = "tcp"\nport = 9000\n',
        encoding="utf-8",
    )
    settings = cli.resolve_server_settings(
        config=config_path,
        log_level=None,
        log_file=None,
        tcp=None,
        host=None,
        port=9100,
    )
    assert settings == ServerSettings(log_level="debug", transport="tcp", port=9100)

    stdio = cli.resolve_server_settings(
        config=config_path,
        log_level="warning",
        log_file=tmp_path / "lsp.log",
        tcp=False,
        host=None,
        port=None,
    )
    assert stdio.transport == "stdio"
    assert stdio.log_level == "warning"
    assert stdio.log_file == str(tmp_path / "lsp.log")


@pytest.mark.parametrize(
    "overrides",
    [{"log_level": "verbose"}, {"port": 70000}],
)
def test_resolve_server_settings_rejects_bad_values(tmp_path: Path, overrides: dict) -> None:
    arguments = {
        "config": tmp_path / "absent.toml",
        "log_level": None,
        "log_file": None,
        "tcp": None,
        "host": None,
        "port": None,
    }
    arguments.update(overrides)
    with pytest.raises(typer.BadParameter):
        cli.resolve_server_settings(**arguments)


def test_run_server_selects_transport(tmp_path: Path, restore_root_logger) -> None:
    started: list[object] = []
    cli.run_server(
        ServerSettings(log_file=str(tmp_path / "lsp.log")),
        start_fn=started.append,
    )
    assert started == [None]

    cli.run_server(
        ServerSettings(transport="tcp", port=0, log_file=str(tmp_path / "lsp.log")),
        start_fn=started.append,
    )
    assert callable(started[1])
    assert "over tcp" in (tmp_path / "lsp.log").read_text(encoding="utf-8")


def test_serve_command_passes_settings(monkeypatch, tmp_path: Path) -> None:
    seen: list[ServerSettings] = []
    monkeypatch.setattr(cli, "run_server", seen.append)
    result = CliRunner().invoke(
        cli.app,
        ["serve", "--config", str(tmp_path / "absent.toml"), "--tcp", "--port", "8181"],
    )
    assert result.exit_code == 0, result.output
    assert seen == [ServerSettings(transport="tcp", port=8181)]
