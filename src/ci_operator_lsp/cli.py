from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Optional, TypeAlias

import typer
from pydantic import ValidationError

from ci_operator_lsp import server
from ci_operator_lsp.config import merge_payload, server_defaults
from ci_operator_lsp.exceptions import InitializationError
from ci_operator_lsp.json_types import JSONObject
from ci_operator_lsp.logs import configure_logging, parse_log_level
from ci_operator_lsp.lsp_client import (
    DEFAULT_TIMEOUT_SECONDS,
    DefinitionRequest,
    LspClientError,
    request_definition,
    request_definition_direct,
)
from ci_operator_lsp.schema import DefinitionResponseDTO, ServerSettings

app = typer.Typer(add_completion=False)
DefinitionRunner: TypeAlias = Callable[..., list[JSONObject]]
StartFn: TypeAlias = Callable[[Callable[[], None] | None], None]

logger = logging.getLogger(__name__)


def resolve_server_settings(
    *,
    config: Optional[Path],
    log_level: Optional[str],
    log_file: Optional[Path],
    tcp: Optional[bool],
    host: Optional[str],
    port: Optional[int],
) -> ServerSettings:
    """Layer explicit CLI values over the ``[server]`` table of the config file."""
    defaults = server_defaults(config_path=config)
    transport = None if tcp is None else ("tcp" if tcp else "stdio")
    merged = merge_payload(
        {
            "log_level": log_level,
            "log_file": str(log_file) if log_file is not None else None,
            "transport": transport,
            "host": host,
            "port": port,
        },
        defaults,
    )
    try:
        settings = ServerSettings.model_validate(merged)
        parse_log_level(settings.log_level)
    except (ValidationError, ValueError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    return settings


def run_server(settings: ServerSettings, *, start_fn: StartFn = server.start) -> None:
    configure_logging(
        settings.log_level,
        Path(settings.log_file) if settings.log_file else None,
    )
    logger.info("starting %s %s over %s", server.SERVER_NAME, server.server.version, settings.transport)
    if settings.transport == "tcp":
        start_fn(lambda: server.server.start_tcp(settings.host, settings.port))
    else:
        start_fn(None)


@app.command("serve")
def serve(
    config: Optional[Path] = typer.Option(None, "--config", help="TOML file with a [server] table."),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Append logs to this file instead of stderr."
    ),
    tcp: Optional[bool] = typer.Option(None, "--tcp/--stdio"),
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
) -> None:
    """Run the language server."""
    settings = resolve_server_settings(
        config=config,
        log_level=log_level,
        log_file=log_file,
        tcp=tcp,
        host=host,
        port=port,
    )
    run_server(settings)


def _emit_definition(locations: list[JSONObject]) -> None:
    normalized = DefinitionResponseDTO.model_validate({"locations": locations}).model_dump()
    typer.echo(json.dumps(normalized, indent=2, sort_keys=True))


@app.command("definition")
def definition(
    document: Path = typer.Argument(..., help="ci-operator YAML file."),
    line: int = typer.Argument(..., help="Zero-based line of the reference."),
    character: int = typer.Option(0, "--character"),
    root: Optional[Path] = typer.Option(None, "--root", help="Workspace root (default: cwd)."),
    direct: bool = typer.Option(
        False, "--direct/--no-direct", help="Run in process instead of over stdio."
    ),
    timeout: float = typer.Option(DEFAULT_TIMEOUT_SECONDS, "--timeout"),
) -> None:
    """Print where a workflow/chain/ref/commands reference points."""
    request = DefinitionRequest(document=document, line=line, character=character)
    _run_definition(request, root=root, direct=direct, timeout=timeout)


def _run_definition(
    request: DefinitionRequest,
    *,
    root: Optional[Path],
    direct: bool,
    timeout: float,
    runner: DefinitionRunner = request_definition,
    direct_runner: DefinitionRunner = request_definition_direct,
) -> None:
    try:
        if direct:
            locations = direct_runner(request, root=root)
        else:
            locations = runner(request, root=root, timeout_seconds=timeout)
    except (InitializationError, LspClientError) as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=2) from exc
    _emit_definition(locations)


if __name__ == "__main__":  # pragma: no cover
    app()  # pragma: no cover
