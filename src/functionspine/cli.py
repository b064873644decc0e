"""
CLI: ``functionspine`` — serve one function.

Loads the function source (which registers functions into the default
registry), resolves the target and serves it until a shutdown signal.

    functionspine --source ./main.py --target hello --port 8080

Every option can also come from the environment (``FUNCTION_TARGET``,
``FUNCTION_SOURCE``, ``PORT``...).
"""

from __future__ import annotations

import typer
from pydantic import ValidationError
from rich.console import Console

from functionspine import __version__
from functionspine.errors import FunctionSpineError, LifecycleError
from functionspine.lifecycle import FunctionHost
from functionspine.loader import load_source
from functionspine.logging import configure_logging, get_logger
from functionspine.registry import get_default_registry
from functionspine.settings import DEFAULT_SOURCE, DEFAULT_TARGET, ServerConfig

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="functionspine",
    help="function-spine — serve a function over HTTP.",
    add_completion=False,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"function-spine {__version__}")
        raise typer.Exit()


@app.command()
def serve(
    target: str = typer.Option(DEFAULT_TARGET, "--target", "-t", envvar="FUNCTION_TARGET", help="Function to serve"),
    source: str = typer.Option(
        DEFAULT_SOURCE, "--source", "-s", envvar="FUNCTION_SOURCE", help="File or module defining the function"
    ),
    signature_type: str | None = typer.Option(
        None,
        "--signature-type",
        envvar="FUNCTION_SIGNATURE_TYPE",
        help="Expected kind: http, typed or cloudevent",
    ),
    port: int = typer.Option(8080, "--port", "-p", envvar=["PORT", "FUNCTION_PORT"], help="Bind port"),
    bind: str = typer.Option("0.0.0.0", "--bind", "-b", envvar="FUNCTION_BIND_ADDR", help="Bind address"),
    max_threads: int = typer.Option(16, "--max-threads", envvar="FUNCTION_MAX_THREADS", help="Handler threads"),
    detailed_errors: bool = typer.Option(
        False, "--detailed-errors", envvar="FUNCTION_DETAILED_ERRORS", help="Show exception details in 500s"
    ),
    log_level: str = typer.Option("INFO", "--log-level", envvar="FUNCTION_LOG_LEVEL", help="Log level"),
    json_logs: bool | None = typer.Option(
        None, "--json-logs/--console-logs", help="Log format (default: JSON unless stderr is a terminal)"
    ),
    verify: bool = typer.Option(False, "--verify", help="Load and check the target, then exit"),
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Serve a registered function."""
    configure_logging(level=log_level, json_format=json_logs)
    log = get_logger("functionspine.cli")

    try:
        config = ServerConfig(
            target=target,
            source=source,
            signature_type=signature_type,
            bind_addr=bind,
            port=port,
            max_threads=max_threads,
            show_error_details=detailed_errors,
            log_level=log_level,
            json_logs=json_logs,
        )
    except ValidationError as e:
        err_console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=2) from e

    try:
        load_source(config.source)
        host = FunctionHost(get_default_registry())
        function = host.resolve(config.target)
        if config.signature_type and function.kind.value != config.signature_type:
            raise LifecycleError(
                f"Function {function.name!r} is a {function.kind.value} function, "
                f"not {config.signature_type}"
            )

        if verify:
            console.print(f"[green]OK[/green] {function.name} ({function.kind.value}) from {config.source}")
            return

        host.run(function, config)
    except FunctionSpineError as e:
        log.error("startup_failed", **e.to_dict())
        err_console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(code=1) from e


def main() -> None:
    """Console-script entry point."""
    app()


__all__ = ["app", "main", "serve"]
