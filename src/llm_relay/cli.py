"""LLM Relay CLI - Main entry point.

Commands:
- serve: Run the relay server with uvicorn
- providers: Show configured providers and their credentials
"""

import logging
from typing import Annotated, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from llm_relay import __version__
from llm_relay.config import RelaySettings
from llm_relay.providers import PROVIDER_SPECS

app = typer.Typer(
    help="LLM Relay - stream LLM completions to realtime clients.",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"llm-relay {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """LLM Relay - stream LLM completions to realtime clients."""


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option(help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option(help="Listen port")] = None,
    log_level: Annotated[Optional[str], typer.Option(help="Logging level")] = None,
) -> None:
    """Run the relay server."""
    overrides = {
        key: value
        for key, value in {
            "host": host,
            "port": port,
            "log_level": log_level.lower() if log_level else None,
        }.items()
        if value is not None
    }
    settings = RelaySettings()
    if overrides:
        settings = settings.model_copy(update=overrides)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    from llm_relay.gateway import create_app

    relay_app = create_app(settings)
    logger.info("Relay server running on %s:%d", settings.host, settings.port)
    try:
        uvicorn.run(
            relay_app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level,
        )
    except KeyboardInterrupt:
        logger.info("Server shutdown by user")


@app.command()
def providers() -> None:
    """List providers, their endpoints and whether a credential is set."""
    settings = RelaySettings()

    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Endpoint")
    table.add_column("Default model")
    table.add_column("Credential")

    missing: list[str] = []
    for provider_id, spec in PROVIDER_SPECS.items():
        configured = settings.api_key_for(provider_id) is not None
        if not configured:
            missing.append(f"Set {spec.api_key_env} to enable {provider_id.value}")
        credential = "[green]set[/]" if configured else "[red]missing[/]"
        table.add_row(provider_id.value, spec.api_base, spec.default_model, credential)

    console.print(table)
    console.print(
        f"{len(PROVIDER_SPECS) - len(missing)} of {len(PROVIDER_SPECS)} providers configured"
    )
    for hint in missing:
        console.print(f"[yellow]⚠[/] {hint}")


if __name__ == "__main__":
    app()
