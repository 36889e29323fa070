"""
Command-line entry point for the echo server.

Loads configuration (environment variables take precedence over flags),
configures logging and runs the server until SIGINT or SIGTERM.
"""

import asyncio
import logging
from typing import Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from .api.config import Config, load_config
from .api.errors import ServerStartError, ShutdownTimeoutError
from .api.logging_conf import setup_logging
from .api.server import EchoServer

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="echo-server",
    help="Echo HTTP service with health check and Prometheus metrics",
    add_completion=False,
)


def build_config(
    port: Optional[int] = None, log_level: Optional[str] = None, host: Optional[str] = None
) -> Config:
    """Resolve configuration from the environment and command line flags.

    Raises:
        typer.Exit: With code 1 if the configuration is invalid
    """
    try:
        return load_config(port=port, log_level=log_level, host=host)
    except (ValidationError, ValueError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def serve(
    port: Annotated[
        Optional[int], typer.Option("--port", help="The port to listen on (PORT wins)")
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", "--logLevel", help="The log level (LOG_LEVEL wins)"),
    ] = None,
    host: Annotated[
        Optional[str], typer.Option("--host", help="The address to bind (HOST wins)")
    ] = None,
) -> None:
    """Run the echo server until interrupted."""
    config = build_config(port=port, log_level=log_level, host=host)
    setup_logging(config.log_level, config.log_format)

    server = EchoServer(config)
    try:
        asyncio.run(server.run())
    except ServerStartError as e:
        logger.error(f"Failed to start server: {e}")
        raise typer.Exit(code=1)
    except ShutdownTimeoutError as e:
        logger.error(f"Server shutdown incomplete: {e}")
        raise typer.Exit(code=1)


def main() -> None:
    """Entry point for the echo-server command."""
    app()


if __name__ == "__main__":
    main()
