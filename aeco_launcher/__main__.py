"""Main entry point for the aeco-launcher CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console

from aeco_launcher import __version__
from aeco_launcher.commands.launcher import run
from aeco_launcher.commands.manifest import manifest_group
from aeco_launcher.core.config import LauncherConfig
from aeco_launcher.core.utils import current_executable, get_platform, is_frozen

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__, prog_name="aeco-launcher")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    verbose: bool,
    debug: bool,
) -> None:
    """Game launcher that keeps an installation in sync with its patch server."""
    ctx.ensure_object(dict)

    # Load configuration
    try:
        launcher_config = LauncherConfig.load(config)
    except Exception as e:
        logger.error("config_load_failed", error=str(e))
        sys.exit(1)

    # Override config with CLI options
    if verbose or debug:
        launcher_config.log_level = "DEBUG" if debug else "INFO"

    logging.basicConfig(level=launcher_config.log_level, format="%(message)s", stream=sys.stderr)

    if debug:
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.dev.set_exc_info,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(colors=True),
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    console = Console()

    # Store config and console in context for subcommands
    ctx.obj["config"] = launcher_config
    ctx.obj["console"] = console
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("cli_initialized", config=launcher_config.model_dump())


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    console: Console = ctx.obj["console"]

    console.print(f"aeco-launcher {__version__}")
    if ctx.obj["verbose"]:
        console.print(f"Python {sys.version}")
        console.print(f"Platform: {get_platform()}")


@main.command(name="platform")
@click.pass_context
def platform_info(ctx: click.Context) -> None:
    """Show the platform identifier and the paths the launcher would use."""
    console: Console = ctx.obj["console"]
    config: LauncherConfig = ctx.obj["config"]

    self_exe = current_executable()
    console.print(f"Platform: [cyan]{get_platform()}[/cyan]")
    console.print(f"Launcher: {self_exe}")
    if is_frozen():
        console.print(f"Install root: {self_exe.parent}")
    else:
        console.print("Install root: pass --install-root to run")
    console.print(f"Server: {config.server.url}")


# Register commands
main.add_command(run)
main.add_command(manifest_group)


def handle_exception(exc_type: type[BaseException], exc_value: BaseException, exc_traceback: Any) -> None:
    """Handle uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        logger.info("operation_cancelled")
        sys.exit(1)

    logger.error(
        "uncaught_exception",
        exc_info=(exc_type, exc_value, exc_traceback),
    )
    sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    sys.excepthook = handle_exception
    main()


if __name__ == "__main__":
    cli()
