"""The command-line interface for cloudvm."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter
from rich.console import Console

from cloudvm.config import ConfigManager
from cloudvm.utils import create_logger

from ._commands import register_commands
from ._context import CLIContext, load_config_safely

APP_HELP = "Power a remote cloud VM on and off and tunnel to its desktop."


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    """Create the cloudvm CLI application.

    Args:
        console: Console for regular output. Creates one if None.
        error_console: Console for errors. Creates a stderr console if None.
        exit_on_error: Whether cyclopts exits on parse errors.

    Returns:
        The cyclopts App with global options and all commands registered.
    """
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="cloudvm",
        help=APP_HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    @app.meta.default
    def _default(  # pyright: ignore[reportUnusedFunction]
        *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
        verbose: Annotated[bool, Parameter(help="Enable verbose output")] = False,
        json: Annotated[
            bool, Parameter(name="--json", help="Print states as JSON")
        ] = False,
        config: Annotated[
            Path | None, Parameter(name="--config", help="Path to config file")
        ] = None,
    ) -> None:
        """Launch cloudvm CLI with global options.

        Args:
            tokens: Command tokens to pass to subcommands.
            verbose: Enable verbose output with additional details.
            json: Print states as JSON instead of formatted text.
            config: Explicit path to config file.
        """
        manager = ConfigManager(config)
        config_error = load_config_safely(manager)
        if config_error is not None:
            error_console.print(f"[yellow]Warning:[/yellow] {config_error}")

        # Create CLI logger from config settings
        logging_config = manager.config.logging
        cli_logger = create_logger(
            level="debug" if verbose else logging_config.level.value,
            log_format=logging_config.format.value,  # type: ignore[arg-type]
            log_file=logging_config.file,
        )

        ctx = CLIContext(
            config_manager=manager,
            verbose=verbose,
            json_output=json,
            config_error=config_error,
            logger=cli_logger,
        )
        CLIContext.set_current(ctx)

        try:
            app(tokens)
        finally:
            CLIContext.reset()

    register_commands(app)
    return app


app = create_app()


def main() -> None:
    """Default entrypoint for the `cloudvm` CLI."""
    app.meta()


if __name__ == "__main__":
    main()
