# pyright: reportUnusedCallResult=false
"""CLI context for global state management.

This module provides context management for global CLI options and the
configuration manager. The CLIContext is set once at CLI startup and made
available to all commands via contextvars.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from cloudvm.config import ConfigManager


# Context variable for CLIContext
_current_cli_context: contextvars.ContextVar[CLIContext | None] = (
    contextvars.ContextVar("cli_context", default=None)
)


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Global CLI context with configuration and options.

    Attributes:
        config_manager: Configuration manager with the file already loaded.
        verbose: Enable verbose output with additional details.
        json_output: Print states as JSON instead of formatted text.
        config_error: Error message if config loading failed.
        logger: Structured logger for CLI commands (writes to file only).
    """

    config_manager: ConfigManager = field(repr=False)
    verbose: bool = False
    json_output: bool = False
    config_error: str | None = None
    logger: FilteringBoundLogger | None = field(default=None, repr=False)

    @classmethod
    def get_current(cls) -> CLIContext:
        """Get current active CLIContext, or create a default if not set.

        Returns:
            The currently active CLIContext, or a default instance if none is set.
        """
        ctx = _current_cli_context.get()
        if ctx is not None:
            return ctx

        # Default context reads the default config location
        from cloudvm.config import ConfigManager  # noqa: PLC0415

        return cls(config_manager=ConfigManager())

    @classmethod
    def set_current(cls, ctx: CLIContext) -> None:
        """Set the current active CLIContext.

        Args:
            ctx: The CLIContext to set as current.
        """
        _current_cli_context.set(ctx)

    @classmethod
    def reset(cls) -> None:
        """Reset to default context.

        This is primarily useful for testing to ensure a clean state between tests.
        """
        _current_cli_context.set(None)


def load_config_safely(manager: ConfigManager) -> str | None:
    """Load the configuration file, reporting instead of raising on failure.

    Args:
        manager: The configuration manager to load.

    Returns:
        None on success, otherwise the error message. The manager keeps
        its defaults when loading fails.
    """
    from cloudvm.exceptions import ConfigError  # noqa: PLC0415

    try:
        manager.load()
    except ConfigError as e:
        return str(e)
    except OSError as e:
        return f"Failed to load config: {e}"
    return None
