"""File-backed configuration accessor with change notification.

This module provides the ConfigManager class that owns the configuration
file, writes updates back to disk, and notifies subscribers whenever the
configuration changes, either through `update_cloud()` or because another
process edited the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, final

import anyio
import anyio.to_thread
import structlog
from pydantic import ValidationError

from cloudvm.exceptions import ConfigLoadError

from ._loader import get_default_config_path, read_toml_file, write_toml_file
from ._models import CloudVmConfig, Config

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from structlog.typing import FilteringBoundLogger

    ConfigListener = Callable[[Config], Awaitable[None]]


@final
class ConfigManager:
    """Reads, writes, and watches the cloudvm configuration file.

    Listeners registered with `subscribe()` receive the new Config after
    every change. Notification is awaited, so by the time `update_cloud()`
    returns every listener has observed the update.

    Attributes:
        path: Location of the TOML configuration file.
    """

    __slots__ = ("_config", "_last_text", "_listeners", "_logger", "path")

    def __init__(
        self,
        path: Path | None = None,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the manager without touching the filesystem.

        Args:
            path: Configuration file path. Uses the default location if None.
            logger: Structured logger. Uses the global structlog logger if None.
        """
        self.path: Path = path if path is not None else get_default_config_path()
        self._config = Config()
        self._last_text: str | None = None
        self._listeners: list[ConfigListener] = []
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(
            component="config"
        )

    @property
    def config(self) -> Config:
        """Return the current configuration."""
        return self._config

    @property
    def cloud(self) -> CloudVmConfig | None:
        """Return the cloud section, or None if it is absent."""
        return self._config.cloud

    def load(self) -> Config:
        """Load the configuration file, falling back to defaults if missing.

        Returns:
            The loaded configuration.

        Raises:
            ConfigLoadError: If the file cannot be parsed or validated.
        """
        _ = self.reload()
        return self._config

    def reload(self) -> bool:
        """Re-read the configuration file if its content changed.

        Returns:
            True if the configuration was replaced, False if unchanged.

        Raises:
            ConfigLoadError: If the file cannot be parsed or validated.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            text = ""

        if text == self._last_text:
            return False

        data = read_toml_file(self.path) if text else {}
        try:
            config = Config.from_dict(data)
        except ValidationError as e:
            msg = f"Invalid configuration in {self.path}: {e}"
            raise ConfigLoadError(msg, path=self.path) from e

        self._last_text = text
        self._config = config
        return True

    async def update_cloud(self, **changes: Any) -> Config:  # noqa: ANN401
        """Update cloud fields, persist them, and notify listeners.

        Args:
            changes: Cloud fields to replace, e.g. ``api_token="..."``.

        Returns:
            The updated configuration.

        Raises:
            pydantic.ValidationError: If a value is invalid.
            OSError: If the file cannot be written.
        """
        config = self._config.with_cloud(**changes)
        text = await anyio.to_thread.run_sync(
            write_toml_file, self.path, config.to_dict()
        )
        self._last_text = text
        self._config = config
        self._logger.debug("config_updated", fields=sorted(changes))
        await self._notify()
        return config

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        """Register a listener for configuration changes.

        Args:
            listener: Async callable receiving the new configuration.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                await listener(self._config)
            except Exception:  # noqa: BLE001
                # A failing listener must not stop the others
                self._logger.exception("config_listener_failed")

    async def watch(self, stop_event: anyio.Event | None = None) -> None:
        """Watch the configuration file for external edits.

        Reloads and notifies listeners whenever the file content changes.
        Runs until `stop_event` is set or the task is cancelled.

        Args:
            stop_event: Optional event that ends the watch loop.
        """
        from watchfiles import Change, awatch  # noqa: PLC0415

        def is_config_file(_change: Change, changed_path: str) -> bool:
            return Path(changed_path).name == self.path.name

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._logger.info("config_watch_started", path=str(self.path))

        async for _changes in awatch(
            self.path.parent,
            watch_filter=is_config_file,
            stop_event=stop_event,
        ):
            try:
                changed = self.reload()
            except (ConfigLoadError, OSError) as e:
                self._logger.warning("config_reload_failed", error=str(e))
                continue

            if changed:
                self._logger.info("config_changed_externally", path=str(self.path))
                await self._notify()
