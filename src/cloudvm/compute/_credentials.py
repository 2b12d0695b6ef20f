"""Bearer credential refresh through the provider's CLI tool.

The refresher never mints credentials itself. It asks the external auth
tool for the current access token and, when the token differs from the
configured one, writes it back through the configuration manager.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, final

import anyio
import structlog

from cloudvm.exceptions import AuthError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from structlog.typing import FilteringBoundLogger

    from cloudvm.config import ConfigManager

TOKEN_COMMAND: tuple[str, ...] = ("gcloud", "auth", "print-access-token")


@final
class CredentialRefresher:
    """Obtains a fresh bearer credential before every compute API call.

    Tokens are not cached between calls because the upstream tool already
    caches and rotates them.

    While a changed token is being written back, `is_refreshing` is True so
    that configuration listeners can ignore the resulting change
    notification instead of re-entering a state refresh.
    """

    __slots__ = ("_command", "_config_manager", "_logger", "_refreshing")

    def __init__(
        self,
        config_manager: ConfigManager,
        *,
        command: Sequence[str] = TOKEN_COMMAND,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the refresher.

        Args:
            config_manager: Accessor the refreshed token is written back to.
            command: Command printing an access token on stdout.
            logger: Structured logger. Uses the global structlog logger if None.
        """
        self._config_manager = config_manager
        self._command: tuple[str, ...] = tuple(command)
        self._refreshing = False
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(
            component="credentials"
        )

    @property
    def is_refreshing(self) -> bool:
        """Return True while a refreshed token is being written back."""
        return self._refreshing

    async def refresh(self) -> str:
        """Run the auth tool and return the token it prints.

        Returns:
            The bearer credential.

        Raises:
            AuthError: If the tool is missing, exits non-zero, or prints nothing.
        """
        try:
            result = await anyio.run_process(self._command, check=False)
        except OSError as e:
            msg = f"{self._command[0]} not found: {e}"
            self._logger.error("token_refresh_failed", error=msg)
            raise AuthError(msg) from e

        token = result.stdout.decode("utf-8", errors="replace").strip()
        if result.returncode != 0 or not token:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            msg = f"Failed to refresh GCP token (code {result.returncode}): {stderr}"
            self._logger.error("token_refresh_failed", error=msg)
            raise AuthError(msg)

        cloud = self._config_manager.cloud
        if cloud is not None and cloud.api_token != token:
            self._refreshing = True
            try:
                _ = await self._config_manager.update_cloud(api_token=token)
            finally:
                self._refreshing = False
            self._logger.info("token_refreshed")

        return token
