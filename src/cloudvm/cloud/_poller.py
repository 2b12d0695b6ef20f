"""Periodic status polling with degraded-mode backoff."""

from __future__ import annotations

from typing import TYPE_CHECKING, final

import anyio
import structlog

from ._backoff import ExponentialBackoff

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import anyio.abc
    from structlog.typing import FilteringBoundLogger

    from ._models import CloudVmState

    RefreshFunc = Callable[[], Awaitable[CloudVmState]]
    SleepFunc = Callable[[float], Awaitable[None]]

DEFAULT_POLL_INTERVAL = 30.0
MAX_POLL_INTERVAL = 300.0


@final
class StatusPoller:
    """Calls a refresh function on a schedule until stopped.

    A refresh fails when it raises or returns a state carrying an error.
    Each consecutive failure doubles the wait up to `MAX_POLL_INTERVAL`;
    the first success restores the nominal interval.

    At most one polling loop runs at a time. Starting again replaces the
    running loop.
    """

    __slots__ = (
        "_backoff",
        "_consecutive_failures",
        "_logger",
        "_next_delay",
        "_refresh",
        "_scope",
        "_sleep",
    )

    def __init__(
        self,
        refresh: RefreshFunc,
        *,
        sleep: SleepFunc = anyio.sleep,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            refresh: Coroutine function returning the latest state.
            sleep: Sleep function used between polls.
            logger: Structured logger. Uses the global structlog logger if None.
        """
        self._refresh = refresh
        self._sleep = sleep
        self._logger: FilteringBoundLogger = logger or structlog.get_logger(
            component="poller"
        )
        self._backoff = ExponentialBackoff(
            base=DEFAULT_POLL_INTERVAL, max_delay=MAX_POLL_INTERVAL
        )
        self._consecutive_failures = 0
        self._next_delay = DEFAULT_POLL_INTERVAL
        self._scope: anyio.CancelScope | None = None

    @property
    def running(self) -> bool:
        """Return True while a polling loop is active."""
        return self._scope is not None

    @property
    def consecutive_failures(self) -> int:
        """Return the length of the current failure streak."""
        return self._consecutive_failures

    @property
    def next_delay(self) -> float:
        """Return the wait in seconds before the next scheduled poll."""
        return self._next_delay

    def start(
        self,
        task_group: anyio.abc.TaskGroup,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Start polling, replacing any running loop.

        Args:
            task_group: Task group that hosts the polling loop.
            interval: Nominal seconds between polls.
        """
        self.stop()
        self._backoff = ExponentialBackoff(
            base=interval, max_delay=max(interval, MAX_POLL_INTERVAL)
        )
        self._consecutive_failures = 0
        self._next_delay = interval

        scope = anyio.CancelScope()
        self._scope = scope
        self._logger.info("polling_started", interval=interval)
        task_group.start_soon(self._run, scope)

    def stop(self) -> None:
        """Stop polling. Safe to call when not polling."""
        if self._scope is None:
            return
        self._scope.cancel()
        self._scope = None
        self._logger.info("polling_stopped")

    async def _run(self, scope: anyio.CancelScope) -> None:
        with scope:
            while self._scope is scope:
                await self._sleep(self._next_delay)
                if self._scope is not scope:
                    break
                await self.poll_once()

    async def poll_once(self) -> None:
        """Run a single refresh and update the schedule.

        Never raises; failures only lengthen the next delay.
        """
        try:
            state = await self._refresh()
        except Exception as e:  # noqa: BLE001
            failed = True
            self._logger.warning("poll_failed", error=str(e))
        else:
            failed = state.error is not None

        if failed:
            self._consecutive_failures += 1
        else:
            self._consecutive_failures = 0

        self._next_delay = self._backoff.delay_after_failures(self._consecutive_failures)
        if failed:
            self._logger.debug(
                "poll_backoff",
                consecutive_failures=self._consecutive_failures,
                next_delay=self._next_delay,
            )
