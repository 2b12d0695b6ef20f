"""Fixtures wiring a CloudVmController to in-memory collaborators."""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import pytest
from fakes import (
    FakeClock,
    FakeCompute,
    FakeCredentials,
    FakeSpawner,
    RecordingSink,
    Rig,
    RigFactory,
    always_reachable,
)

from cloudvm.cloud import CloudVmController
from cloudvm.config import ConfigManager
from cloudvm.tunnel import TunnelSettings, TunnelSupervisor


@pytest.fixture
def make_rig(config_manager: ConfigManager) -> RigFactory:
    @asynccontextmanager
    async def factory(
        manager: ConfigManager | None = None,
        compute: FakeCompute | None = None,
        probe: Callable[[int], Awaitable[bool]] = always_reachable,
    ) -> AsyncIterator[Rig]:
        compute = compute or FakeCompute()
        credentials = FakeCredentials()
        spawner = FakeSpawner()
        clock = FakeClock()
        sink = RecordingSink()
        tunnel = TunnelSupervisor(
            TunnelSettings(ready_timeout=1.0),
            spawn=spawner,
            probe=always_reachable,
            sleep=clock.sleep,
        )
        controller = CloudVmController(
            manager or config_manager,
            compute=compute,
            credentials=credentials,
            tunnel=tunnel,
            sinks=[sink],
            probe=probe,
            clock=clock.time,
            sleep=clock.sleep,
        )
        async with controller:
            yield Rig(controller, compute, credentials, spawner, clock, sink)

    return factory
