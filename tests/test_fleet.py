from __future__ import annotations

import pytest
from fakes import FakeDevice, FakeTree

from cloudbbq_homie._ble import DiscoveredDevice
from cloudbbq_homie.config import BridgeConfig
from cloudbbq_homie.exceptions import BbqConnectionError, HomieError, NoDevicesFoundError
from cloudbbq_homie.fleet import FleetCoordinator
from cloudbbq_homie.session import DeviceSession

FIRST = DiscoveredDevice(address="AA:BB:CC:DD:EE:01", name="iBBQ")
SECOND = DiscoveredDevice(address="AA:BB:CC:DD:EE:02", name=None)


class _Harness:
    def __init__(self, discovered: list[DiscoveredDevice]) -> None:
        self.discovered = discovered
        self.scan_durations: list[float] = []
        self.devices: dict[str, FakeDevice] = {}
        self.trees: dict[str, FakeTree] = {}
        self.connect_errors: dict[str, Exception] = {}
        self.start_errors: dict[str, Exception] = {}
        self.closed: set[str] = set()

    async def discover(self, duration: float) -> list[DiscoveredDevice]:
        self.scan_durations.append(duration)
        return self.discovered

    def device_factory(self, discovered: DiscoveredDevice) -> FakeDevice:
        device = FakeDevice(discovered.address, connect_error=self.connect_errors.get(discovered.address))
        if discovered.address in self.closed:
            device.close()
        self.devices[discovered.address] = device
        return device

    def tree_factory(self, session: DeviceSession) -> FakeTree:
        tree = FakeTree(start_error=self.start_errors.get(session.mac_address))
        self.trees[session.mac_address] = tree
        return tree

    def coordinator(self) -> FleetCoordinator:
        return FleetCoordinator(
            BridgeConfig(),
            scan_duration=1.5,
            discover=self.discover,
            device_factory=self.device_factory,
            tree_factory=self.tree_factory,
        )


@pytest.mark.asyncio
async def test_no_devices_found() -> None:
    harness = _Harness([])

    with pytest.raises(NoDevicesFoundError):
        await harness.coordinator().run()
    assert harness.scan_durations == [1.5]


@pytest.mark.asyncio
async def test_runs_one_session_per_device_until_all_end() -> None:
    harness = _Harness([FIRST, SECOND])
    harness.closed = {FIRST.address, SECOND.address}
    coordinator = harness.coordinator()

    await coordinator.run()

    assert [session.mac_address for session in coordinator.sessions] == [FIRST.address, SECOND.address]
    assert [session.name for session in coordinator.sessions] == ["iBBQ", SECOND.address]
    assert all(tree.started and tree.stopped for tree in harness.trees.values())
    assert all(device.disconnected for device in harness.devices.values())


@pytest.mark.asyncio
async def test_device_that_fails_to_connect_is_skipped() -> None:
    harness = _Harness([FIRST, SECOND])
    harness.connect_errors = {FIRST.address: BbqConnectionError("out of range")}
    harness.closed = {SECOND.address}
    coordinator = harness.coordinator()

    await coordinator.run()

    assert [session.mac_address for session in coordinator.sessions] == [SECOND.address]
    assert set(harness.trees) == {SECOND.address}


@pytest.mark.asyncio
async def test_all_devices_failing_to_connect_is_fatal() -> None:
    harness = _Harness([FIRST, SECOND])
    harness.connect_errors = {
        FIRST.address: BbqConnectionError("out of range"),
        SECOND.address: BbqConnectionError("busy"),
    }

    with pytest.raises(BbqConnectionError, match="out of range"):
        await harness.coordinator().run()


@pytest.mark.asyncio
async def test_first_session_failure_stops_the_fleet() -> None:
    harness = _Harness([FIRST, SECOND])
    harness.start_errors = {FIRST.address: HomieError("broker refused")}

    with pytest.raises(HomieError, match="broker refused"):
        await harness.coordinator().run()

    # The healthy session is cancelled and still cleans up.
    assert harness.trees[SECOND.address].stopped
    assert harness.devices[SECOND.address].disconnected
