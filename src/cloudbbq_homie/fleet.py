"""Discovery and supervision of every thermometer in range."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from cloudbbq_homie._ble import BbqDevice, DiscoveredDevice, find_devices
from cloudbbq_homie._constants import SCAN_DURATION_SECONDS
from cloudbbq_homie.config import BridgeConfig
from cloudbbq_homie.exceptions import BbqConnectionError, NoDevicesFoundError
from cloudbbq_homie.session import Device, DeviceSession, TreeFactory, homie_tree_factory

_logger = logging.getLogger(__name__)

Discover = Callable[[float], Awaitable[list[DiscoveredDevice]]]
DeviceFactory = Callable[[DiscoveredDevice], Device]


def _bbq_device(discovered: DiscoveredDevice) -> Device:
    return BbqDevice(discovered.address)


class FleetCoordinator:
    """Runs one :class:`DeviceSession` per discovered thermometer.

    Sessions run as sibling tasks in a task group: the first session to fail
    cancels the others and its error is re-raised. Sessions are never
    reconnected; recovering from a failure means restarting the process.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        scan_duration: float = SCAN_DURATION_SECONDS,
        discover: Discover = find_devices,
        device_factory: DeviceFactory = _bbq_device,
        tree_factory: TreeFactory | None = None,
    ) -> None:
        self._config = config
        self._scan_duration = scan_duration
        self._discover = discover
        self._device_factory = device_factory
        self._tree_factory = tree_factory or homie_tree_factory(config)
        self.sessions: list[DeviceSession] = []

    async def run(self) -> None:
        discovered = await self._discover(self._scan_duration)
        if not discovered:
            raise NoDevicesFoundError("No devices found")

        self.sessions = await self._connect_all(discovered)
        try:
            async with asyncio.TaskGroup() as group:
                for session in self.sessions:
                    group.create_task(
                        session.run(self._tree_factory(session)),
                        name=f"session-{session.mac_address}",
                    )
        except ExceptionGroup as errors:
            # Surface the first session failure as the process error.
            raise errors.exceptions[0] from errors

    async def _connect_all(self, discovered: list[DiscoveredDevice]) -> list[DeviceSession]:
        sessions: list[DeviceSession] = []
        failures: list[BbqConnectionError] = []
        for candidate in discovered:
            device = self._device_factory(candidate)
            try:
                session = await DeviceSession.connect(device, self._config, bluetooth_name=candidate.name)
            except BbqConnectionError as exc:
                _logger.error("Giving up on %s: %s", candidate.display_name, exc)
                failures.append(exc)
                continue
            sessions.append(session)
        if not sessions:
            raise failures[0]
        return sessions
