"""One authenticated thermometer connection and its Homie device."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

from cloudbbq_homie._constants import PROPERTY_ID_DISPLAY_UNIT
from cloudbbq_homie._homie import HomieDevice
from cloudbbq_homie.config import BridgeConfig, DeviceConfig
from cloudbbq_homie.exceptions import HomieError
from cloudbbq_homie.mapper import DeviceCommands, PropertyMapper, PropertyTree, battery_node, settings_node
from cloudbbq_homie.models.device import RealTimeData, SettingResult, TemperatureUnit
from cloudbbq_homie.models.node import NodeId
from cloudbbq_homie.state.events import WriteRequest
from cloudbbq_homie.state.store import TargetStore

_logger = logging.getLogger(__name__)

DEFAULT_UNIT = TemperatureUnit.CELSIUS


class Device(DeviceCommands, Protocol):
    """Everything a session needs from a connected thermometer."""

    address: str

    async def connect(self) -> None: ...

    async def authenticate(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def real_time(self) -> AsyncIterator[RealTimeData]: ...

    async def setting_results(self) -> AsyncIterator[SettingResult]: ...

    async def enable_real_time_data(self, enable: bool) -> None: ...

    async def request_battery_level(self) -> None: ...


class SessionTree(PropertyTree, Protocol):
    """A property tree with a lifecycle, as provided by :class:`HomieDevice`."""

    def set_update_callback(self, callback: Callable[[str, str, str], Awaitable[str | None]]) -> None: ...

    async def start(self) -> None: ...

    async def ready(self) -> None: ...

    async def wait_terminated(self) -> Any: ...

    async def stop(self) -> None: ...


TreeFactory = Callable[["DeviceSession"], SessionTree]


class SessionState(enum.StrEnum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ADVERTISING = "advertising"
    RUNNING = "running"
    TERMINATED = "terminated"


def device_id_suffix(mac_address: str) -> str:
    return mac_address.replace(":", "").lower()


def homie_tree_factory(config: BridgeConfig) -> TreeFactory:
    """Build a :class:`HomieDevice` for each session from *config*."""

    def factory(session: DeviceSession) -> SessionTree:
        suffix = device_id_suffix(session.mac_address)
        return HomieDevice(
            device_base=f"{config.homie.prefix}/{config.homie.device_id_prefix}-{suffix}",
            name=session.name,
            mqtt_config=config.mqtt,
            client_id=config.mqtt.client_id(suffix),
        )

    return factory


class DeviceSession:
    """Bridges one thermometer to one Homie device.

    Create with :meth:`connect`, then :meth:`run` until the device goes away
    or the broker connection fails. The session loop is the only code that
    touches the target cache: remote writes are queued onto it as
    :class:`WriteRequest` messages and applied between device events.
    """

    def __init__(
        self,
        *,
        mac_address: str,
        name: str,
        device_config: DeviceConfig,
        device: Device,
    ) -> None:
        self.mac_address = mac_address
        self.name = name
        self.device_config = device_config
        self.device = device
        self.targets = TargetStore()
        self.state = SessionState.ADVERTISING
        self._writes: asyncio.Queue[WriteRequest] = asyncio.Queue()

    @classmethod
    async def connect(
        cls,
        device: Device,
        config: BridgeConfig,
        *,
        bluetooth_name: str | None = None,
    ) -> DeviceSession:
        """Connect to and authenticate with *device*.

        Connection and authentication errors propagate; they are fatal for
        this device only.
        """
        _logger.debug("%s: %s", device.address, SessionState.CONNECTING)
        await device.connect()
        _logger.debug("%s: %s", device.address, SessionState.AUTHENTICATING)
        await device.authenticate()

        device_config = config.device_config(device.address)
        # Prefer the configured name over the Bluetooth one.
        name = device_config.name or bluetooth_name or device.address
        return cls(mac_address=device.address, name=name, device_config=device_config, device=device)

    async def run(self, tree: SessionTree) -> None:
        """Advertise the device on *tree* and reconcile until it terminates.

        Returns when either device stream ends; raises if the property tree
        fails or a device command needed to restore state fails.
        """
        try:
            mapper, real_time, setting_results = await self._advertise(tree)
            self.state = SessionState.RUNNING
            _logger.info("Session for %s (%s) running", self.mac_address, self.name)
            await self._run_loop(tree, mapper, real_time, setting_results)
        finally:
            self.state = SessionState.TERMINATED
            self._reject_pending_writes()
            try:
                await tree.stop()
            finally:
                await self.device.disconnect()
            _logger.info("Session for %s terminated", self.mac_address)

    async def handle_update(self, node_id: str, property_id: str, value: str) -> str | None:
        """Update callback for the property tree.

        Queues the write for the session loop and waits for its verdict.
        """
        _logger.debug("%s: %s/%s = %s", self.mac_address, node_id, property_id, value)
        if self.state == SessionState.TERMINATED:
            return None
        request = WriteRequest(node=NodeId.parse(node_id), property_id=property_id, value=value)
        await self._writes.put(request)
        return await request.result

    async def _advertise(
        self, tree: SessionTree
    ) -> tuple[PropertyMapper, AsyncIterator[RealTimeData], AsyncIterator[SettingResult]]:
        tree.set_update_callback(self.handle_update)
        await tree.start()
        await tree.ready()

        await tree.add_node(battery_node())
        await tree.add_node(settings_node())
        await self.device.set_temperature_unit(DEFAULT_UNIT)
        await tree.publish_value(str(NodeId.settings()), PROPERTY_ID_DISPLAY_UNIT, DEFAULT_UNIT.label)

        setting_results = await self.device.setting_results()
        real_time = await self.device.real_time()
        await self.device.enable_real_time_data(True)
        # Initial battery reading; later ones arrive when the device pushes them.
        await self.device.request_battery_level()

        mapper = PropertyMapper(
            device=self.device,
            tree=tree,
            targets=self.targets,
            device_config=self.device_config,
        )
        return mapper, real_time, setting_results

    async def _run_loop(
        self,
        tree: SessionTree,
        mapper: PropertyMapper,
        real_time: AsyncIterator[RealTimeData],
        setting_results: AsyncIterator[SettingResult],
    ) -> None:
        sources: dict[str, Callable[[], Awaitable[Any]]] = {
            "terminated": tree.wait_terminated,
            "real_time": lambda: anext(real_time),
            "setting_result": lambda: anext(setting_results),
            "write": self._writes.get,
        }
        waiting = {name: asyncio.ensure_future(next_event()) for name, next_event in sources.items()}
        try:
            while True:
                await asyncio.wait(waiting.values(), return_when=asyncio.FIRST_COMPLETED)
                for name, task in list(waiting.items()):
                    if not task.done():
                        continue
                    try:
                        event = task.result()
                    except StopAsyncIteration:
                        _logger.info("%s stream for %s ended", name, self.mac_address)
                        return
                    if name == "terminated":
                        raise HomieError(f"Property tree for {self.mac_address} terminated")
                    # Fully reconcile one event before asking its source for the next.
                    await self._dispatch(mapper, name, event)
                    waiting[name] = asyncio.ensure_future(sources[name]())
        finally:
            for task in waiting.values():
                task.cancel()
            await asyncio.gather(*waiting.values(), return_exceptions=True)
            write = waiting["write"]
            if write.done() and not write.cancelled() and write.exception() is None:
                # Dequeued in the same batch as the failing event, never dispatched.
                write.result().resolve(None)

    async def _dispatch(self, mapper: PropertyMapper, name: str, event: Any) -> None:
        if name == "real_time":
            await mapper.handle_real_time_data(event)
        elif name == "setting_result":
            await mapper.handle_setting_result(event)
        elif name == "write":
            request: WriteRequest = event
            accepted: str | None = None
            try:
                accepted = await mapper.handle_write(request.node, request.property_id, request.value)
            finally:
                request.resolve(accepted)

    def _reject_pending_writes(self) -> None:
        while not self._writes.empty():
            self._writes.get_nowait().resolve(None)
