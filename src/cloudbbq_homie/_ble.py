"""Bluetooth LE transport for iBBQ thermometers, built on bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from cloudbbq_homie import _protocol
from cloudbbq_homie.exceptions import (
    BbqAuthenticationError,
    BbqCommandError,
    BbqConnectionError,
    BbqProtocolError,
)
from cloudbbq_homie.models.device import RealTimeData, SettingResult, TemperatureUnit

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


@dataclass(frozen=True, slots=True)
class DiscoveredDevice:
    """A thermometer seen during a scan."""

    address: str
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.address


def _is_thermometer(name: str | None, service_uuids: list[str]) -> bool:
    if _protocol.SERVICE_UUID in (uuid.lower() for uuid in service_uuids):
        return True
    return name in _protocol.DEVICE_NAMES


async def find_devices(scan_duration: float) -> list[DiscoveredDevice]:
    """Scan for *scan_duration* seconds and return every thermometer found."""
    _logger.info("Starting discovery for %.1fs", scan_duration)
    try:
        seen = await BleakScanner.discover(timeout=scan_duration, return_adv=True)
    except BleakError as exc:
        raise BbqConnectionError(f"Bluetooth scan failed: {exc}") from exc

    devices = [
        DiscoveredDevice(address=ble_device.address.upper(), name=adv.local_name or ble_device.name)
        for ble_device, adv in seen.values()
        if _is_thermometer(adv.local_name or ble_device.name, adv.service_uuids)
    ]
    devices.sort(key=lambda device: device.address)
    _logger.info("Found %d thermometer(s): %s", len(devices), ", ".join(d.address for d in devices))
    return devices


class BbqDevice:
    """A connected iBBQ thermometer.

    Usage::

        device = BbqDevice(discovered.address)
        await device.connect()
        await device.authenticate()
        async for data in await device.real_time():
            ...

    The notification iterators end when the Bluetooth link drops.
    """

    def __init__(self, address: str, *, client: BleakClient | None = None) -> None:
        self.address = address
        self._client = client
        self._queues: list[asyncio.Queue[Any]] = []

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self._client is None:
            self._client = BleakClient(self.address, disconnected_callback=self._on_disconnect)
        _logger.info("Connecting to %s", self.address)
        try:
            await self._client.connect()
        except (BleakError, TimeoutError) as exc:
            raise BbqConnectionError(f"Connecting to {self.address} failed: {exc}", address=self.address) from exc

    async def authenticate(self) -> None:
        _logger.info("Authenticating with %s", self.address)
        try:
            await self._require_client().write_gatt_char(
                _protocol.ACCOUNT_AND_VERIFY_UUID,
                _protocol.CREDENTIALS,
                response=True,
            )
        except BleakError as exc:
            raise BbqAuthenticationError(
                f"Authenticating with {self.address} failed: {exc}", address=self.address
            ) from exc
        _logger.info("Authenticated with %s", self.address)

    async def disconnect(self) -> None:
        client = self._client
        if client is None or not client.is_connected:
            return
        try:
            await client.disconnect()
        except BleakError:
            _logger.debug("Disconnect from %s failed", self.address, exc_info=True)

    def _on_disconnect(self, _client: BleakClient) -> None:
        _logger.warning("Lost connection to %s", self.address)
        for queue in self._queues:
            queue.put_nowait(_CLOSED)

    def _require_client(self) -> BleakClient:
        client = self._client
        if client is None or not client.is_connected:
            raise BbqConnectionError(f"{self.address} is not connected", address=self.address)
        return client

    # ------------------------------------------------------------------
    # Notification streams
    # ------------------------------------------------------------------

    async def real_time(self) -> AsyncIterator[RealTimeData]:
        """Subscribe to real-time probe temperatures."""
        queue = await self._subscribe(_protocol.REAL_TIME_DATA_UUID, _protocol.decode_real_time_data)
        return self._drain(queue)

    async def setting_results(self) -> AsyncIterator[SettingResult]:
        """Subscribe to setting results (battery level, silence button, ...)."""
        queue = await self._subscribe(_protocol.SETTING_RESULT_UUID, _protocol.decode_setting_result)
        return self._drain(queue)

    async def _subscribe(self, uuid: str, decode: Callable[[bytes], T]) -> asyncio.Queue[Any]:
        queue: asyncio.Queue[Any] = asyncio.Queue()

        def on_notify(_sender: Any, data: bytearray) -> None:
            payload = bytes(data)
            _logger.debug("Notification %s from %s: %s", uuid, self.address, payload.hex())
            try:
                queue.put_nowait(decode(payload))
            except BbqProtocolError as exc:
                _logger.warning("Dropping undecodable frame from %s: %s", self.address, exc)

        try:
            await self._require_client().start_notify(uuid, on_notify)
        except BleakError as exc:
            raise BbqConnectionError(
                f"Subscribing to {uuid} on {self.address} failed: {exc}", address=self.address
            ) from exc
        self._queues.append(queue)
        return queue

    @staticmethod
    async def _drain(queue: asyncio.Queue[Any]) -> AsyncIterator[Any]:
        while True:
            item = await queue.get()
            if item is _CLOSED:
                return
            yield item

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _send(self, command: str, build: Callable[[], bytes]) -> None:
        try:
            frame = build()
        except ValueError as exc:
            raise BbqCommandError(f"{command} rejected: {exc}", command=command) from exc
        _logger.debug("Sending %s to %s: %s", command, self.address, frame.hex())
        try:
            await self._require_client().write_gatt_char(_protocol.SETTING_DATA_UUID, frame, response=True)
        except (BleakError, BbqConnectionError) as exc:
            raise BbqCommandError(f"{command} failed on {self.address}: {exc}", command=command) from exc

    async def set_temperature_unit(self, unit: TemperatureUnit) -> None:
        await self._send("set_temperature_unit", lambda: _protocol.set_temperature_unit(unit))

    async def silence_alarm(self) -> None:
        await self._send("silence_alarm", _protocol.silence_alarm)

    async def set_target_temp(self, probe_index: int, temperature: float) -> None:
        await self._send("set_target_temp", lambda: _protocol.set_target_temp(probe_index, temperature))

    async def set_target_range(self, probe_index: int, temperature_min: float, temperature_max: float) -> None:
        await self._send(
            "set_target_range",
            lambda: _protocol.set_target_range(probe_index, temperature_min, temperature_max),
        )

    async def remove_target(self, probe_index: int) -> None:
        await self._send("remove_target", lambda: _protocol.remove_target(probe_index))

    async def enable_real_time_data(self, enable: bool) -> None:
        await self._send("enable_real_time_data", lambda: _protocol.enable_real_time_data(enable))

    async def request_battery_level(self) -> None:
        await self._send("request_battery_level", _protocol.request_battery_level)
