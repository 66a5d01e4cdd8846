"""Two-way translation between thermometer events and the Homie property tree.

Device -> tree:
- real-time frames add, update and remove probe nodes
- setting results update the battery node and clear the alarm

Tree -> device:
- writes to settable properties are validated, applied to the target cache
  and forwarded as device commands; the accepted value is returned so the
  property tree can acknowledge it
"""

from __future__ import annotations

import logging
import math
from typing import Any, Protocol

from cloudbbq_homie._constants import (
    PROBE_TEMPERATURE_UNIT,
    PROPERTY_ID_ALARM,
    PROPERTY_ID_DISPLAY_UNIT,
    PROPERTY_ID_PERCENTAGE,
    PROPERTY_ID_TARGET_MODE,
    PROPERTY_ID_TARGET_TEMPERATURE_MAX,
    PROPERTY_ID_TARGET_TEMPERATURE_MIN,
    PROPERTY_ID_TEMPERATURE,
    PROPERTY_ID_VOLTAGE,
    battery_percentage,
)
from cloudbbq_homie._homie import Node, Property
from cloudbbq_homie._protocol import MAX_TEMPERATURE, MIN_TEMPERATURE
from cloudbbq_homie.config import DeviceConfig
from cloudbbq_homie.exceptions import BbqCommandError
from cloudbbq_homie.models.device import (
    BatteryLevel,
    RealTimeData,
    SettingResult,
    SilencePressed,
    TemperatureUnit,
)
from cloudbbq_homie.models.node import NodeId, NodeKind
from cloudbbq_homie.models.target import ProbeTarget, TargetMode
from cloudbbq_homie.state.store import TargetStore

_logger = logging.getLogger(__name__)


class DeviceCommands(Protocol):
    """Commands the mapper sends to a thermometer."""

    async def set_temperature_unit(self, unit: TemperatureUnit) -> None: ...

    async def silence_alarm(self) -> None: ...

    async def set_target_temp(self, probe_index: int, temperature: float) -> None: ...

    async def set_target_range(self, probe_index: int, temperature_min: float, temperature_max: float) -> None: ...

    async def remove_target(self, probe_index: int) -> None: ...


class PropertyTree(Protocol):
    """The subset of :class:`~cloudbbq_homie._homie.HomieDevice` the mapper drives."""

    def has_node(self, node_id: str) -> bool: ...

    async def add_node(self, node: Node) -> None: ...

    async def remove_node(self, node_id: str) -> None: ...

    async def publish_value(self, node_id: str, property_id: str, value: Any) -> None: ...

    async def publish_nonretained_value(self, node_id: str, property_id: str, value: Any) -> None: ...


def battery_node() -> Node:
    return Node(
        str(NodeId.battery()),
        "Battery",
        "Battery level",
        (
            Property.integer(PROPERTY_ID_VOLTAGE, "Voltage", False, True),
            Property.integer(PROPERTY_ID_PERCENTAGE, "Percentage", False, True, "%"),
        ),
    )


def settings_node() -> Node:
    return Node(
        str(NodeId.settings()),
        "Settings",
        "Settings",
        (
            Property.enumeration(PROPERTY_ID_DISPLAY_UNIT, "Unit", True, True, TemperatureUnit.labels()),
            Property.boolean(PROPERTY_ID_ALARM, "Alarm", True, False),
        ),
    )


def probe_node(probe_index: int, device_config: DeviceConfig) -> Node:
    return Node(
        str(NodeId.probe(probe_index)),
        device_config.probe_name(probe_index),
        "Temperature probe",
        (
            Property.float(PROPERTY_ID_TEMPERATURE, "Temperature", False, True, PROBE_TEMPERATURE_UNIT),
            Property.float(
                PROPERTY_ID_TARGET_TEMPERATURE_MIN, "Minimum temperature", True, True, PROBE_TEMPERATURE_UNIT
            ),
            Property.float(
                PROPERTY_ID_TARGET_TEMPERATURE_MAX, "Target/maximum temperature", True, True, PROBE_TEMPERATURE_UNIT
            ),
            Property.enumeration(PROPERTY_ID_TARGET_MODE, "Target mode", True, True, tuple(TargetMode)),
        ),
    )


async def apply_target(device: DeviceCommands, probe_index: int, target: ProbeTarget) -> None:
    """Send the device command matching *target*'s mode."""
    match target.mode:
        case TargetMode.NONE:
            await device.remove_target(probe_index)
        case TargetMode.SINGLE:
            await device.set_target_temp(probe_index, target.temperature_max)
        case TargetMode.RANGE:
            await device.set_target_range(probe_index, target.temperature_min, target.temperature_max)


def parse_bool(value: str) -> bool:
    """Parse a Homie boolean payload (exactly ``true`` or ``false``)."""
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValueError(f"invalid boolean {value!r}")


def parse_temperature(value: str) -> float:
    temperature = float(value)
    if not math.isfinite(temperature):
        raise ValueError(f"temperature must be finite, got {value!r}")
    if not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
        raise ValueError(
            f"temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE} °C, got {value!r}"
        )
    return temperature


class PropertyMapper:
    """Reconciles one thermometer with its Homie device.

    The mapper owns no state of its own beyond the :class:`TargetStore` it is
    handed; it must only be driven from the owning session loop.
    """

    def __init__(
        self,
        *,
        device: DeviceCommands,
        tree: PropertyTree,
        targets: TargetStore,
        device_config: DeviceConfig,
    ) -> None:
        self._device = device
        self._tree = tree
        self._targets = targets
        self._device_config = device_config

    # ------------------------------------------------------------------
    # Device -> property tree
    # ------------------------------------------------------------------

    async def handle_real_time_data(self, data: RealTimeData) -> None:
        _logger.debug("Realtime data: %s", data.probe_temperatures)
        for probe_index, temperature in enumerate(data.probe_temperatures):
            node_id = str(NodeId.probe(probe_index))
            exists = self._tree.has_node(node_id)
            if temperature is not None:
                if not exists:
                    await self.add_probe(probe_index)
                await self._tree.publish_value(node_id, PROPERTY_ID_TEMPERATURE, temperature)
            elif exists:
                _logger.info("Probe %d disconnected", probe_index + 1)
                await self._tree.remove_node(node_id)

    async def add_probe(self, probe_index: int) -> None:
        """Add the node for a probe and restore its cached target."""
        _logger.info("Probe %d connected", probe_index + 1)
        node = probe_node(probe_index, self._device_config)
        await self._tree.add_node(node)

        # The device forgets targets for absent probes, so resend ours.
        target = self._targets.snapshot(probe_index)
        await apply_target(self._device, probe_index, target)
        await self._tree.publish_value(node.id, PROPERTY_ID_TARGET_MODE, target.mode)
        await self._tree.publish_value(node.id, PROPERTY_ID_TARGET_TEMPERATURE_MIN, target.temperature_min)
        await self._tree.publish_value(node.id, PROPERTY_ID_TARGET_TEMPERATURE_MAX, target.temperature_max)

    async def handle_setting_result(self, result: SettingResult) -> None:
        _logger.debug("Setting result: %r", result)
        battery = str(NodeId.battery())
        match result:
            case BatteryLevel(current_voltage=current_voltage, max_voltage=max_voltage):
                await self._tree.publish_value(battery, PROPERTY_ID_VOLTAGE, current_voltage)
                await self._tree.publish_value(
                    battery, PROPERTY_ID_PERCENTAGE, battery_percentage(current_voltage, max_voltage)
                )
            case SilencePressed():
                # Transient event: must not be replayed to new subscribers.
                await self._tree.publish_nonretained_value(str(NodeId.settings()), PROPERTY_ID_ALARM, False)
            case _:
                pass

    # ------------------------------------------------------------------
    # Property tree -> device
    # ------------------------------------------------------------------

    async def handle_write(self, node: NodeId | None, property_id: str, value: str) -> str | None:
        """Apply a remote write, returning the value to acknowledge or ``None``."""
        _logger.debug("Write %s/%s = %r", node, property_id, value)
        try:
            if node == NodeId.settings() and property_id == PROPERTY_ID_DISPLAY_UNIT:
                return await self._write_unit(value)
            if node == NodeId.settings() and property_id == PROPERTY_ID_ALARM:
                return await self._write_alarm(value)
            if node is not None and node.kind == NodeKind.PROBE and node.probe_index is not None:
                return await self._write_target(node.probe_index, property_id, value)
        except ValueError as exc:
            _logger.warning("Rejected write %s/%s = %r: %s", node, property_id, value, exc)
            return None
        except BbqCommandError as exc:
            _logger.error("Device command for %s/%s failed: %s", node, property_id, exc)
            return None

        _logger.warning("Rejected write to unknown property %s/%s", node, property_id)
        return None

    async def _write_unit(self, value: str) -> str:
        unit = TemperatureUnit.from_label(value)
        await self._device.set_temperature_unit(unit)
        return value

    async def _write_alarm(self, value: str) -> str:
        if parse_bool(value):
            raise ValueError("the alarm can only be silenced remotely")
        await self._device.silence_alarm()
        return value

    async def _write_target(self, probe_index: int, property_id: str, value: str) -> str | None:
        if property_id == PROPERTY_ID_TARGET_TEMPERATURE_MIN:
            target = self._targets.set_temperature_min(probe_index, parse_temperature(value))
        elif property_id == PROPERTY_ID_TARGET_TEMPERATURE_MAX:
            target = self._targets.set_temperature_max(probe_index, parse_temperature(value))
        elif property_id == PROPERTY_ID_TARGET_MODE:
            target = self._targets.set_mode(probe_index, TargetMode(value))
        else:
            _logger.warning("Rejected write to unknown probe property %s", property_id)
            return None

        # The cache keeps the new value even if the command fails; the device
        # has no way to query its current target.
        await apply_target(self._device, probe_index, target)
        return value
