"""iBBQ GATT protocol: characteristic UUIDs, command frames and decoders.

All settings commands are 6-byte frames written to the settings
characteristic. Temperatures travel as little-endian tenths of a degree
Celsius.
"""

from __future__ import annotations

import struct

from cloudbbq_homie.exceptions import BbqProtocolError
from cloudbbq_homie.models.device import (
    BatteryLevel,
    RealTimeData,
    SettingResult,
    SilencePressed,
    TemperatureUnit,
    UnknownSettingResult,
)


def _uuid(short: int) -> str:
    return f"0000{short:04x}-0000-1000-8000-00805f9b34fb"


SERVICE_UUID = _uuid(0xFFF0)
SETTING_RESULT_UUID = _uuid(0xFFF1)
ACCOUNT_AND_VERIFY_UUID = _uuid(0xFFF2)
REAL_TIME_DATA_UUID = _uuid(0xFFF4)
SETTING_DATA_UUID = _uuid(0xFFF5)

DEVICE_NAMES: frozenset[str] = frozenset({"iBBQ", "xBBQ"})

CREDENTIALS = bytes([0x21, 0x07, 0x06, 0x05, 0x04, 0x03, 0x02, 0x01, 0xB8, 0x22, 0x00, 0x00, 0x00, 0x00, 0x00])

# Lower and upper bounds the device accepts for a target. A range spanning
# both never alarms, which is how a target is removed.
MIN_TEMPERATURE = -300.0
MAX_TEMPERATURE = 3000.0

NO_PROBE = 0xFFF6

_CMD_SET_TARGET = 0x01
_CMD_SET_UNIT = 0x02
_CMD_SILENCE = 0x04
_CMD_REQUEST = 0x08
_CMD_REAL_TIME = 0x0B

_REQUEST_BATTERY = 0x24

_RESULT_BATTERY = 0x24
_RESULT_SILENCE = 0x04


def _tenths(temperature: float) -> int:
    if not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
        raise ValueError(
            f"temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE} °C, got {temperature}"
        )
    return int(round(temperature * 10))


def _probe(probe_index: int) -> int:
    if not 0 <= probe_index <= 0xFF:
        raise ValueError(f"probe index out of range: {probe_index}")
    return probe_index


def _frame(command: int, argument: int = 0) -> bytes:
    return bytes([command, argument, 0, 0, 0, 0])


def set_target_range(probe_index: int, temperature_min: float, temperature_max: float) -> bytes:
    """Alarm when the probe leaves ``[temperature_min, temperature_max)``."""
    return struct.pack(
        "<BBhh",
        _CMD_SET_TARGET,
        _probe(probe_index),
        _tenths(temperature_min),
        _tenths(temperature_max),
    )


def set_target_temp(probe_index: int, temperature: float) -> bytes:
    """Alarm when the probe reaches *temperature*."""
    return set_target_range(probe_index, MIN_TEMPERATURE, temperature)


def remove_target(probe_index: int) -> bytes:
    return set_target_range(probe_index, MIN_TEMPERATURE, MAX_TEMPERATURE)


def set_temperature_unit(unit: TemperatureUnit) -> bytes:
    return _frame(_CMD_SET_UNIT, int(unit))


def silence_alarm() -> bytes:
    return _frame(_CMD_SILENCE, 0xFF)


def request_battery_level() -> bytes:
    return _frame(_CMD_REQUEST, _REQUEST_BATTERY)


def enable_real_time_data(enable: bool) -> bytes:
    return _frame(_CMD_REAL_TIME, 0x01 if enable else 0x00)


def decode_real_time_data(payload: bytes) -> RealTimeData:
    """Decode a real-time notification: one little-endian u16 per probe."""
    if len(payload) % 2:
        raise BbqProtocolError(f"real-time frame has odd length {len(payload)}: {payload.hex()}")
    temperatures: list[float | None] = []
    for (raw,) in struct.iter_unpack("<H", payload):
        temperatures.append(None if raw == NO_PROBE else raw / 10.0)
    return RealTimeData(probe_temperatures=tuple(temperatures))


def decode_setting_result(payload: bytes) -> SettingResult:
    """Decode a notification from the setting-result characteristic."""
    if not payload:
        raise BbqProtocolError("empty setting result")
    kind = payload[0]
    if kind == _RESULT_BATTERY:
        if len(payload) < 5:
            raise BbqProtocolError(f"battery result too short: {payload.hex()}")
        current_voltage, max_voltage = struct.unpack_from("<HH", payload, 1)
        return BatteryLevel(current_voltage=current_voltage, max_voltage=max_voltage)
    if kind == _RESULT_SILENCE:
        return SilencePressed()
    return UnknownSettingResult(raw=bytes(payload))
