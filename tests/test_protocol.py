from __future__ import annotations

import struct

import pytest

from cloudbbq_homie import _protocol
from cloudbbq_homie.exceptions import BbqProtocolError
from cloudbbq_homie.models.device import BatteryLevel, SilencePressed, TemperatureUnit, UnknownSettingResult


def test_characteristic_uuids_use_the_bluetooth_base() -> None:
    assert _protocol.SERVICE_UUID == "0000fff0-0000-1000-8000-00805f9b34fb"
    assert _protocol.REAL_TIME_DATA_UUID == "0000fff4-0000-1000-8000-00805f9b34fb"


def test_set_target_range_frame() -> None:
    assert _protocol.set_target_range(1, 50.0, 60.5) == bytes.fromhex("0101f4015d02")


def test_set_target_temp_uses_lowest_minimum() -> None:
    frame = _protocol.set_target_temp(0, 70.0)

    assert frame == struct.pack("<BBhh", 0x01, 0, -3000, 700)


def test_remove_target_spans_the_full_range() -> None:
    assert _protocol.remove_target(2) == struct.pack("<BBhh", 0x01, 2, -3000, 30000)


@pytest.mark.parametrize("temperature", [3000.1, -300.1, float("nan")])
def test_out_of_range_target_is_rejected(temperature: float) -> None:
    with pytest.raises(ValueError):
        _protocol.set_target_range(0, 0.0, temperature)


def test_fixed_command_frames() -> None:
    assert _protocol.set_temperature_unit(TemperatureUnit.CELSIUS) == bytes([0x02, 0x00, 0, 0, 0, 0])
    assert _protocol.set_temperature_unit(TemperatureUnit.FAHRENHEIT) == bytes([0x02, 0x01, 0, 0, 0, 0])
    assert _protocol.silence_alarm() == bytes([0x04, 0xFF, 0, 0, 0, 0])
    assert _protocol.request_battery_level() == bytes([0x08, 0x24, 0, 0, 0, 0])
    assert _protocol.enable_real_time_data(True) == bytes([0x0B, 0x01, 0, 0, 0, 0])
    assert _protocol.enable_real_time_data(False) == bytes([0x0B, 0x00, 0, 0, 0, 0])


def test_decode_real_time_data() -> None:
    data = _protocol.decode_real_time_data(bytes.fromhex("d700f6ff2c01f6ff"))

    assert data.probe_temperatures == (21.5, None, 30.0, None)


def test_decode_real_time_data_rejects_odd_length() -> None:
    with pytest.raises(BbqProtocolError):
        _protocol.decode_real_time_data(b"\xd7\x00\x01")


def test_decode_battery_level() -> None:
    result = _protocol.decode_setting_result(bytes([0x24]) + struct.pack("<HH", 310, 400))

    assert result == BatteryLevel(current_voltage=310, max_voltage=400)


def test_decode_silence_pressed() -> None:
    assert _protocol.decode_setting_result(bytes([0x04, 0xFF, 0, 0, 0, 0])) == SilencePressed()


def test_decode_unknown_setting_result_keeps_raw_bytes() -> None:
    result = _protocol.decode_setting_result(bytes([0x01, 0x02]))

    assert result == UnknownSettingResult(raw=b"\x01\x02")


@pytest.mark.parametrize("payload", [b"", b"\x24\x01\x02"])
def test_decode_malformed_setting_result(payload: bytes) -> None:
    with pytest.raises(BbqProtocolError):
        _protocol.decode_setting_result(payload)
