from __future__ import annotations

import asyncio

import pytest
from fakes import FakeDevice, FakeTree, wait_for

from cloudbbq_homie.config import BridgeConfig, DeviceConfig
from cloudbbq_homie.exceptions import BbqAuthenticationError, BbqCommandError, HomieError
from cloudbbq_homie.models.device import BatteryLevel, TemperatureUnit
from cloudbbq_homie.models.target import TargetMode
from cloudbbq_homie.session import DeviceSession, SessionState, device_id_suffix, homie_tree_factory

CONFIG = BridgeConfig.from_toml(
    """
    [device."AA:BB:CC:DD:EE:FF"]
    name = "Smoker"
    probe_names = ["Brisket"]
    """
)


def _session(device: FakeDevice) -> DeviceSession:
    return DeviceSession(
        mac_address=device.address,
        name="Smoker",
        device_config=CONFIG.device_config(device.address),
        device=device,
    )


@pytest.mark.asyncio
async def test_connect_authenticates_and_prefers_configured_name() -> None:
    device = FakeDevice("AA:BB:CC:DD:EE:FF")

    session = await DeviceSession.connect(device, CONFIG, bluetooth_name="iBBQ")

    assert device.connected and device.authenticated
    assert session.name == "Smoker"
    assert session.device_config == DeviceConfig(name="Smoker", probe_names=("Brisket",))
    assert session.state is SessionState.ADVERTISING


@pytest.mark.asyncio
async def test_connect_falls_back_to_bluetooth_name_then_address() -> None:
    named = await DeviceSession.connect(FakeDevice("11:22:33:44:55:66"), CONFIG, bluetooth_name="iBBQ")
    unnamed = await DeviceSession.connect(FakeDevice("11:22:33:44:55:66"), CONFIG)

    assert named.name == "iBBQ"
    assert unnamed.name == "11:22:33:44:55:66"


@pytest.mark.asyncio
async def test_connect_failure_propagates() -> None:
    device = FakeDevice(connect_error=BbqAuthenticationError("bad credentials"))

    with pytest.raises(BbqAuthenticationError):
        await DeviceSession.connect(device, CONFIG)


@pytest.mark.asyncio
async def test_run_advertises_then_reconciles_until_device_goes_away() -> None:
    device = FakeDevice()
    tree = FakeTree()
    session = _session(device)

    task = asyncio.create_task(session.run(tree))
    await wait_for(lambda: session.state is SessionState.RUNNING)

    assert tree.started and tree.is_ready
    assert set(tree.nodes) == {"battery", "settings"}
    assert tree.values[("settings", "unit")] == "ºC"
    assert device.commands == [
        ("set_temperature_unit", TemperatureUnit.CELSIUS),
        ("enable_real_time_data", True),
        ("request_battery_level",),
    ]

    device.push_setting(BatteryLevel(current_voltage=310, max_voltage=400))
    device.push_real_time(21.5, None)
    await wait_for(lambda: ("probe0", "temperature") in tree.values)

    assert tree.values[("battery", "percentage")] == 77
    assert tree.nodes["probe0"].name == "Brisket"

    device.close()
    await asyncio.wait_for(task, 1.0)

    assert session.state is SessionState.TERMINATED
    assert tree.stopped
    assert device.disconnected


@pytest.mark.asyncio
async def test_remote_writes_are_applied_by_the_session_loop() -> None:
    device = FakeDevice()
    tree = FakeTree()
    session = _session(device)
    task = asyncio.create_task(session.run(tree))
    await wait_for(lambda: session.state is SessionState.RUNNING)
    assert tree.callback is not None
    device.commands.clear()

    assert await tree.callback("probe0", "mode", "Range") == "Range"
    assert await tree.callback("probe0", "target_max", "80") == "80"
    assert await tree.callback("probe0", "target_max", "warm") is None
    assert await tree.callback("bogus", "mode", "Range") is None

    assert session.targets.snapshot(0).mode is TargetMode.RANGE
    assert session.targets.snapshot(0).temperature_max == 80.0
    assert device.commands == [("set_target_range", 0, 0.0, 0.0), ("set_target_range", 0, 0.0, 80.0)]

    device.close()
    await asyncio.wait_for(task, 1.0)


@pytest.mark.asyncio
async def test_cached_target_is_restored_when_probe_appears() -> None:
    device = FakeDevice()
    tree = FakeTree()
    session = _session(device)
    task = asyncio.create_task(session.run(tree))
    await wait_for(lambda: session.state is SessionState.RUNNING)
    assert tree.callback is not None

    await tree.callback("probe1", "mode", "Maximum only")
    await tree.callback("probe1", "target_max", "65")
    device.commands.clear()

    device.push_real_time(None, 40.0)
    await wait_for(lambda: ("probe1", "temperature") in tree.values)

    assert device.commands == [("set_target_temp", 1, 65.0)]
    assert tree.values[("probe1", "mode")] == TargetMode.SINGLE
    assert tree.values[("probe1", "target_max")] == 65.0

    device.close()
    await asyncio.wait_for(task, 1.0)


@pytest.mark.asyncio
async def test_tree_termination_ends_session_with_error() -> None:
    device = FakeDevice()
    tree = FakeTree()
    session = _session(device)
    task = asyncio.create_task(session.run(tree))
    await wait_for(lambda: session.state is SessionState.RUNNING)

    tree.terminate()

    with pytest.raises(HomieError):
        await asyncio.wait_for(task, 1.0)
    assert session.state is SessionState.TERMINATED
    assert tree.stopped
    assert device.disconnected
    assert await session.handle_update("probe0", "mode", "Range") is None


@pytest.mark.asyncio
async def test_write_queued_alongside_a_fatal_event_is_rejected() -> None:
    device = FakeDevice()
    tree = FakeTree()
    session = _session(device)
    task = asyncio.create_task(session.run(tree))
    await wait_for(lambda: session.state is SessionState.RUNNING)
    assert tree.callback is not None
    device.command_error = BbqCommandError("link lost", command="remove_target")

    device.push_real_time(20.0)
    write = asyncio.create_task(tree.callback("settings", "alarm", "false"))

    with pytest.raises(BbqCommandError):
        await asyncio.wait_for(task, 1.0)
    assert await asyncio.wait_for(write, 1.0) is None


@pytest.mark.asyncio
async def test_failed_setup_command_is_fatal() -> None:
    device = FakeDevice()
    device.command_error = BbqCommandError("link lost", command="set_temperature_unit")
    tree = FakeTree()
    session = _session(device)

    with pytest.raises(BbqCommandError):
        await session.run(tree)

    assert session.state is SessionState.TERMINATED
    assert tree.stopped
    assert device.disconnected


def test_homie_tree_factory_derives_topics_from_mac() -> None:
    config = BridgeConfig.from_toml('[homie]\nprefix = "devices"\n[mqtt]\nclient_prefix = "bbq"\n')
    session = _session(FakeDevice("AA:BB:CC:DD:EE:FF"))

    tree = homie_tree_factory(config)(session)

    assert device_id_suffix("AA:BB:CC:DD:EE:FF") == "aabbccddeeff"
    assert tree.device_base == "devices/cloudbbq-aabbccddeeff"  # type: ignore[attr-defined]
    assert tree.name == "Smoker"  # type: ignore[attr-defined]
