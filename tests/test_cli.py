from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from cloudbbq_homie import __main__ as cli
from cloudbbq_homie.config import BridgeConfig
from cloudbbq_homie.exceptions import NoDevicesFoundError


class _FakeCoordinator:
    instances: list[_FakeCoordinator] = []
    error: BaseException | None = None

    def __init__(self, config: BridgeConfig, *, scan_duration: float) -> None:
        self.config = config
        self.scan_duration = scan_duration
        _FakeCoordinator.instances.append(self)

    async def run(self) -> None:
        if _FakeCoordinator.error is not None:
            raise _FakeCoordinator.error


@pytest.fixture
def coordinator(monkeypatch: pytest.MonkeyPatch) -> type[_FakeCoordinator]:
    _FakeCoordinator.instances = []
    _FakeCoordinator.error = None
    monkeypatch.setattr(cli, "FleetCoordinator", _FakeCoordinator)
    return _FakeCoordinator


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "bridge.toml"
    path.write_text('[mqtt]\nhost = "broker.local"\n', encoding="utf-8")
    return path


def test_runs_fleet_with_loaded_config(coordinator: Any, config_file: Path) -> None:
    assert cli.main(["--config", str(config_file), "--scan-seconds", "2"]) == 0

    (instance,) = coordinator.instances
    assert instance.config.mqtt.host == "broker.local"
    assert instance.scan_duration == 2.0


def test_bbq_error_exits_with_message(
    coordinator: Any, config_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    coordinator.error = NoDevicesFoundError("No devices found")

    assert cli.main(["--config", str(config_file)]) == 1
    assert "error: No devices found" in capsys.readouterr().err


def test_config_error_exits_with_message(
    coordinator: Any, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli.main(["--config", str(tmp_path / "missing.toml")]) == 1
    assert "error: Reading" in capsys.readouterr().err
    assert coordinator.instances == []


def test_interrupt_exits_130(coordinator: Any, config_file: Path) -> None:
    coordinator.error = KeyboardInterrupt()

    assert cli.main(["--config", str(config_file)]) == 130
