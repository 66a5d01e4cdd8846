"""cloudbbq-homie - Bridge iBBQ Bluetooth thermometers to MQTT using the Homie convention."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cloudbbq-homie")
except PackageNotFoundError:
    __version__ = "0+local"
from cloudbbq_homie.config import BridgeConfig, DeviceConfig, HomieConfig, MqttConfig
from cloudbbq_homie.exceptions import (
    BbqAuthenticationError,
    BbqCommandError,
    BbqConfigError,
    BbqConnectionError,
    BbqError,
    BbqProtocolError,
    HomieError,
    NoDevicesFoundError,
)
from cloudbbq_homie.fleet import FleetCoordinator
from cloudbbq_homie.models import NodeId, ProbeTarget, TargetMode, TemperatureUnit
from cloudbbq_homie.session import DeviceSession, SessionState

__all__ = [
    "__version__",
    "BbqAuthenticationError",
    "BbqCommandError",
    "BbqConfigError",
    "BbqConnectionError",
    "BbqError",
    "BbqProtocolError",
    "BridgeConfig",
    "DeviceConfig",
    "DeviceSession",
    "FleetCoordinator",
    "HomieConfig",
    "HomieError",
    "MqttConfig",
    "NoDevicesFoundError",
    "NodeId",
    "ProbeTarget",
    "SessionState",
    "TargetMode",
    "TemperatureUnit",
]
