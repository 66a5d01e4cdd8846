"""Typed models shared between the device adapter, mapper and session."""

from cloudbbq_homie.models.device import (
    BatteryLevel,
    RealTimeData,
    SettingResult,
    SilencePressed,
    TemperatureUnit,
    UnknownSettingResult,
)
from cloudbbq_homie.models.node import NodeId, NodeKind
from cloudbbq_homie.models.target import ProbeTarget, TargetMode

__all__ = [
    "BatteryLevel",
    "NodeId",
    "NodeKind",
    "ProbeTarget",
    "RealTimeData",
    "SettingResult",
    "SilencePressed",
    "TargetMode",
    "TemperatureUnit",
    "UnknownSettingResult",
]
