"""Typed events and enums exchanged with the thermometer.

The Bluetooth adapter decodes raw notifications into these models; the
reconciliation layer only ever sees the typed form.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field

_UNIT_LABELS: dict[int, str] = {0: "ºC", 1: "ºF"}


class TemperatureUnit(enum.IntEnum):
    """Display unit of the thermometer's own screen.

    Values are the byte sent in the *set unit* command.
    """

    CELSIUS = 0
    FAHRENHEIT = 1

    @property
    def label(self) -> str:
        """Label used for the unit on the Homie ``settings/unit`` property."""
        return _UNIT_LABELS[self.value]

    @classmethod
    def from_label(cls, label: str) -> TemperatureUnit:
        """Parse a Homie unit label.

        Raises :class:`ValueError` for anything other than the two known labels.
        """
        for value, candidate in _UNIT_LABELS.items():
            if candidate == label:
                return cls(value)
        raise ValueError(f"unknown temperature unit label {label!r}")

    @classmethod
    def labels(cls) -> tuple[str, ...]:
        return tuple(member.label for member in cls)


class RealTimeData(BaseModel):
    """One real-time telemetry frame.

    ``probe_temperatures`` has one slot per physical probe, in probe order;
    ``None`` means no probe is plugged into that slot.
    """

    model_config = ConfigDict(frozen=True)

    probe_temperatures: tuple[float | None, ...] = ()


class BatteryLevel(BaseModel):
    """Response to a battery level request."""

    model_config = ConfigDict(frozen=True)

    current_voltage: int = Field(ge=0)
    max_voltage: int = Field(ge=0)


class SilencePressed(BaseModel):
    """The alarm was silenced with the button on the device."""

    model_config = ConfigDict(frozen=True)


class UnknownSettingResult(BaseModel):
    """Any setting result this package does not interpret."""

    model_config = ConfigDict(frozen=True)

    raw: bytes = b""


SettingResult = BatteryLevel | SilencePressed | UnknownSettingResult
