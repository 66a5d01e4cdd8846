"""Per-probe target temperature models."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict


class TargetMode(enum.StrEnum):
    """How the alarm for a probe is triggered.

    Values double as the labels of the Homie ``mode`` enum property, so
    ``TargetMode(label)`` parses and ``str(mode)`` formats.
    """

    NONE = "None"
    SINGLE = "Maximum only"
    RANGE = "Range"


class ProbeTarget(BaseModel):
    """The target mode and temperatures for a single probe.

    When ``mode`` is :attr:`TargetMode.NONE` the temperatures are ignored by the
    device but kept, so switching back to a range reuses them.
    """

    model_config = ConfigDict(validate_assignment=True)

    mode: TargetMode = TargetMode.NONE
    temperature_min: float = 0.0
    temperature_max: float = 0.0
