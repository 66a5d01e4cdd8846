"""In-memory cache of per-probe target settings.

The thermometer forgets a probe's target as soon as the probe goes out of
range, so the bridge remembers it here and restores it when the probe comes
back. Entries are never evicted; the device only has a handful of probe slots.
"""

from __future__ import annotations

from collections.abc import Iterator

from cloudbbq_homie.models.target import ProbeTarget, TargetMode


class TargetStore:
    """Map from probe index to :class:`ProbeTarget`.

    The store is owned by a single session loop, which is the only caller, so
    no locking is needed. Callers that hand a target to I/O must take a
    :meth:`snapshot` first so later writes cannot change it mid-flight.
    """

    def __init__(self) -> None:
        self._targets: dict[int, ProbeTarget] = {}

    def get_or_create(self, probe_index: int) -> ProbeTarget:
        """Return the live entry for *probe_index*, creating a default one."""
        if probe_index < 0:
            raise ValueError(f"probe index must be non-negative, got {probe_index}")
        target = self._targets.get(probe_index)
        if target is None:
            target = ProbeTarget()
            self._targets[probe_index] = target
        return target

    def snapshot(self, probe_index: int) -> ProbeTarget:
        """Return an independent copy of the entry for *probe_index*."""
        return self.get_or_create(probe_index).model_copy()

    def set_mode(self, probe_index: int, mode: TargetMode) -> ProbeTarget:
        target = self.get_or_create(probe_index)
        target.mode = mode
        return target.model_copy()

    def set_temperature_min(self, probe_index: int, temperature: float) -> ProbeTarget:
        target = self.get_or_create(probe_index)
        target.temperature_min = temperature
        return target.model_copy()

    def set_temperature_max(self, probe_index: int, temperature: float) -> ProbeTarget:
        target = self.get_or_create(probe_index)
        target.temperature_max = temperature
        return target.model_copy()

    def __contains__(self, probe_index: object) -> bool:
        return probe_index in self._targets

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._targets))

    def __len__(self) -> int:
        return len(self._targets)
