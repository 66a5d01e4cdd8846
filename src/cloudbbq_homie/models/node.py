"""Structured identifiers for Homie nodes."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from cloudbbq_homie._constants import NODE_ID_BATTERY, NODE_ID_PROBE_PREFIX, NODE_ID_SETTINGS


class NodeKind(enum.StrEnum):
    BATTERY = "battery"
    SETTINGS = "settings"
    PROBE = "probe"


@dataclass(frozen=True, slots=True)
class NodeId:
    """A parsed node identifier.

    ``probe_index`` is set only for :attr:`NodeKind.PROBE` nodes and is
    zero-based, so ``probe0`` is the first probe.
    """

    kind: NodeKind
    probe_index: int | None = None

    @classmethod
    def battery(cls) -> NodeId:
        return cls(NodeKind.BATTERY)

    @classmethod
    def settings(cls) -> NodeId:
        return cls(NodeKind.SETTINGS)

    @classmethod
    def probe(cls, probe_index: int) -> NodeId:
        if probe_index < 0:
            raise ValueError(f"probe index must be non-negative, got {probe_index}")
        return cls(NodeKind.PROBE, probe_index)

    @classmethod
    def parse(cls, node_id: str) -> NodeId | None:
        """Parse a Homie node id, returning ``None`` for unknown ids."""
        if node_id == NODE_ID_BATTERY:
            return cls.battery()
        if node_id == NODE_ID_SETTINGS:
            return cls.settings()
        suffix = node_id.removeprefix(NODE_ID_PROBE_PREFIX)
        if suffix == node_id or not suffix.isdigit() or not suffix.isascii():
            return None
        return cls.probe(int(suffix))

    def __str__(self) -> str:
        if self.kind == NodeKind.PROBE:
            return f"{NODE_ID_PROBE_PREFIX}{self.probe_index}"
        return self.kind.value
