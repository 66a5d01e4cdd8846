"""Messages passed from the Homie update callback into a session loop."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from cloudbbq_homie.models.node import NodeId


@dataclass(slots=True)
class WriteRequest:
    """A remote write waiting to be reconciled by the session loop.

    ``node`` is ``None`` when the raw node id did not parse; such writes are
    still routed through the loop so that rejection is handled in one place.
    The loop resolves ``result`` with the value to acknowledge, or ``None``
    to reject the write.
    """

    node: NodeId | None
    property_id: str
    value: str
    result: asyncio.Future[str | None] = field(
        default_factory=lambda: asyncio.get_running_loop().create_future(),
    )

    def resolve(self, accepted: str | None) -> None:
        if not self.result.done():
            self.result.set_result(accepted)
