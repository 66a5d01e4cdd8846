"""Custom exception hierarchy for cloudbbq-homie."""

from __future__ import annotations


class BbqError(Exception):
    """Base exception for all cloudbbq-homie errors."""


class BbqConfigError(BbqError):
    """Invalid, missing or unreadable configuration."""


class BbqConnectionError(BbqError):
    """Bluetooth-level failure (device unreachable, link dropped)."""

    def __init__(self, message: str, *, address: str = "") -> None:
        self.address = address
        super().__init__(message)


class BbqAuthenticationError(BbqConnectionError):
    """The credential handshake with the thermometer failed."""


class BbqCommandError(BbqError):
    """A device command was rejected or could not be sent."""

    def __init__(self, message: str, *, command: str = "") -> None:
        self.command = command
        super().__init__(message)


class BbqProtocolError(BbqError):
    """A frame received from the thermometer could not be decoded."""


class HomieError(BbqError):
    """MQTT-level failure of the Homie property tree.

    Fatal to the owning device session: the broker connection was refused,
    lost, or a publish could not be queued.
    """


class NoDevicesFoundError(BbqError):
    """Discovery finished without finding any thermometer."""
