"""Bridge configuration for cloudbbq-homie.

The configuration lives in a TOML file::

    [mqtt]
    host = "localhost"
    port = 1883

    [homie]
    prefix = "homie"

    [device."AA:BB:CC:DD:EE:FF"]
    name = "Smoker"
    probe_names = ["Brisket", "Ambient"]

Every section and key is optional; an empty file gives the defaults below.
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cloudbbq_homie._constants import CONFIG_ENV_VAR, CONFIG_FILENAME
from cloudbbq_homie.exceptions import BbqConfigError

DEFAULT_HOST = "test.mosquitto.org"
DEFAULT_PORT = 1883
DEFAULT_MQTT_CLIENT_PREFIX = "cloudbbq"
DEFAULT_MQTT_PREFIX = "homie"
DEFAULT_DEVICE_ID_PREFIX = "cloudbbq"

_MAC_RE = re.compile(r"^[0-9A-Fa-f]{2}([:-]?)[0-9A-Fa-f]{2}(?:\1[0-9A-Fa-f]{2}){4}$")


def normalize_mac(value: str) -> str:
    """Return *value* as an upper-case, colon separated MAC address.

    Raises :class:`ValueError` if *value* is not a MAC address.
    """
    stripped = value.strip()
    if not _MAC_RE.match(stripped):
        raise ValueError(f"invalid MAC address {value!r}")
    digits = stripped.replace(":", "").replace("-", "").upper()
    return ":".join(digits[i : i + 2] for i in range(0, 12, 2))


class _ConfigSection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)


class MqttConfig(_ConfigSection):
    """MQTT broker connection settings.

    Parameters
    ----------
    host : str
        Broker host name.
    port : int
        Broker port.
    use_tls : bool
        Connect with TLS, trusting the platform certificate store.
    username, password : str or None
        Broker credentials. Only used when both are set.
    client_prefix : str
        Prefix of the MQTT client id; the device MAC is appended.
    """

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, gt=0, lt=65536)
    use_tls: bool = False
    username: str | None = None
    password: str | None = None
    client_prefix: str = DEFAULT_MQTT_CLIENT_PREFIX

    @property
    def credentials(self) -> tuple[str, str] | None:
        if self.username is not None and self.password is not None:
            return self.username, self.password
        return None

    def client_id(self, suffix: str) -> str:
        return f"{self.client_prefix}-{suffix}"


class HomieConfig(_ConfigSection):
    """Homie topic layout: devices live under ``{prefix}/{device_id_prefix}-{mac}``."""

    device_id_prefix: str = DEFAULT_DEVICE_ID_PREFIX
    prefix: str = DEFAULT_MQTT_PREFIX


class DeviceConfig(_ConfigSection):
    """Per-thermometer overrides, keyed by MAC address in the config file."""

    name: str | None = None
    probe_names: tuple[str, ...] = ()

    def probe_name(self, probe_index: int) -> str:
        """Configured label for a zero-based probe index, or ``Probe N``."""
        if 0 <= probe_index < len(self.probe_names):
            return self.probe_names[probe_index]
        return f"Probe {probe_index + 1}"


class BridgeConfig(_ConfigSection):
    """Top-level configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    homie: HomieConfig = Field(default_factory=HomieConfig)
    devices: dict[str, DeviceConfig] = Field(default_factory=dict, alias="device")

    @field_validator("devices", mode="before")
    @classmethod
    def _normalize_device_keys(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        normalized: dict[str, Any] = {}
        for mac, device in value.items():
            key = normalize_mac(str(mac))
            if key in normalized:
                raise ValueError(f"duplicate device entry for {key}")
            normalized[key] = device
        return normalized

    def device_config(self, mac_address: str) -> DeviceConfig:
        """Configuration for *mac_address*, or an empty default."""
        try:
            key = normalize_mac(mac_address)
        except ValueError:
            return DeviceConfig()
        return self.devices.get(key, DeviceConfig())

    @classmethod
    def from_toml(cls, text: str, *, source: str = "<string>") -> BridgeConfig:
        """Parse configuration from TOML text."""
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise BbqConfigError(f"Invalid TOML in {source}: {exc}") from exc
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise BbqConfigError(f"Invalid configuration in {source}: {exc}") from exc

    @classmethod
    def from_file(cls, path: str | os.PathLike[str] | None = None) -> BridgeConfig:
        """Load configuration from *path*.

        Without an explicit path, ``CLOUDBBQ_HOMIE_CONFIG`` is consulted and
        then ``cloudbbq-homie.toml`` in the working directory.
        """
        if path is None:
            path = os.environ.get(CONFIG_ENV_VAR) or CONFIG_FILENAME
        file_path = Path(path)
        try:
            text = file_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise BbqConfigError(f"Reading {file_path}: {exc}") from exc
        return cls.from_toml(text, source=str(file_path))
