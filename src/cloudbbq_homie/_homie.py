"""Homie 4.0 device publisher on top of a threaded paho-mqtt client.

The paho network loop runs in its own thread; everything it reports
(connection results, inbound ``/set`` messages, disconnects) is marshalled
onto the asyncio loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, NoReturn, cast

import paho.mqtt.client as mqtt

from cloudbbq_homie.config import MqttConfig
from cloudbbq_homie.exceptions import HomieError

HOMIE_VERSION = "4.0.0"
IMPLEMENTATION = "cloudbbq-homie"
KEEPALIVE_SECONDS = 5

UpdateCallback = Callable[[str, str, str], Awaitable[str | None]]


class DeviceState(enum.StrEnum):
    INIT = "init"
    READY = "ready"
    DISCONNECTED = "disconnected"
    LOST = "lost"


class Datatype(enum.StrEnum):
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    STRING = "string"
    ENUM = "enum"


@dataclass(frozen=True, slots=True)
class Property:
    """A Homie property declaration."""

    id: str
    name: str
    datatype: Datatype
    settable: bool
    retained: bool = True
    unit: str | None = None
    format: str | None = None

    @classmethod
    def integer(cls, id: str, name: str, settable: bool, retained: bool, unit: str | None = None) -> Property:
        return cls(id, name, Datatype.INTEGER, settable, retained, unit)

    @classmethod
    def float(cls, id: str, name: str, settable: bool, retained: bool, unit: str | None = None) -> Property:
        return cls(id, name, Datatype.FLOAT, settable, retained, unit)

    @classmethod
    def boolean(cls, id: str, name: str, settable: bool, retained: bool) -> Property:
        return cls(id, name, Datatype.BOOLEAN, settable, retained)

    @classmethod
    def enumeration(
        cls,
        id: str,
        name: str,
        settable: bool,
        retained: bool,
        values: tuple[str, ...] | list[str],
    ) -> Property:
        return cls(id, name, Datatype.ENUM, settable, retained, format=",".join(values))


@dataclass(frozen=True, slots=True)
class Node:
    """A Homie node declaration: a named group of properties."""

    id: str
    name: str
    type: str
    properties: tuple[Property, ...]


def format_value(value: Any) -> str:
    """Format a value as a Homie payload."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


class HomieDevice:
    """A single Homie device with dynamic nodes.

    Call :meth:`start` to connect, add nodes, :meth:`ready` to announce the
    device, then publish values. :meth:`wait_terminated` raises
    :class:`HomieError` once the broker connection is lost.
    """

    def __init__(
        self,
        *,
        device_base: str,
        name: str,
        mqtt_config: MqttConfig,
        client_id: str,
        client_factory: Callable[..., mqtt.Client] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.device_base = device_base
        self.name = name
        self._mqtt_config = mqtt_config
        self._client_id = client_id
        self._client_factory = client_factory or mqtt.Client
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._nodes: dict[str, Node] = {}
        self._update_callback: UpdateCallback | None = None
        self._connected: asyncio.Future[None] | None = None
        self._terminated: asyncio.Future[None] | None = None
        self._running = False
        self._tasks: set[asyncio.Task[None]] = set()

    def set_update_callback(self, callback: UpdateCallback) -> None:
        """Register the handler for writes to settable properties.

        The callback receives ``(node_id, property_id, value)`` and returns the
        value to acknowledge, or ``None`` to reject the write.
        """
        self._update_callback = callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect to the broker and publish the device attributes."""
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._connected = loop.create_future()
        self._terminated = loop.create_future()

        config = self._mqtt_config
        client = self._client_factory(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        client.will_set(self._topic("$state"), DeviceState.LOST.value, qos=1, retain=True)
        credentials = config.credentials
        if credentials is not None:
            client.username_pw_set(*credentials)
        if config.use_tls:
            client.tls_set()
        client.on_connect = self._on_connect
        client.on_message = self._on_message
        client.on_disconnect = self._on_disconnect
        self._client = client

        self._logger.info("Connecting to MQTT broker %s:%s as %s", config.host, config.port, self._client_id)
        try:
            await loop.run_in_executor(None, self._connect_blocking)
        except OSError as exc:
            raise HomieError(f"Connecting to MQTT broker {config.host}:{config.port} failed: {exc}") from exc
        self._running = True
        await self._connected

        self._publish("$homie", HOMIE_VERSION)
        self._publish("$name", self.name)
        self._publish("$state", DeviceState.INIT.value)
        self._publish("$extensions", "")
        self._publish("$implementation", IMPLEMENTATION)
        self._publish_nodes()
        result, _mid = client.subscribe(self._topic("+/+/set"), qos=1)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise HomieError(f"Subscribing to {self._topic('+/+/set')} failed: rc={result}")

    def _connect_blocking(self) -> None:
        client = self._client
        assert client is not None  # noqa: S101
        client.connect(self._mqtt_config.host, self._mqtt_config.port, keepalive=KEEPALIVE_SECONDS)
        client.loop_start()

    async def ready(self) -> None:
        self._publish("$state", DeviceState.READY.value)

    async def stop(self) -> None:
        """Announce a clean disconnect and stop the network loop."""
        client = self._client
        if client is None:
            return
        was_running = self._running
        self._running = False
        self._client = None
        if was_running:
            client.publish(self._topic("$state"), DeviceState.DISCONNECTED.value, qos=1, retain=True)
        loop = self._loop or asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, client.disconnect)
        finally:
            await loop.run_in_executor(None, client.loop_stop)
        self._logger.debug("MQTT network loop stopped")

    async def wait_terminated(self) -> NoReturn:
        """Block until the broker connection fails, then raise :class:`HomieError`."""
        if self._terminated is None:
            raise HomieError("Homie device not started")
        await self._terminated
        raise HomieError("MQTT connection closed")

    # ------------------------------------------------------------------
    # Nodes and values
    # ------------------------------------------------------------------

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    async def add_node(self, node: Node) -> None:
        self._nodes[node.id] = node
        self._publish(f"{node.id}/$name", node.name)
        self._publish(f"{node.id}/$type", node.type)
        self._publish(f"{node.id}/$properties", ",".join(prop.id for prop in node.properties))
        for prop in node.properties:
            base = f"{node.id}/{prop.id}"
            self._publish(f"{base}/$name", prop.name)
            self._publish(f"{base}/$datatype", prop.datatype.value)
            self._publish(f"{base}/$settable", format_value(prop.settable))
            self._publish(f"{base}/$retained", format_value(prop.retained))
            if prop.unit is not None:
                self._publish(f"{base}/$unit", prop.unit)
            if prop.format is not None:
                self._publish(f"{base}/$format", prop.format)
        self._publish_nodes()

    async def remove_node(self, node_id: str) -> None:
        node = self._nodes.pop(node_id, None)
        if node is None:
            return
        self._publish_nodes()
        for attribute in ("$name", "$type", "$properties"):
            self._publish(f"{node.id}/{attribute}", "")
        for prop in node.properties:
            base = f"{node.id}/{prop.id}"
            for attribute in ("$name", "$datatype", "$settable", "$retained", "$unit", "$format"):
                self._publish(f"{base}/{attribute}", "")
            self._publish(base, "")

    async def publish_value(self, node_id: str, property_id: str, value: Any) -> None:
        self._publish(f"{node_id}/{property_id}", format_value(value))

    async def publish_nonretained_value(self, node_id: str, property_id: str, value: Any) -> None:
        self._publish(f"{node_id}/{property_id}", format_value(value), retain=False)

    def _publish_nodes(self) -> None:
        self._publish("$nodes", ",".join(self._nodes))

    def _topic(self, suffix: str) -> str:
        return f"{self.device_base}/{suffix}"

    def _publish(self, suffix: str, payload: str, *, retain: bool = True) -> None:
        client = self._client
        if client is None:
            raise HomieError("Homie device not started")
        topic = self._topic(suffix)
        self._logger.debug("Publishing %s = %r (retain=%s)", topic, payload, retain)
        info = client.publish(topic, payload, qos=1, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise HomieError(f"Publishing to {topic} failed: {mqtt.error_string(info.rc)}")

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _call_in_loop(self, fn: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(fn, *args)

    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.value != 0:
            self._logger.warning("MQTT connect refused: %s", reason_code)
            self._call_in_loop(self._fail, HomieError(f"MQTT connect refused: {reason_code}"))
            return
        self._logger.debug("MQTT connected reason=%s", reason_code)
        self._call_in_loop(self._set_connected)

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._running:
            self._logger.warning("MQTT disconnected: %s", reason_code)
            self._call_in_loop(self._fail, HomieError(f"MQTT connection lost: {reason_code}"))

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        prefix = self._topic("")
        if not msg.topic.startswith(prefix):
            return
        parts = msg.topic[len(prefix) :].split("/")
        if len(parts) != 3 or parts[2] != "set":
            return
        node_id, property_id, _ = parts
        value = msg.payload.decode("utf-8", errors="replace")
        self._call_in_loop(self._dispatch_update, node_id, property_id, value)

    # ------------------------------------------------------------------
    # Event loop side
    # ------------------------------------------------------------------

    def _set_connected(self) -> None:
        if self._connected is not None and not self._connected.done():
            self._connected.set_result(None)

    def _fail(self, error: HomieError) -> None:
        for future in (self._connected, self._terminated):
            if future is not None and not future.done():
                future.set_exception(error)

    def _dispatch_update(self, node_id: str, property_id: str, value: str) -> None:
        task = asyncio.create_task(self._handle_update(node_id, property_id, value))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle_update(self, node_id: str, property_id: str, value: str) -> None:
        self._logger.debug("Received set %s/%s = %r", node_id, property_id, value)
        callback = self._update_callback
        if callback is None:
            return
        try:
            accepted = await callback(node_id, property_id, value)
            if accepted is not None:
                await self.publish_value(node_id, property_id, accepted)
        except HomieError as exc:
            self._fail(exc)
        except Exception:
            self._logger.exception("Update handler failed for %s/%s", node_id, property_id)
