"""Small MQTT helper built on top of paho-mqtt.

Why this exists:
- paho-mqtt is callback-based and its network loop runs on its own thread.
- The snapshot store needs JSON publish/subscribe plus "did this publish
  actually reach the broker" so write failures can be reported.

Design:
- `MqttClient` manages connection + a background network loop.
- Incoming JSON objects are fanned out to handlers as `(topic, dict)`. An
  empty payload (a cleared retained message) is delivered as `{}`.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, dict[str, Any]], None]


class MqttClient:
    """Thin wrapper around paho-mqtt with JSON convenience APIs."""

    def __init__(
        self,
        *,
        client_id: str,
        host: str,
        port: int,
        keepalive: int = 30,
    ) -> None:
        self.client_id = client_id
        self.host = host
        self.port = port
        self.keepalive = keepalive

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True
        )
        self._client.on_message = self._on_message
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect

        # External subscribers. Called with (topic, json_message).
        self._handlers: list[MessageHandler] = []
        self._topics: set[str] = set()
        self._lock = threading.Lock()

        self._connected = threading.Event()
        self._started = False

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def start(self, *, timeout: float = 5.0) -> None:
        """Connect and start the background network loop.

        Raises ConnectionError if the broker does not accept us in time.
        """
        if self._started:
            return
        try:
            self._client.connect(self.host, self.port, keepalive=self.keepalive)
        except OSError as e:
            raise ConnectionError(f"cannot reach MQTT broker {self.host}:{self.port}") from e
        self._client.loop_start()
        self._started = True
        if not self._connected.wait(timeout):
            self.stop()
            raise ConnectionError(f"MQTT broker {self.host}:{self.port} did not accept the connection")

    def stop(self) -> None:
        """Stop and disconnect."""
        if not self._started:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._started = False
        self._connected.clear()

    def add_handler(self, handler: MessageHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def remove_handler(self, handler: MessageHandler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def subscribe(self, topic: str, *, qos: int = 1) -> None:
        with self._lock:
            self._topics.add(topic)
        self._client.subscribe(topic, qos=qos)

    def publish(
        self,
        topic: str,
        message: dict[str, Any] | None,
        *,
        qos: int = 1,
        retain: bool = False,
        timeout: float = 5.0,
    ) -> None:
        """Publish JSON (or an empty payload for None) and wait for the broker.

        Raises ConnectionError when the message cannot be delivered.
        """
        payload = b"" if message is None else json.dumps(message, separators=(",", ":")).encode("utf-8")
        info = self._client.publish(topic, payload=payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"publish to {topic} failed: {mqtt.error_string(info.rc)}")
        try:
            info.wait_for_publish(timeout=timeout)
        except (RuntimeError, ValueError) as e:
            raise ConnectionError(f"publish to {topic} failed: {e}") from e
        if not info.is_published():
            raise ConnectionError(f"publish to {topic} not acknowledged within {timeout}s")

    # -------------------- internal callbacks --------------------

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            logger.warning("MQTT connect refused: %s", reason_code)
            return
        # Subscriptions do not survive a clean-session reconnect.
        with self._lock:
            topics = list(self._topics)
        for topic in topics:
            client.subscribe(topic, qos=1)
        self._connected.set()

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self._connected.clear()
        logger.info("MQTT disconnected: %s", reason_code)

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        raw = msg.payload
        payload = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
        if not payload:
            data: Any = {}
        else:
            try:
                data = json.loads(payload)
            except ValueError:
                logger.warning("ignoring non-JSON message on %s", msg.topic)
                return
        if not isinstance(data, dict):
            logger.warning("ignoring non-object message on %s", msg.topic)
            return

        with self._lock:
            handlers = list(self._handlers)
        for h in handlers:
            try:
                h(msg.topic, data)
            except Exception:
                # Keep the network loop alive; one bad handler must not stop the rest.
                logger.exception("MQTT handler failed for %s", msg.topic)
