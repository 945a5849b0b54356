from __future__ import annotations

# Snapshot store on top of an MQTT broker.
#
# The document lives in one retained message (see mqtt_topics.py). The broker
# keeps exactly the last published value, so this store is last-writer-wins
# by construction: two processes that read the same snapshot and both write
# will silently overwrite each other. There are no partial-field writes.
#
# `read()` answers from the latest retained value delivered by the broker.
# Right after start the broker may not have delivered it yet, so the first
# read waits up to `read_timeout` seconds; if nothing arrives the store is
# treated as empty.

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from .errors import StoreUnavailable
from .models import Snapshot
from .mqtt_topics import DEFAULT_NAMESPACE, store_snapshot
from .store import SnapshotCallback, Unsubscribe

logger = logging.getLogger(__name__)


class _Client(Protocol):
    connected: bool

    def subscribe(self, topic: str, *, qos: int = 1) -> None: ...

    def add_handler(self, handler: Any) -> None: ...

    def remove_handler(self, handler: Any) -> None: ...

    def publish(
        self,
        topic: str,
        message: dict[str, Any] | None,
        *,
        qos: int = 1,
        retain: bool = False,
        timeout: float = 5.0,
    ) -> None: ...


@dataclass(frozen=True)
class MqttStoreConfig:
    host: str = "127.0.0.1"
    port: int = 1883
    namespace: str = DEFAULT_NAMESPACE
    read_timeout: float = 2.0
    write_timeout: float = 5.0


class MqttSnapshotStore:
    """Store contract over one retained MQTT topic."""

    supports_partial_writes = False

    def __init__(self, *, mqtt: _Client, config: MqttStoreConfig | None = None) -> None:
        self.mqtt = mqtt
        self.config = config or MqttStoreConfig()
        self.topic = store_snapshot(self.config.namespace)

        self._lock = threading.Lock()
        self._doc: dict[str, Any] | None = None
        self._received = threading.Event()
        # Our own publishes whose broker echo has not come back yet.
        self._pending: list[dict[str, Any] | None] = []
        self._subscribers: list[SnapshotCallback] = []
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self.mqtt.add_handler(self._handle_message)
        self.mqtt.subscribe(self.topic, qos=1)
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        self.mqtt.remove_handler(self._handle_message)
        self._started = False

    # -------------------- store contract --------------------

    def read(self) -> Snapshot | None:
        if not self.mqtt.connected:
            raise StoreUnavailable("not connected to the MQTT broker")
        if not self._received.wait(self.config.read_timeout):
            logger.debug("no retained snapshot on %s after %.1fs", self.topic, self.config.read_timeout)
            return None
        with self._lock:
            doc = self._doc
        return Snapshot.from_dict(doc) if doc else None

    def write(self, snapshot: Snapshot) -> None:
        self._publish(snapshot.to_dict())

    def destroy(self) -> None:
        # An empty retained payload removes the retained message on the broker.
        self._publish(None)

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        with self._lock:
            self._subscribers.append(callback)
            doc = self._doc if self._received.is_set() else None
        if doc is not None:
            callback(Snapshot.from_dict(doc))

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # -------------------- internal --------------------

    def _publish(self, doc: dict[str, Any] | None) -> None:
        if not self.mqtt.connected:
            raise StoreUnavailable("not connected to the MQTT broker")
        with self._lock:
            self._pending.append(doc)
        try:
            self.mqtt.publish(self.topic, doc, qos=1, retain=True, timeout=self.config.write_timeout)
        except ConnectionError as e:
            with self._lock:
                self._forget(doc)
            raise StoreUnavailable(str(e)) from e
        # The broker echo may lag behind the ack; our next read must already
        # see this write.
        with self._lock:
            if any(p is doc for p in self._pending):
                self._doc = doc
                self._received.set()

    def _forget(self, doc: dict[str, Any] | None) -> None:
        for i, p in enumerate(self._pending):
            if p is doc:
                del self._pending[i]
                return

    def _handle_message(self, topic: str, msg: dict[str, Any]) -> None:
        if topic != self.topic:
            return
        doc = msg or None
        with self._lock:
            # The broker delivers in publish order. Anything arriving while our
            # own writes are still unechoed was published before them and is
            # already overwritten, so reads keep answering with our latest.
            for i, p in enumerate(self._pending):
                if p == doc:
                    del self._pending[: i + 1]
                    break
            if self._pending:
                return
            self._doc = doc
            self._received.set()
            subscribers = list(self._subscribers)
        snapshot = Snapshot.from_dict(msg)
        for cb in subscribers:
            try:
                cb(snapshot)
            except Exception:
                logger.exception("snapshot subscriber failed")
