"""MQTT topic helpers.

We keep topic construction in one place so every process agrees on naming.

Topic layout (v0) under a configurable namespace (default: `upqueue/v0`):

- `<ns>/store/snapshot`
    The whole queue document as one retained JSON message. Writers publish
    the full snapshot with `retain=True`; the broker hands the latest value to
    every new subscriber. An empty retained payload means "no document".

You can run several independent stores on one broker by changing the
`namespace` parameter (e.g. `--namespace store/north`).
"""

from __future__ import annotations

DEFAULT_NAMESPACE = "upqueue/v0"


def store_snapshot(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/store/snapshot"
