from __future__ import annotations

# Single-entrypoint command line.
#
#     python -m up_queue.app check-in 3
#     python -m up_queue.app show queue
#     python -m up_queue.app watch
#
# Every subcommand connects to the MQTT broker holding the snapshot, runs one
# command (or view) and exits. `watch` keeps printing the queue whenever the
# snapshot changes.

import argparse
import json
import logging
import sys
import time
from typing import Any

from .engine import CommandResult, Outcome
from .models import Snapshot
from .mqtt_topics import DEFAULT_NAMESPACE
from .rotation import active_queue, designated_rep

# subcommand -> QueueSync method taking a rep id
REP_COMMANDS = {
    "check-in": "check_in",
    "check-out": "check_out",
    "take": "take_customer",
    "mark": "mark_with_customer",
    "finish": "finished_with_customer",
    "step-away": "toggle_step_away",
    "remove-rep": "remove_rep",
}


def non_negative_int(value: str) -> int:
    n = int(value)
    if n < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Up Queue - walk-in rep rotation (MQTT store)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    parser.add_argument("--read-timeout", type=float, default=2.0, help="seconds to wait for the snapshot")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_setup = sub.add_parser("setup", help="Create the roster (replaces any existing one)")
    p_setup.add_argument("names", nargs="+")

    p_add = sub.add_parser("add-rep", help="Add one rep to the roster")
    p_add.add_argument("name")

    for name, method in REP_COMMANDS.items():
        p = sub.add_parser(name, help=method.replace("_", " "))
        p.add_argument("rep_id", type=int)

    p_clear = sub.add_parser("clear-day", help="Empty the queue and history, keep the roster")
    p_clear.add_argument("--yes", action="store_true", help="confirm the destructive reset")

    p_reset = sub.add_parser("reset", help="Discard everything, including the roster")
    p_reset.add_argument("--yes", action="store_true", help="confirm the destructive reset")

    p_show = sub.add_parser("show", help="Print a view as JSON")
    p_show.add_argument("view", choices=["queue", "stats", "history", "roster"])
    p_show.add_argument("--limit", type=non_negative_int, default=50, help="history entries to show")

    sub.add_parser("watch", help="Print the queue every time the snapshot changes")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Import MQTT dependencies only when actually talking to a broker.
    from .mqtt_client import MqttClient
    from .mqtt_store import MqttSnapshotStore, MqttStoreConfig
    from .sync import QueueSync

    config = MqttStoreConfig(
        host=args.mqtt_host,
        port=args.mqtt_port,
        namespace=args.namespace,
        read_timeout=args.read_timeout,
    )
    mqtt_client = MqttClient(
        client_id=f"upqueue-{args.cmd}-{int(time.time() * 1000)}", host=config.host, port=config.port
    )
    try:
        mqtt_client.start()
    except ConnectionError as e:
        print(f"[up-queue] {e}", file=sys.stderr)
        return 2

    store = MqttSnapshotStore(mqtt=mqtt_client, config=config)
    store.start()
    sync = QueueSync(store=store)
    try:
        return _run(args, sync)
    finally:
        store.stop()
        mqtt_client.stop()


def _run(args: argparse.Namespace, sync: Any) -> int:
    if args.cmd == "watch":
        sync.add_listener(lambda snap: print(f"[up-queue] {describe(snap)}", flush=True))
        sync.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            sync.stop()
        return 0

    if args.cmd == "show":
        sync.refresh()
        if args.view == "queue":
            rows: list[dict[str, Any]] = [r.to_dict() for r in sync.active_queue_view()]
        elif args.view == "roster":
            rows = [r.to_dict() for r in sync.roster_view()]
        elif args.view == "stats":
            rows = [r.to_dict() for r in sync.stats_view()]
        else:
            rows = [e.to_dict() for e in sync.history_view(args.limit)]
        print(json.dumps(rows, indent=2))
        return 0

    if args.cmd == "setup":
        result = sync.complete_setup(args.names)
    elif args.cmd == "add-rep":
        result = sync.add_rep(args.name)
    elif args.cmd == "clear-day":
        result = sync.clear_day(confirm=args.yes)
    elif args.cmd == "reset":
        result = sync.full_reset(confirm=args.yes)
    else:
        result = getattr(sync, REP_COMMANDS[args.cmd])(args.rep_id)
    return report(result)


def report(result: CommandResult) -> int:
    print(json.dumps(result.to_message()))
    return 1 if result.outcome is Outcome.FAILED else 0


def describe(snapshot: Snapshot) -> str:
    """One-line summary of a snapshot for the watch output."""
    if not snapshot.is_setup_complete:
        return "not set up"
    up = designated_rep(snapshot)
    names = [snapshot.rep_name(rid) for rid in active_queue(snapshot)]
    busy = [snapshot.rep_name(rid) for rid in snapshot.with_customer]
    away = [snapshot.rep_name(rid) for rid in snapshot.stepped_away]
    return (
        f"v{snapshot.version} up={snapshot.rep_name(up) if up is not None else '-'} "
        f"queue={names} busy={busy} away={away}"
    )


if __name__ == "__main__":
    sys.exit(main())
