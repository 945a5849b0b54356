from __future__ import annotations

# Store synchronization adapter.
#
# Every command runs one read -> compute -> write cycle against the store:
#
#   1. read the current snapshot (empty store == fresh Snapshot())
#   2. let QueueEngine compute the Transition
#   3. persist it: only the changed fields when the store can do partial
#      writes, otherwise the full snapshot
#
# The cycle is NOT atomic. Two callers that read the same snapshot both
# compute from it, and the later write wins. With partial writes the damage
# is limited to fields both commands touched; with full-snapshot stores
# (MQTT retained message) the whole document is last-writer-wins. There is no
# way to detect that from here, so it is an accepted limitation.
#
# Local state (`current_snapshot`) is only ever rehydrated from what the store
# delivers, so every observer converges on the store's latest value.

import logging
import threading
from typing import Any, Callable, Iterable, cast

from .engine import CommandResult, Outcome, QueueEngine, Transition
from .errors import StoreUnavailable
from .history import DEFAULT_HISTORY_VIEW_LIMIT
from .models import HistoryEvent, RepId, RepSummary, Snapshot
from .rotation import designated_rep
from .stats import RepStats
from .store import PartialWriteStore, Store, Unsubscribe
from .views import active_queue_view, history_view, roster_view, stats_view

logger = logging.getLogger(__name__)


class QueueSync:
    """Runs engine commands against a store and mirrors the store locally."""

    def __init__(self, *, store: Store, engine: QueueEngine | None = None) -> None:
        self.store = store
        self.engine = engine or QueueEngine()

        self._lock = threading.Lock()
        self._current = Snapshot()
        self._unsubscribe: Unsubscribe | None = None
        self._resubscribing = False
        self._listeners: list[Callable[[Snapshot], None]] = []

    # -------------------- lifecycle --------------------

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        # The value handed over while subscribing is the store's current
        # document, whatever version we saw before.
        self._resubscribing = True
        try:
            self._unsubscribe = self.store.subscribe(self._on_snapshot)
        finally:
            self._resubscribing = False

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def add_listener(self, listener: Callable[[Snapshot], None]) -> None:
        """Called with every snapshot accepted from the store."""
        self._listeners.append(listener)

    def refresh(self) -> Snapshot:
        """Read the store directly. Raises StoreUnavailable."""
        snapshot = self.store.read() or Snapshot()
        self._accept(snapshot, authoritative=True)
        return self.current_snapshot

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._accept(snapshot, authoritative=self._resubscribing)

    def _accept(self, snapshot: Snapshot, *, authoritative: bool) -> None:
        with self._lock:
            # Deliveries can arrive out of order, so an older version of the
            # same setup epoch is dropped. Version 0 is an empty or destroyed
            # document and always wins, as does a different epoch.
            if (
                not authoritative
                and snapshot.version
                and snapshot.epoch == self._current.epoch
                and snapshot.version < self._current.version
            ):
                logger.debug(
                    "dropping stale snapshot v%d (have v%d)", snapshot.version, self._current.version
                )
                return
            self._current = snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    # -------------------- read-only views --------------------

    @property
    def current_snapshot(self) -> Snapshot:
        with self._lock:
            return self._current

    def designated_rep(self) -> RepId | None:
        return designated_rep(self.current_snapshot)

    def active_queue_view(self) -> list[RepSummary]:
        return active_queue_view(self.current_snapshot)

    def roster_view(self) -> list[RepSummary]:
        return roster_view(self.current_snapshot)

    def stats_view(self) -> list[RepStats]:
        return stats_view(self.current_snapshot)

    def history_view(self, limit: int = DEFAULT_HISTORY_VIEW_LIMIT) -> list[HistoryEvent]:
        return history_view(self.current_snapshot, limit)

    # -------------------- commands --------------------

    def complete_setup(self, names: Iterable[str]) -> CommandResult:
        names = list(names)
        return self._execute("complete_setup", lambda s: self.engine.complete_setup(s, names))

    def add_rep(self, name: str) -> CommandResult:
        return self._execute("add_rep", lambda s: self.engine.add_rep(s, name))

    def remove_rep(self, rep_id: RepId) -> CommandResult:
        return self._execute("remove_rep", lambda s: self.engine.remove_rep(s, rep_id))

    def check_in(self, rep_id: RepId) -> CommandResult:
        return self._execute("check_in", lambda s: self.engine.check_in(s, rep_id))

    def check_out(self, rep_id: RepId) -> CommandResult:
        return self._execute("check_out", lambda s: self.engine.check_out(s, rep_id))

    def take_customer(self, rep_id: RepId) -> CommandResult:
        return self._execute("take_customer", lambda s: self.engine.take_customer(s, rep_id))

    def mark_with_customer(self, rep_id: RepId) -> CommandResult:
        return self._execute("mark_with_customer", lambda s: self.engine.mark_with_customer(s, rep_id))

    def finished_with_customer(self, rep_id: RepId) -> CommandResult:
        return self._execute(
            "finished_with_customer", lambda s: self.engine.finished_with_customer(s, rep_id)
        )

    def toggle_step_away(self, rep_id: RepId) -> CommandResult:
        return self._execute("toggle_step_away", lambda s: self.engine.toggle_step_away(s, rep_id))

    def clear_day(self, *, confirm: bool = False) -> CommandResult:
        return self._execute("clear_day", lambda s: self.engine.clear_day(s, confirm=confirm))

    def full_reset(self, *, confirm: bool = False) -> CommandResult:
        return self._execute("full_reset", lambda s: self.engine.full_reset(s, confirm=confirm))

    def _execute(self, command: str, compute: Callable[[Snapshot], Transition]) -> CommandResult:
        try:
            base = self.store.read() or Snapshot()
        except StoreUnavailable as e:
            logger.warning("%s failed reading the store: %s", command, e)
            return CommandResult(command, Outcome.FAILED, reason=str(e))

        transition = compute(base)
        result = transition.result
        if not result.applied:
            return result

        try:
            self._persist(transition)
        except StoreUnavailable as e:
            logger.warning("%s failed writing the store: %s", command, e)
            return CommandResult(command, Outcome.FAILED, rep_id=result.rep_id, reason=str(e))

        logger.info(
            "%s applied (rep=%s, fields=%s, v%d)",
            command,
            result.rep_id,
            ",".join(sorted(transition.changed_fields)),
            transition.snapshot.version,
        )
        return result

    def _persist(self, transition: Transition) -> None:
        if transition.destroy:
            self.store.destroy()
            return
        snapshot = transition.snapshot
        if self.store.supports_partial_writes:
            fields: dict[str, Any] = snapshot.field_values(transition.changed_fields)
            cast(PartialWriteStore, self.store).update(fields)
        else:
            self.store.write(snapshot)
