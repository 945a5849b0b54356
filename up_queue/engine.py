from __future__ import annotations

# Queue state engine (availability state machine).
#
# This file is pure logic: every command takes the current Snapshot and
# returns a Transition describing the new Snapshot, the history event it
# produced (if any) and which document fields changed. Nothing here talks to
# a store; see `sync.py` for the read-compute-write cycle.

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from .errors import ErrorResponse
from .history import Clock, EventIdSequence, make_event, newest_id, prepend
from .models import (
    HISTORY,
    QUEUE,
    REPS,
    SNAPSHOT_FIELDS,
    STEPPED_AWAY,
    VERSION,
    WITH_CUSTOMER,
    Action,
    HistoryEvent,
    Rep,
    RepId,
    Snapshot,
    with_appended,
    without,
)
from .rotation import designated_rep

logger = logging.getLogger(__name__)

MAX_SETUP_REPS = 15


class Outcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandResult:
    command: str
    outcome: Outcome
    rep_id: RepId | None = None
    reason: str = ""

    @property
    def applied(self) -> bool:
        return self.outcome is Outcome.APPLIED

    def to_message(self) -> dict[str, Any]:
        if self.outcome is Outcome.FAILED:
            return ErrorResponse("store_unavailable", self.reason).to_message(command=self.command)
        msg: dict[str, Any] = {"type": "result", "command": self.command, "outcome": self.outcome.value}
        if self.rep_id is not None:
            msg["rep_id"] = self.rep_id
        if self.reason:
            msg["reason"] = self.reason
        return msg


@dataclass(frozen=True)
class Transition:
    """Result of applying one command to a snapshot."""

    snapshot: Snapshot
    result: CommandResult
    event: HistoryEvent | None = None
    changed_fields: frozenset[str] = field(default_factory=frozenset)
    destroy: bool = False  # full reset: the store document is discarded


class QueueEngine:
    """Core business logic (testable without any store)."""

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._ids = EventIdSequence(clock=clock)

    # -------------------- helpers --------------------

    def _noop(self, snapshot: Snapshot, command: str, rep_id: RepId | None, reason: str) -> Transition:
        logger.debug("%s(%s) is a no-op: %s", command, rep_id, reason)
        return Transition(
            snapshot=snapshot,
            result=CommandResult(command, Outcome.NOOP, rep_id=rep_id, reason=reason),
        )

    def _applied(
        self,
        snapshot: Snapshot,
        command: str,
        rep_id: RepId | None,
        changes: dict[str, Any],
        changed_fields: Iterable[str],
        *,
        action: Action | None = None,
        destroy: bool = False,
    ) -> Transition:
        event = None
        fields = set(changed_fields)
        if action is not None and rep_id is not None:
            # Ids in a shared ledger may come from other processes.
            self._ids.observe(newest_id(snapshot.history))
            event = make_event(
                ids=self._ids,
                rep_id=rep_id,
                rep_name=snapshot.rep_name(rep_id),
                action=action,
                clock=self._clock,
            )
            changes["history"] = prepend(snapshot.history, event)
            fields.add(HISTORY)
        changes["version"] = snapshot.version + 1
        fields.add(VERSION)
        return Transition(
            snapshot=snapshot.evolve(**changes),
            result=CommandResult(command, Outcome.APPLIED, rep_id=rep_id),
            event=event,
            changed_fields=frozenset(fields),
            destroy=destroy,
        )

    # -------------------- roster --------------------

    def complete_setup(self, snapshot: Snapshot, names: Iterable[str]) -> Transition:
        valid = [n.strip() for n in names if n.strip()]
        if not valid:
            return self._noop(snapshot, "complete_setup", None, "at least one rep name is required")
        if len(valid) > MAX_SETUP_REPS:
            return self._noop(snapshot, "complete_setup", None, f"at most {MAX_SETUP_REPS} reps")
        reps = tuple(Rep.from_name(i, name) for i, name in enumerate(valid, start=1))
        return self._applied(
            snapshot,
            "complete_setup",
            None,
            {
                "reps": reps,
                "queue": (),
                "stepped_away": (),
                "with_customer": (),
                "history": (),
                "is_setup_complete": True,
                "epoch": max(int(self._clock() * 1000), snapshot.epoch + 1),
            },
            SNAPSHOT_FIELDS,
        )

    def add_rep(self, snapshot: Snapshot, name: str) -> Transition:
        if not name.strip():
            return self._noop(snapshot, "add_rep", None, "name is empty")
        taken = {r.id for r in snapshot.reps}
        rep_id = int(self._clock() * 1000)
        while rep_id in taken:
            rep_id += 1
        rep = Rep.from_name(rep_id, name)
        return self._applied(snapshot, "add_rep", rep_id, {"reps": (*snapshot.reps, rep)}, [REPS])

    def remove_rep(self, snapshot: Snapshot, rep_id: RepId) -> Transition:
        if snapshot.rep(rep_id) is None:
            return self._noop(snapshot, "remove_rep", rep_id, "unknown rep")
        return self._applied(
            snapshot,
            "remove_rep",
            rep_id,
            {
                "reps": tuple(r for r in snapshot.reps if r.id != rep_id),
                "queue": without(snapshot.queue, rep_id),
                "stepped_away": without(snapshot.stepped_away, rep_id),
                "with_customer": without(snapshot.with_customer, rep_id),
            },
            [REPS, QUEUE, STEPPED_AWAY, WITH_CUSTOMER],
        )

    # -------------------- availability --------------------

    def check_in(self, snapshot: Snapshot, rep_id: RepId) -> Transition:
        if snapshot.rep(rep_id) is None:
            return self._noop(snapshot, "check_in", rep_id, "unknown rep")
        if snapshot.is_checked_in(rep_id):
            return self._noop(snapshot, "check_in", rep_id, "already checked in")
        return self._applied(
            snapshot,
            "check_in",
            rep_id,
            {"queue": (*snapshot.queue, rep_id)},
            [QUEUE],
            action=Action.CHECKED_IN,
        )

    def check_out(self, snapshot: Snapshot, rep_id: RepId) -> Transition:
        if not (
            rep_id in snapshot.queue
            or rep_id in snapshot.stepped_away
            or rep_id in snapshot.with_customer
        ):
            return self._noop(snapshot, "check_out", rep_id, "not checked in")
        return self._applied(
            snapshot,
            "check_out",
            rep_id,
            {
                "queue": without(snapshot.queue, rep_id),
                "stepped_away": without(snapshot.stepped_away, rep_id),
                "with_customer": without(snapshot.with_customer, rep_id),
            },
            [QUEUE, STEPPED_AWAY, WITH_CUSTOMER],
            action=Action.CHECKED_OUT,
        )

    def take_customer(self, snapshot: Snapshot, rep_id: RepId) -> Transition:
        """Only the rep who is up now may take the next customer."""
        if designated_rep(snapshot) != rep_id:
            return self._noop(snapshot, "take_customer", rep_id, "rep is not up now")
        return self._applied(
            snapshot,
            "take_customer",
            rep_id,
            {"with_customer": (*snapshot.with_customer, rep_id)},
            [WITH_CUSTOMER],
            action=Action.TOOK_CUSTOMER,
        )

    def mark_with_customer(self, snapshot: Snapshot, rep_id: RepId) -> Transition:
        """Assign a customer out of rotation order.

        A rep who is not checked in is put at the tail of the queue as well,
        so that every busy rep is a queue member.
        """
        if snapshot.rep(rep_id) is None:
            return self._noop(snapshot, "mark_with_customer", rep_id, "unknown rep")
        if rep_id in snapshot.with_customer:
            return self._noop(snapshot, "mark_with_customer", rep_id, "already with a customer")
        changes: dict[str, Any] = {
            "with_customer": (*snapshot.with_customer, rep_id),
            "stepped_away": without(snapshot.stepped_away, rep_id),
        }
        fields = [WITH_CUSTOMER, STEPPED_AWAY]
        if not snapshot.is_checked_in(rep_id):
            changes["queue"] = (*snapshot.queue, rep_id)
            fields.append(QUEUE)
        return self._applied(
            snapshot, "mark_with_customer", rep_id, changes, fields, action=Action.WITH_CUSTOMER
        )

    def finished_with_customer(self, snapshot: Snapshot, rep_id: RepId) -> Transition:
        """Rotation reset: the served rep goes to the back of the line."""
        if rep_id not in snapshot.with_customer:
            return self._noop(snapshot, "finished_with_customer", rep_id, "not with a customer")
        return self._applied(
            snapshot,
            "finished_with_customer",
            rep_id,
            {
                "with_customer": without(snapshot.with_customer, rep_id),
                "queue": with_appended(snapshot.queue, rep_id),
            },
            [WITH_CUSTOMER, QUEUE],
            action=Action.FINISHED_CUSTOMER,
        )

    def toggle_step_away(self, snapshot: Snapshot, rep_id: RepId) -> Transition:
        if not snapshot.is_checked_in(rep_id):
            return self._noop(snapshot, "toggle_step_away", rep_id, "not checked in")
        if rep_id in snapshot.stepped_away:
            stepped_away = without(snapshot.stepped_away, rep_id)
            action = Action.RETURNED
        else:
            if rep_id in snapshot.with_customer:
                return self._noop(snapshot, "toggle_step_away", rep_id, "with a customer")
            stepped_away = (*snapshot.stepped_away, rep_id)
            action = Action.STEPPED_AWAY
        return self._applied(
            snapshot,
            "toggle_step_away",
            rep_id,
            {"stepped_away": stepped_away},
            [STEPPED_AWAY],
            action=action,
        )

    # -------------------- resets --------------------

    def clear_day(self, snapshot: Snapshot, *, confirm: bool = False) -> Transition:
        """Empty the queue and the ledger but keep the roster."""
        if not confirm:
            return self._noop(snapshot, "clear_day", None, "confirmation required")
        return self._applied(
            snapshot,
            "clear_day",
            None,
            {"queue": (), "stepped_away": (), "with_customer": (), "history": ()},
            [QUEUE, STEPPED_AWAY, WITH_CUSTOMER, HISTORY],
        )

    def full_reset(self, snapshot: Snapshot, *, confirm: bool = False) -> Transition:
        """Discard everything, including the roster and the setup flag."""
        if not confirm:
            return self._noop(snapshot, "full_reset", None, "confirmation required")
        return Transition(
            snapshot=Snapshot(),
            result=CommandResult("full_reset", Outcome.APPLIED),
            changed_fields=frozenset(SNAPSHOT_FIELDS),
            destroy=True,
        )
