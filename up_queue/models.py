"""Shared data model: reps, history events and the persisted snapshot.

The snapshot is the whole externally-persisted state. Everything else the
engine shows (statuses, the active queue, stats) is derived from it on read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

RepId = int

UNKNOWN_REP_NAME = "Unknown"


class Action(str, Enum):
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    TOOK_CUSTOMER = "took_customer"
    STEPPED_AWAY = "stepped_away"
    RETURNED = "returned"
    WITH_CUSTOMER = "with_customer"
    FINISHED_CUSTOMER = "finished_customer"


class RepStatus(str, Enum):
    NOT_CHECKED_IN = "not_checked_in"
    QUEUED = "queued"
    UP_NOW = "up_now"
    STEPPED_AWAY = "stepped_away"
    WITH_CUSTOMER = "with_customer"


@dataclass(frozen=True)
class Rep:
    id: RepId
    name: str
    avatar: str

    @classmethod
    def from_name(cls, rep_id: RepId, name: str) -> Rep:
        """Build a rep from free text. Raises ValueError on a blank name."""
        clean = name.strip()
        if not clean:
            raise ValueError("rep name must not be empty")
        return cls(id=rep_id, name=clean, avatar=clean[0].upper())

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "avatar": self.avatar}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rep:
        name = str(data.get("name", "")).strip()
        avatar = str(data.get("avatar", "") or (name[:1].upper() if name else "?"))
        return cls(id=int(data["id"]), name=name, avatar=avatar)


@dataclass(frozen=True)
class HistoryEvent:
    id: int
    rep_id: RepId
    rep_name: str
    action: Action
    timestamp: str  # ISO-8601, UTC

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "repId": self.rep_id,
            "repName": self.rep_name,
            "action": self.action.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEvent:
        return cls(
            id=int(data["id"]),
            rep_id=int(data["repId"]),
            rep_name=str(data.get("repName") or UNKNOWN_REP_NAME),
            action=Action(data["action"]),
            timestamp=str(data.get("timestamp", "")),
        )


# Document keys, shared by every store implementation.
REPS = "reps"
QUEUE = "queue"
STEPPED_AWAY = "steppedAway"
WITH_CUSTOMER = "withCustomer"
HISTORY = "history"
SETUP_COMPLETE = "isSetupComplete"
VERSION = "version"
EPOCH = "epoch"

SNAPSHOT_FIELDS: tuple[str, ...] = (
    REPS,
    QUEUE,
    STEPPED_AWAY,
    WITH_CUSTOMER,
    HISTORY,
    SETUP_COMPLETE,
    VERSION,
    EPOCH,
)


@dataclass(frozen=True)
class Snapshot:
    """Immutable value of the whole store document.

    `queue`, `stepped_away` and `with_customer` are kept as duplicate-free
    tuples; `history` is newest first.
    """

    reps: tuple[Rep, ...] = ()
    queue: tuple[RepId, ...] = ()
    stepped_away: tuple[RepId, ...] = ()
    with_customer: tuple[RepId, ...] = ()
    history: tuple[HistoryEvent, ...] = ()
    is_setup_complete: bool = False
    version: int = 0
    # Set by setup; a new epoch restarts version numbering.
    epoch: int = 0

    # -------------------- lookups --------------------

    def rep(self, rep_id: RepId) -> Rep | None:
        for r in self.reps:
            if r.id == rep_id:
                return r
        return None

    def rep_name(self, rep_id: RepId) -> str:
        r = self.rep(rep_id)
        return r.name if r is not None else UNKNOWN_REP_NAME

    def is_checked_in(self, rep_id: RepId) -> bool:
        return rep_id in self.queue

    def evolve(self, **changes: Any) -> Snapshot:
        return replace(self, **changes)

    # -------------------- document codec --------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            REPS: [r.to_dict() for r in self.reps],
            QUEUE: list(self.queue),
            STEPPED_AWAY: list(self.stepped_away),
            WITH_CUSTOMER: list(self.with_customer),
            HISTORY: [e.to_dict() for e in self.history],
            SETUP_COMPLETE: self.is_setup_complete,
            VERSION: self.version,
            EPOCH: self.epoch,
        }

    def field_values(self, names: frozenset[str] | set[str]) -> dict[str, Any]:
        """Document values for a subset of keys (used for partial writes)."""
        doc = self.to_dict()
        return {k: doc[k] for k in names}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Snapshot:
        """Decode a store document.

        Missing collections default to empty and entries that cannot be
        decoded are skipped, so a malformed document never raises.
        """
        if not isinstance(data, dict) or not data:
            return cls()

        reps: list[Rep] = []
        for raw in _as_list(data.get(REPS)):
            if not isinstance(raw, dict):
                logger.warning("skipping malformed rep entry: %r", raw)
                continue
            try:
                reps.append(Rep.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                logger.warning("skipping malformed rep entry: %r", raw)

        history: list[HistoryEvent] = []
        for raw in _as_list(data.get(HISTORY)):
            if not isinstance(raw, dict):
                logger.warning("skipping malformed history entry: %r", raw)
                continue
            try:
                history.append(HistoryEvent.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                logger.warning("skipping malformed history entry: %r", raw)

        version = _int_or_zero(data.get(VERSION))
        epoch = _int_or_zero(data.get(EPOCH))

        return cls(
            reps=tuple(reps),
            queue=_id_sequence(data.get(QUEUE)),
            stepped_away=_id_sequence(data.get(STEPPED_AWAY)),
            with_customer=_id_sequence(data.get(WITH_CUSTOMER)),
            history=tuple(history),
            is_setup_complete=bool(data.get(SETUP_COMPLETE) or False),
            version=version,
            epoch=epoch,
        )


def _int_or_zero(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_list(value: Any) -> list[Any]:
    # Some document stores turn sparse arrays into index-keyed objects.
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, list):
        return value
    return []


def _id_sequence(value: Any) -> tuple[RepId, ...]:
    """Decode a list of rep ids, dropping duplicates and junk, keeping order."""
    out: list[RepId] = []
    for raw in _as_list(value):
        try:
            rid = int(raw)
        except (TypeError, ValueError):
            logger.warning("skipping malformed rep id: %r", raw)
            continue
        if rid not in out:
            out.append(rid)
    return tuple(out)


def without(ids: tuple[RepId, ...], rep_id: RepId) -> tuple[RepId, ...]:
    return tuple(i for i in ids if i != rep_id)


def with_appended(ids: tuple[RepId, ...], rep_id: RepId) -> tuple[RepId, ...]:
    """Move `rep_id` to the tail (appends if absent)."""
    return without(ids, rep_id) + (rep_id,)


@dataclass(frozen=True)
class RepSummary:
    """One rep as shown by the presentation layer."""

    rep: Rep
    status: RepStatus
    position: int | None = None  # 1-based, within the active queue
    is_designated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.rep.to_dict(),
            "status": self.status.value,
            "position": self.position,
            "isDesignated": self.is_designated,
        }
