from __future__ import annotations

# History ledger.
#
# The ledger is an append-only, newest-first tuple of HistoryEvent. Events are
# never edited; only clear_day / full reset wipe the whole ledger.
#
# Event ids must be strictly increasing in creation order even when several
# events are produced within the same millisecond, so ids come from a
# sequence object rather than straight from the wall clock.

import threading
import time
from datetime import datetime, timezone
from typing import Callable

from .models import Action, HistoryEvent, RepId

DEFAULT_HISTORY_VIEW_LIMIT = 50

Clock = Callable[[], float]


class EventIdSequence:
    """Issues time-based ids: max(now_ms, last + 1)."""

    def __init__(self, *, clock: Clock = time.time, last_id: int = 0) -> None:
        self._clock = clock
        self._last = last_id
        self._lock = threading.Lock()

    def observe(self, event_id: int) -> None:
        """Make sure future ids are above an id seen in a shared ledger."""
        with self._lock:
            if event_id > self._last:
                self._last = event_id

    def next_id(self) -> int:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            self._last = max(now_ms, self._last + 1)
            return self._last


def utc_timestamp(clock: Clock = time.time) -> str:
    return datetime.fromtimestamp(clock(), tz=timezone.utc).isoformat()


def make_event(
    *,
    ids: EventIdSequence,
    rep_id: RepId,
    rep_name: str,
    action: Action,
    clock: Clock = time.time,
) -> HistoryEvent:
    return HistoryEvent(
        id=ids.next_id(),
        rep_id=rep_id,
        rep_name=rep_name,
        action=action,
        timestamp=utc_timestamp(clock),
    )


def prepend(history: tuple[HistoryEvent, ...], event: HistoryEvent) -> tuple[HistoryEvent, ...]:
    return (event, *history)


def recent(
    history: tuple[HistoryEvent, ...], limit: int = DEFAULT_HISTORY_VIEW_LIMIT
) -> list[HistoryEvent]:
    """Newest-first view of at most `limit` events."""
    if limit < 0:
        raise ValueError("limit must be >= 0")
    return list(history[:limit])


def newest_id(history: tuple[HistoryEvent, ...]) -> int:
    return max((e.id for e in history), default=0)
