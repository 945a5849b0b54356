"""Stats aggregator: fold the history ledger into per-rep counts.

The count is an *interaction-event* count, not a deduplicated number of
customers. Both `took_customer` and `finished_customer` are counted, so a
customer taken in rotation and then finished adds 2 to the rep's count,
while one assigned with "mark with customer" (`with_customer`, not counted)
and then finished adds 1. This mirrors how the events are emitted and is
kept as-is on purpose.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any

from .models import Action, Rep, RepStatus, Snapshot
from .rotation import rep_status

COUNTED_ACTIONS = frozenset({Action.TOOK_CUSTOMER, Action.FINISHED_CUSTOMER})


@dataclass(frozen=True)
class RepStats:
    rep: Rep
    customers_taken: int
    status: RepStatus
    is_active: bool
    is_stepped_away: bool
    is_with_customer: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.rep.to_dict(),
            "customersTaken": self.customers_taken,
            "status": self.status.value,
            "isActive": self.is_active,
            "isSteppedAway": self.is_stepped_away,
            "isWithCustomer": self.is_with_customer,
        }


def customer_counts(snapshot: Snapshot) -> Counter[int]:
    counts: Counter[int] = Counter()
    for event in snapshot.history:
        if event.action in COUNTED_ACTIONS:
            counts[event.rep_id] += 1
    return counts


def rep_stats(snapshot: Snapshot) -> list[RepStats]:
    """Current reps ranked by count, descending; ties keep roster order."""
    counts = customer_counts(snapshot)
    rows = [
        RepStats(
            rep=rep,
            customers_taken=counts.get(rep.id, 0),
            status=rep_status(snapshot, rep.id),
            is_active=rep.id in snapshot.queue,
            is_stepped_away=rep.id in snapshot.stepped_away,
            is_with_customer=rep.id in snapshot.with_customer,
        )
        for rep in snapshot.reps
    ]
    # sorted() is stable, which gives the roster-order tie break.
    return sorted(rows, key=lambda r: r.customers_taken, reverse=True)
