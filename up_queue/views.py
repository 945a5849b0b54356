"""Read-only views for the presentation layer."""

from __future__ import annotations

from .history import DEFAULT_HISTORY_VIEW_LIMIT, recent
from .models import HistoryEvent, RepStatus, RepSummary, Snapshot
from .rotation import active_queue, rep_status
from .stats import RepStats, rep_stats


def active_queue_view(snapshot: Snapshot) -> list[RepSummary]:
    out: list[RepSummary] = []
    for rep_id in active_queue(snapshot):
        rep = snapshot.rep(rep_id)
        if rep is None:
            # Queued id with no roster entry; nothing to show for it.
            continue
        first = not out
        out.append(
            RepSummary(
                rep=rep,
                status=RepStatus.UP_NOW if first else RepStatus.QUEUED,
                position=len(out) + 1,
                is_designated=first,
            )
        )
    return out


def roster_view(snapshot: Snapshot) -> list[RepSummary]:
    """Every rep in roster order, with status and queue position."""
    queued = {s.rep.id: s for s in active_queue_view(snapshot)}
    out: list[RepSummary] = []
    for rep in snapshot.reps:
        summary = queued.get(rep.id)
        if summary is None:
            summary = RepSummary(rep=rep, status=rep_status(snapshot, rep.id))
        out.append(summary)
    return out


def stats_view(snapshot: Snapshot) -> list[RepStats]:
    return rep_stats(snapshot)


def history_view(snapshot: Snapshot, limit: int = DEFAULT_HISTORY_VIEW_LIMIT) -> list[HistoryEvent]:
    return recent(snapshot.history, limit)
