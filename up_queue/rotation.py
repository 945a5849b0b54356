"""Rotation selector: the active queue and who is up now.

Everything here is a pure function of a Snapshot and is recomputed on each
read; nothing is stored.
"""

from __future__ import annotations

from .models import RepId, RepStatus, Snapshot


def active_queue(snapshot: Snapshot) -> list[RepId]:
    """Checked-in reps that are neither stepped away nor with a customer.

    Rotation order is preserved.
    """
    unavailable = set(snapshot.stepped_away) | set(snapshot.with_customer)
    return [rid for rid in snapshot.queue if rid not in unavailable]


def designated_rep(snapshot: Snapshot) -> RepId | None:
    aq = active_queue(snapshot)
    return aq[0] if aq else None


def position(snapshot: Snapshot, rep_id: RepId) -> int | None:
    """1-based position in the active queue, or None when not in it."""
    aq = active_queue(snapshot)
    try:
        return aq.index(rep_id) + 1
    except ValueError:
        return None


def rep_status(snapshot: Snapshot, rep_id: RepId) -> RepStatus:
    # Precedence matters when a malformed snapshot puts a rep in both sets.
    if rep_id not in snapshot.queue:
        return RepStatus.NOT_CHECKED_IN
    if rep_id in snapshot.with_customer:
        return RepStatus.WITH_CUSTOMER
    if rep_id in snapshot.stepped_away:
        return RepStatus.STEPPED_AWAY
    if designated_rep(snapshot) == rep_id:
        return RepStatus.UP_NOW
    return RepStatus.QUEUED
