from up_queue.models import Rep, RepStatus, Snapshot
from up_queue.rotation import active_queue, designated_rep, position, rep_status

REPS = (Rep(1, "Alice", "A"), Rep(2, "Bob", "B"), Rep(3, "Carl", "C"), Rep(4, "Dee", "D"))


def test_active_queue_filters_away_and_busy_preserving_order():
    snap = Snapshot(reps=REPS, queue=(3, 1, 2, 4), stepped_away=(1,), with_customer=(2,))
    assert active_queue(snap) == [3, 4]
    assert designated_rep(snap) == 3
    assert position(snap, 4) == 2
    assert position(snap, 1) is None


def test_no_designated_rep_when_everyone_is_unavailable():
    snap = Snapshot(reps=REPS, queue=(1, 2), stepped_away=(1,), with_customer=(2,))
    assert active_queue(snap) == []
    assert designated_rep(snap) is None


def test_rep_status_covers_every_state():
    snap = Snapshot(reps=REPS, queue=(1, 2, 3), stepped_away=(2,), with_customer=(3,))
    assert rep_status(snap, 1) is RepStatus.UP_NOW
    assert rep_status(snap, 2) is RepStatus.STEPPED_AWAY
    assert rep_status(snap, 3) is RepStatus.WITH_CUSTOMER
    assert rep_status(snap, 4) is RepStatus.NOT_CHECKED_IN

    snap = snap.evolve(queue=(1, 2, 3, 4))
    assert rep_status(snap, 4) is RepStatus.QUEUED


def test_with_customer_wins_over_stepped_away():
    snap = Snapshot(reps=REPS, queue=(1,), stepped_away=(1,), with_customer=(1,))
    assert rep_status(snap, 1) is RepStatus.WITH_CUSTOMER
