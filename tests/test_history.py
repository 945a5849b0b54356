import pytest

from up_queue.history import EventIdSequence, make_event, newest_id, prepend, recent
from up_queue.models import Action


def test_ids_strictly_increase_within_the_same_instant():
    ids = EventIdSequence(clock=lambda: 10.0)
    assert [ids.next_id() for _ in range(3)] == [10_000, 10_001, 10_002]


def test_ids_follow_the_clock_when_it_moves_ahead():
    now = [10.0]
    ids = EventIdSequence(clock=lambda: now[0])
    first = ids.next_id()
    now[0] = 20.0
    assert ids.next_id() == 20_000 > first


def test_observe_keeps_ids_above_a_shared_ledger():
    ids = EventIdSequence(clock=lambda: 1.0)
    ids.observe(5_000)
    assert ids.next_id() == 5_001
    ids.observe(10)  # older ids are ignored
    assert ids.next_id() == 5_002


def test_make_event_and_recent_view():
    ids = EventIdSequence(clock=lambda: 0.0)
    history = ()
    for n in range(60):
        event = make_event(ids=ids, rep_id=1, rep_name="Alice", action=Action.CHECKED_IN, clock=lambda: 0.0)
        history = prepend(history, event)

    assert history[0].timestamp == "1970-01-01T00:00:00+00:00"
    view = recent(history)
    assert len(view) == 50
    assert view[0].id == newest_id(history)
    assert recent(history, 5) == list(history[:5])


def test_recent_rejects_negative_limit():
    with pytest.raises(ValueError):
        recent((), -1)
