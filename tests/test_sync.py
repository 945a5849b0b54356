from up_queue.engine import Outcome, QueueEngine
from up_queue.models import Rep, Snapshot
from up_queue.store import MemoryStore
from up_queue.sync import QueueSync


class FullWriteStore(MemoryStore):
    """Memory store that behaves like a full-document (last-writer-wins) store."""

    supports_partial_writes = False


def make_sync(store=None):
    store = store if store is not None else MemoryStore()
    sync = QueueSync(store=store, engine=QueueEngine(clock=lambda: 50.0))
    sync.start()
    return store, sync


def test_commands_persist_and_rehydrate_observers():
    store, sync = make_sync()
    _, observer = make_sync(store)

    assert sync.complete_setup(["Alice", "Bob"]).applied
    assert sync.check_in(1).applied
    assert sync.check_in(2).applied

    assert [r.rep.name for r in observer.active_queue_view()] == ["Alice", "Bob"]
    assert observer.designated_rep() == 1
    assert observer.current_snapshot == store.read()


def test_noop_does_not_write():
    store, sync = make_sync()
    sync.complete_setup(["Alice", "Bob"])
    sync.check_in(1)
    sync.check_in(2)
    writes = store.writes

    result = sync.take_customer(2)
    assert result.outcome is Outcome.NOOP
    assert store.writes == writes
    assert len(sync.history_view()) == 2


def test_scenarios_a_b_d_through_the_store():
    store, sync = make_sync()
    sync.complete_setup(["Alice", "Bob"])
    sync.check_in(1)
    sync.check_in(2)
    sync.take_customer(1)
    assert [r.rep.id for r in sync.active_queue_view()] == [2]
    sync.finished_with_customer(1)

    assert store.read().queue == (2, 1)
    queue = sync.active_queue_view()
    assert [(r.rep.id, r.position, r.is_designated) for r in queue] == [(2, 1, True), (1, 2, False)]
    assert [(s.rep.name, s.customers_taken) for s in sync.stats_view()] == [("Alice", 2), ("Bob", 0)]


def test_store_unavailable_is_reported_as_failure():
    store, sync = make_sync()
    sync.complete_setup(["Alice"])
    store.available = False

    result = sync.check_in(1)
    assert result.outcome is Outcome.FAILED
    assert result.to_message()["code"] == "store_unavailable"

    store.available = True
    assert store.read().queue == ()


def test_partial_writes_keep_fields_the_command_does_not_own():
    store, sync = make_sync()
    sync.complete_setup(["Alice", "Bob"])
    sync.check_in(1)

    # Another writer adds a rep between our read and our write.
    original_read = store.read

    def racing_read():
        snap = original_read()
        store.update({"reps": [r.to_dict() for r in snap.reps] + [{"id": 9, "name": "Zed", "avatar": "Z"}]})
        return snap

    store.read = racing_read
    assert sync.check_in(2).applied
    store.read = original_read

    final = store.read()
    assert final.queue == (1, 2)
    assert final.rep(9) is not None


def test_full_snapshot_store_is_last_writer_wins():
    store, sync = make_sync(FullWriteStore())
    sync.complete_setup(["Alice", "Bob"])

    original_read = store.read

    def racing_read():
        snap = original_read()
        store.write(snap.evolve(reps=snap.reps + (Rep(9, "Zed", "Z"),)))
        return snap

    store.read = racing_read
    assert sync.check_in(2).applied
    store.read = original_read

    # The concurrent rep addition was overwritten.
    assert store.read().rep(9) is None


def test_clear_day_and_full_reset():
    store, sync = make_sync()
    sync.complete_setup(["Alice", "Bob"])
    sync.check_in(1)
    sync.toggle_step_away(1)

    assert sync.clear_day().outcome is Outcome.NOOP
    assert sync.clear_day(confirm=True).applied
    snap = store.read()
    assert snap.queue == () and snap.history == () and len(snap.reps) == 2

    assert sync.full_reset(confirm=True).applied
    assert store.read() is None
    assert sync.current_snapshot == Snapshot()
    assert not sync.current_snapshot.is_setup_complete


def test_stale_deliveries_are_dropped():
    store, sync = make_sync()
    sync.complete_setup(["Alice"])
    sync.check_in(1)
    current = sync.current_snapshot

    sync._on_snapshot(current.evolve(version=current.version - 1, queue=()))
    assert sync.current_snapshot == current


def test_remove_and_add_rep():
    store, sync = make_sync()
    sync.complete_setup(["Alice", "Bob"])
    sync.check_in(2)
    assert sync.add_rep("Cleo").applied
    assert sync.remove_rep(2).applied
    names = [r.rep.name for r in sync.roster_view()]
    assert names == ["Alice", "Cleo"]
    assert sync.current_snapshot.queue == ()


def test_listeners_and_stop():
    store, sync = make_sync()
    seen = []
    sync.add_listener(seen.append)
    sync.complete_setup(["Alice"])
    assert seen and seen[-1].is_setup_complete

    sync.stop()
    count = len(seen)
    sync.check_in(1)
    assert len(seen) == count


def test_resubscribing_after_a_reset_picks_up_the_new_roster():
    store = MemoryStore()
    _, writer = make_sync(store)
    _, observer = make_sync(store)
    writer.complete_setup(["Alice", "Bob"])
    for rep_id in (1, 2, 1):
        writer.check_in(rep_id)
        writer.toggle_step_away(rep_id)
    old_version = observer.current_snapshot.version
    assert old_version > 2

    observer.stop()
    writer.full_reset(confirm=True)
    writer.complete_setup(["Carl"])
    observer.start()

    assert observer.current_snapshot == store.read()
    assert [r.name for r in observer.current_snapshot.reps] == ["Carl"]


def test_new_setup_epoch_replaces_a_higher_version():
    now = [100.0]
    store = MemoryStore()
    sync = QueueSync(store=store, engine=QueueEngine(clock=lambda: now[0]))
    sync.start()
    sync.complete_setup(["Alice"])
    sync.check_in(1)
    sync.toggle_step_away(1)
    stale = sync.current_snapshot

    now[0] = 200.0
    fresh = QueueEngine(clock=lambda: now[0]).complete_setup(Snapshot(), ["Carl"]).snapshot
    assert fresh.version < stale.version
    store.write(fresh)
    assert sync.current_snapshot == fresh


def test_refresh_always_takes_the_store_value():
    store, sync = make_sync()
    sync.complete_setup(["Alice"])
    sync.check_in(1)
    sync.stop()
    store.write(sync.current_snapshot.evolve(version=1, queue=()))

    assert sync.refresh().queue == ()


def test_null_entries_in_the_store_do_not_break_commands():
    store = MemoryStore()
    store.update({"reps": [None, {"id": 1, "name": "Alice", "avatar": "A"}], "history": [None], "queue": []})
    _, sync = make_sync(store)

    assert sync.check_in(1).applied
    assert store.read().queue == (1,)
