import pytest

from up_queue.models import Action, Rep, Snapshot


def test_rep_from_name_trims_and_derives_avatar():
    rep = Rep.from_name(7, "  zoe ")
    assert rep == Rep(7, "zoe", "Z")


def test_rep_from_blank_name_fails():
    with pytest.raises(ValueError):
        Rep.from_name(1, "   ")


def test_snapshot_document_uses_store_keys():
    snap = Snapshot(reps=(Rep(1, "Alice", "A"),), queue=(1,), is_setup_complete=True, version=3)
    doc = snap.to_dict()
    assert set(doc) == {"reps", "queue", "steppedAway", "withCustomer", "history", "isSetupComplete", "version", "epoch"}
    assert Snapshot.from_dict(doc) == snap
    assert snap.field_values({"queue", "version"}) == {"queue": [1], "version": 3}


def test_missing_fields_default_to_empty():
    snap = Snapshot.from_dict({"reps": [{"id": 1, "name": "Alice", "avatar": "A"}]})
    assert snap.queue == () and snap.history == () and not snap.is_setup_complete
    assert Snapshot.from_dict(None) == Snapshot()


def test_malformed_entries_are_skipped():
    doc = {
        "reps": [None, {"id": "x", "name": "Bad"}, "junk", {"id": 2, "name": "Bob"}],
        "queue": [2, None, "nope", 2, "3"],
        "history": [
            None,
            {"id": 1, "repId": 2, "repName": "Bob", "action": "teleported", "timestamp": ""},
            {"id": 2, "repId": 2, "action": "checked_in"},
        ],
        "version": "junk",
    }
    snap = Snapshot.from_dict(doc)
    assert [r.name for r in snap.reps] == ["Bob"]
    assert snap.reps[0].avatar == "B"
    assert snap.queue == (2, 3)
    assert len(snap.history) == 1
    assert snap.history[0].action is Action.CHECKED_IN
    assert snap.history[0].rep_name == "Unknown"
    assert snap.version == 0


def test_index_keyed_arrays_are_accepted():
    snap = Snapshot.from_dict({"queue": {"0": 4, "1": 5}})
    assert snap.queue == (4, 5)


def test_rep_name_falls_back_to_unknown():
    assert Snapshot().rep_name(9) == "Unknown"


def test_non_object_document_decodes_to_empty_snapshot():
    assert Snapshot.from_dict(["not", "a", "document"]) == Snapshot()
