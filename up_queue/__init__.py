"""Walk-in rep rotation ("up system") with a shared snapshot store.

Reps check in and are served in rotation order. A rep can step away, be with
a customer, and goes to the back of the line after finishing a customer.

- `engine.QueueEngine`: pure state machine over a `models.Snapshot`
- `rotation` / `stats` / `views`: derived, read-only views
- `sync.QueueSync`: read-compute-write against a store, rehydrates from it
- `store.MemoryStore`, `mqtt_store.MqttSnapshotStore`: store implementations

See `python -m up_queue.app -h` for the command line.
"""
