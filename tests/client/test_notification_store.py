"""Unit tests for the client notification queue."""

import pytest

from cordnode.client.notifications import NotificationStore


class TestNotificationStore:
    def test_emit_helpers(self):
        store = NotificationStore()
        store.success("a")
        store.info("b")
        store.warning("c")
        store.error("d", "details")
        items = store.drain()
        assert [(n.kind, n.title) for n in items] == [
            ("success", "a"),
            ("info", "b"),
            ("warning", "c"),
            ("error", "d"),
        ]
        assert items[-1].message == "details"
        assert items[0].timestamp.tzinfo is not None

    def test_drain_empties_queue(self):
        store = NotificationStore()
        store.info("x")
        store.drain()
        assert len(store) == 0
        assert store.drain() == []

    def test_bounded(self):
        store = NotificationStore(maxlen=3)
        for i in range(5):
            store.info(str(i))
        assert [n.title for n in store.drain()] == ["2", "3", "4"]

    def test_invalid_kind(self):
        with pytest.raises(ValueError):
            NotificationStore().emit("fatal", "nope")
