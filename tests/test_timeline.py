"""
Tests for the Timeline Store.
"""

import pytest

from victor.core.timeline import ChangeKind, Speaker, TimelineStore


def append_text(entry, piece):
    return entry.with_text((entry.text or "") + piece)


class TestAppend:
    """Tests for appending entries."""

    def test_ids_are_unique_and_ordered(self, store):
        first = store.append(Speaker.USER, text="one")
        second = store.append(Speaker.ASSISTANT, text="two")

        assert first != second
        assert [e.id for e in store.entries] == [first, second]
        assert store.last.id == second
        assert len(store) == 2

    def test_entry_fields(self, store):
        entry_id = store.append(Speaker.ASSISTANT, text="", streaming=True)
        entry = store.get(entry_id)

        assert entry.speaker == Speaker.ASSISTANT
        assert entry.text == ""
        assert entry.widget is None
        assert entry.streaming is True

    def test_entries_snapshot_is_immutable(self, store):
        store.append(Speaker.USER, text="hi")
        snapshot = store.entries
        store.append(Speaker.ASSISTANT, text="hello")

        assert len(snapshot) == 1
        assert isinstance(snapshot, tuple)


class TestMutateLast:
    """Tests for tail-only mutation."""

    def test_mutates_streaming_tail(self, store):
        entry_id = store.append(Speaker.ASSISTANT, text="", streaming=True)

        assert store.mutate_last(entry_id, lambda e: append_text(e, "Hel")) is True
        assert store.mutate_last(entry_id, lambda e: append_text(e, "lo")) is True
        assert store.get(entry_id).text == "Hello"
        assert store.get(entry_id).streaming is True

    def test_stale_handle_is_dropped(self, store):
        """A handle to A must not touch B once B has been appended."""
        a = store.append(Speaker.ASSISTANT, text="partial", streaming=True)
        b = store.append(Speaker.USER, text="next message")

        assert store.mutate_last(a, lambda e: append_text(e, " more")) is False
        assert store.get(a).text == "partial"
        assert store.get(b).text == "next message"
        assert [e.id for e in store.entries] == [a, b]

    def test_frozen_tail_is_not_mutated(self, store):
        entry_id = store.append(Speaker.ASSISTANT, text="done", streaming=True)
        store.freeze(entry_id)

        assert store.mutate_last(entry_id, lambda e: append_text(e, "!")) is False
        assert store.get(entry_id).text == "done"

    def test_updater_cannot_change_id(self, store):
        import dataclasses

        entry_id = store.append(Speaker.ASSISTANT, text="", streaming=True)

        with pytest.raises(ValueError):
            store.mutate_last(entry_id, lambda e: dataclasses.replace(e, id="other"))

    def test_unknown_id(self, store):
        assert store.mutate_last("missing", lambda e: e) is False


class TestReplaceAndFreeze:
    """Tests for error substitution and freezing."""

    def test_replace_streaming_entry(self, store):
        entry_id = store.append(Speaker.ASSISTANT, text="half a sent", streaming=True)

        assert store.replace(entry_id, text="Apologies.") is True
        entry = store.get(entry_id)
        assert entry.text == "Apologies."
        assert entry.streaming is False

    def test_replace_works_when_not_tail(self, store):
        entry_id = store.append(Speaker.ASSISTANT, text="half", streaming=True)
        store.append(Speaker.USER, text="later")

        assert store.replace(entry_id, text="Apologies.") is True
        assert store.entries[0].text == "Apologies."

    def test_replace_frozen_entry_refused(self, store):
        entry_id = store.append(Speaker.USER, text="hello")

        assert store.replace(entry_id, text="changed") is False
        assert store.get(entry_id).text == "hello"

    def test_freeze_is_idempotent(self, store):
        entry_id = store.append(Speaker.ASSISTANT, text="x", streaming=True)

        assert store.freeze(entry_id) is True
        assert store.freeze(entry_id) is False


class TestListeners:
    """Tests for change notifications."""

    def test_change_sequence(self, store):
        changes = []
        store.subscribe(lambda kind, entry: changes.append((kind, entry.text)))

        entry_id = store.append(Speaker.ASSISTANT, text="", streaming=True)
        store.mutate_last(entry_id, lambda e: append_text(e, "Hi"))
        store.freeze(entry_id)

        assert changes == [
            (ChangeKind.APPENDED, ""),
            (ChangeKind.UPDATED, "Hi"),
            (ChangeKind.FROZEN, "Hi"),
        ]

    def test_failing_listener_does_not_break_store(self, store):
        def broken(kind, entry):
            raise RuntimeError("render failed")

        store.subscribe(broken)
        entry_id = store.append(Speaker.USER, text="still stored")

        assert store.get(entry_id).text == "still stored"

    def test_unsubscribe(self, store):
        changes = []
        listener = lambda kind, entry: changes.append(kind)
        store.subscribe(listener)
        store.unsubscribe(listener)

        store.append(Speaker.USER, text="quiet")
        assert changes == []


class TestOrderingProperty:
    """Entries are never reordered or removed."""

    def test_interleaved_operations_preserve_order(self):
        store = TimelineStore()
        ids = []

        for i in range(5):
            ids.append(store.append(Speaker.USER, text=f"q{i}"))
            reply = store.append(Speaker.ASSISTANT, text="", streaming=True)
            ids.append(reply)
            store.mutate_last(reply, lambda e, i=i: append_text(e, f"a{i}"))
            # Stale writes to older replies are dropped
            for old in ids[:-1]:
                store.mutate_last(old, lambda e: append_text(e, "X"))
            store.freeze(reply)

        assert [e.id for e in store] == ids
        assert [e.text for e in store] == [t for i in range(5) for t in (f"q{i}", f"a{i}")]
