"""Unit tests for the document store and its backends.

Tests cover: get/set, same-context notification, cross-context sync,
unsubscribe, first-use seeding and the JSON file backend.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from multilogue.exceptions import InvalidInputError
from multilogue.store import (
    AUXILIARY_KEY,
    PRIMARY_KEY,
    REVISION_SUFFIX,
    ChangeEvent,
    DocumentStore,
    JsonFileBackend,
    MemoryBackend,
)

_MARKUP = (
    '<p class="dialogue"><span class="speaker">Alice</span> hello</p>\n'
    '<p class="dialogue"><span class="speaker">BOT</span> hi there</p>'
)


# ---------------------------------------------------------------------------
# Core API
# ---------------------------------------------------------------------------


class TestGetSet:
    """Tests for get, set and the convenience accessors."""

    def test_get_absent_key(self, store: DocumentStore) -> None:
        assert store.get(PRIMARY_KEY) is None

    def test_set_then_get(self, store: DocumentStore) -> None:
        store.set(PRIMARY_KEY, "Alice: hi\n\n")

        assert store.get(PRIMARY_KEY) == "Alice: hi\n\n"

    def test_set_persists_to_backend(self, store: DocumentStore, backend: MemoryBackend) -> None:
        store.set(AUXILIARY_KEY, "thinking")

        assert backend.get(AUXILIARY_KEY) == "thinking"

    def test_set_rejects_non_string(self, store: DocumentStore) -> None:
        with pytest.raises(InvalidInputError):
            store.set(PRIMARY_KEY, None)  # type: ignore[arg-type]

    def test_accessors_default_to_empty_string(self, store: DocumentStore) -> None:
        assert store.transcript == ""
        assert store.notes == ""

    def test_accessors_read_keys(self, store: DocumentStore) -> None:
        store.set(PRIMARY_KEY, "Alice: hi\n\n")
        store.set(AUXILIARY_KEY, "hmm")

        assert store.transcript == "Alice: hi\n\n"
        assert store.notes == "hmm"


# ---------------------------------------------------------------------------
# Change notification
# ---------------------------------------------------------------------------


class TestNotification:
    """The writer's own subscribers are notified synchronously."""

    def test_set_notifies_same_context(self, store: DocumentStore) -> None:
        events: list[ChangeEvent] = []
        store.on_change(PRIMARY_KEY, events.append)

        store.set(PRIMARY_KEY, "Alice: hi\n\n")

        assert len(events) == 1
        assert events[0].key == PRIMARY_KEY
        assert events[0].value == "Alice: hi\n\n"
        assert events[0].timestamp > 0

    def test_notification_happens_after_persisting(self, store: DocumentStore) -> None:
        """Handlers already see the new value when they run."""
        seen: list[str | None] = []
        store.on_change(PRIMARY_KEY, lambda event: seen.append(store.get(PRIMARY_KEY)))

        store.set(PRIMARY_KEY, "new")

        assert seen == ["new"]

    def test_only_matching_key_handlers_fire(self, store: DocumentStore) -> None:
        primary: list[ChangeEvent] = []
        auxiliary: list[ChangeEvent] = []
        store.on_change(PRIMARY_KEY, primary.append)
        store.on_change(AUXILIARY_KEY, auxiliary.append)

        store.set(AUXILIARY_KEY, "hmm")

        assert primary == []
        assert len(auxiliary) == 1

    def test_every_write_notifies(self, store: DocumentStore) -> None:
        """Writing the same value twice still broadcasts twice."""
        events: list[ChangeEvent] = []
        store.on_change(PRIMARY_KEY, events.append)

        store.set(PRIMARY_KEY, "same")
        store.set(PRIMARY_KEY, "same")

        assert len(events) == 2

    def test_handlers_fire_in_subscription_order(self, store: DocumentStore) -> None:
        order: list[str] = []
        store.on_change(PRIMARY_KEY, lambda _e: order.append("first"))
        store.on_change(PRIMARY_KEY, lambda _e: order.append("second"))

        store.set(PRIMARY_KEY, "x")

        assert order == ["first", "second"]

    def test_unsubscribe(self, store: DocumentStore) -> None:
        events: list[ChangeEvent] = []
        unsubscribe = store.on_change(PRIMARY_KEY, events.append)

        unsubscribe()
        unsubscribe()
        store.set(PRIMARY_KEY, "x")

        assert events == []

    def test_handler_exception_propagates(self, store: DocumentStore) -> None:
        def _boom(_event: ChangeEvent) -> None:
            raise RuntimeError("handler failed")

        store.on_change(PRIMARY_KEY, _boom)

        with pytest.raises(RuntimeError, match="handler failed"):
            store.set(PRIMARY_KEY, "x")
        assert store.get(PRIMARY_KEY) == "x"


class TestSync:
    """Writes by another context reach subscribers through sync()."""

    def test_sync_picks_up_other_context_write(self, backend: MemoryBackend) -> None:
        primary_view = DocumentStore(backend)
        companion_view = DocumentStore(backend)
        events: list[ChangeEvent] = []
        companion_view.on_change(AUXILIARY_KEY, events.append)

        primary_view.set(AUXILIARY_KEY, "hmm")
        assert events == []

        emitted = companion_view.sync()

        assert [e.value for e in emitted] == ["hmm"]
        assert events == emitted

    def test_sync_without_changes_emits_nothing(self, store: DocumentStore) -> None:
        store.on_change(PRIMARY_KEY, lambda _e: None)
        store.set(PRIMARY_KEY, "x")

        assert store.sync() == []

    def test_sync_ignores_unsubscribed_keys(self, backend: MemoryBackend) -> None:
        writer = DocumentStore(backend)
        reader = DocumentStore(backend)
        reader.on_change(PRIMARY_KEY, lambda _e: None)

        writer.set(AUXILIARY_KEY, "hmm")

        assert reader.sync() == []

    def test_sync_reports_each_change_once(self, backend: MemoryBackend) -> None:
        writer = DocumentStore(backend)
        reader = DocumentStore(backend)
        reader.on_change(PRIMARY_KEY, lambda _e: None)

        writer.set(PRIMARY_KEY, "one")
        assert len(reader.sync()) == 1
        assert reader.sync() == []

    def test_sync_reports_rewrite_of_same_text(self, backend: MemoryBackend) -> None:
        """Every write notifies, even when the text is unchanged."""
        writer = DocumentStore(backend)
        reader = DocumentStore(backend)
        writer.set(PRIMARY_KEY, "Alice: hi\n\n")
        events: list[ChangeEvent] = []
        reader.on_change(PRIMARY_KEY, events.append)

        writer.set(PRIMARY_KEY, "Alice: hi\n\n")
        reader.sync()

        assert [e.value for e in events] == ["Alice: hi\n\n"]

    def test_write_counter_increments_per_set(self, store: DocumentStore, backend: MemoryBackend) -> None:
        store.set(PRIMARY_KEY, "x")
        store.set(PRIMARY_KEY, "x")

        assert backend.get(PRIMARY_KEY + REVISION_SUFFIX) == "2"

    def test_unreadable_write_counter_restarts(self, backend: MemoryBackend) -> None:
        backend.set(PRIMARY_KEY + REVISION_SUFFIX, "garbage")
        store = DocumentStore(backend)

        store.set(PRIMARY_KEY, "x")

        assert backend.get(PRIMARY_KEY + REVISION_SUFFIX) == "1"


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


class TestSeed:
    """Tests for first-use seeding."""

    def test_seed_from_static_markup(self, store: DocumentStore) -> None:
        text = store.seed(_MARKUP)

        assert text == "Alice: hello\n\nBOT: hi there\n\n"
        assert store.transcript == text

    def test_seed_without_markup_stores_empty_text(self, store: DocumentStore) -> None:
        assert store.seed() == ""
        assert store.get(PRIMARY_KEY) == ""

    def test_seed_keeps_existing_transcript(self, backend: MemoryBackend) -> None:
        backend.set(PRIMARY_KEY, "Bob: already here\n\n")
        store = DocumentStore(backend)

        assert store.seed(_MARKUP) == "Bob: already here\n\n"
        assert store.transcript == "Bob: already here\n\n"

    def test_seed_runs_once(self, store: DocumentStore) -> None:
        events: list[ChangeEvent] = []
        store.on_change(PRIMARY_KEY, events.append)

        store.seed(_MARKUP)
        store.set(PRIMARY_KEY, "")
        store.seed(_MARKUP)

        assert store.transcript == ""
        assert len(events) == 2

    def test_seed_with_unusable_markup(self, store: DocumentStore) -> None:
        assert store.seed("<div>no dialogue</div>") == ""


# ---------------------------------------------------------------------------
# JSON file backend
# ---------------------------------------------------------------------------


class TestJsonFileBackend:
    """Tests for JsonFileBackend."""

    def test_missing_file_reads_as_empty(self, tmp_path: Path) -> None:
        backend = JsonFileBackend(tmp_path / "store.json")

        assert backend.get(PRIMARY_KEY) is None

    def test_set_creates_file(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "store.json"
        backend = JsonFileBackend(path)

        backend.set(PRIMARY_KEY, "Alice: hi\n\n")

        assert json.loads(path.read_text(encoding="utf-8")) == {PRIMARY_KEY: "Alice: hi\n\n"}

    def test_keys_are_preserved_across_writes(self, tmp_path: Path) -> None:
        backend = JsonFileBackend(tmp_path / "store.json")

        backend.set(PRIMARY_KEY, "text")
        backend.set(AUXILIARY_KEY, "notes")

        assert backend.get(PRIMARY_KEY) == "text"
        assert backend.get(AUXILIARY_KEY) == "notes"

    def test_two_instances_share_the_file(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        writer = DocumentStore(JsonFileBackend(path))
        reader = DocumentStore(JsonFileBackend(path))
        events: list[ChangeEvent] = []
        reader.on_change(PRIMARY_KEY, events.append)

        writer.set(PRIMARY_KEY, "Alice: hi\n\n")
        reader.sync()

        assert [e.value for e in events] == ["Alice: hi\n\n"]

    def test_invalid_json_is_ignored_with_warning(
        self,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        backend = JsonFileBackend(path)

        with caplog.at_level(logging.WARNING, logger="multilogue.store"):
            assert backend.get(PRIMARY_KEY) is None

        assert "not valid JSON" in caplog.text

    def test_non_string_values_are_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        path.write_text(json.dumps({PRIMARY_KEY: 42, AUXILIARY_KEY: "ok"}), encoding="utf-8")
        backend = JsonFileBackend(path)

        assert backend.get(PRIMARY_KEY) is None
        assert backend.get(AUXILIARY_KEY) == "ok"

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        backend = JsonFileBackend(tmp_path / "store.json")

        backend.set(PRIMARY_KEY, "x")

        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]
