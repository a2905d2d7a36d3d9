"""Document store: one persisted transcript plus one auxiliary notes document.

Wraps a plain string key-value backend and adds change notification.
Every :meth:`DocumentStore.set` persists the value and then synchronously
notifies the subscribers of that key in the writing context, because
backends only ever surface writes made by *other* contexts (which
:meth:`DocumentStore.sync` picks up).
Each write also bumps a per-key counter stored under
``<key>.revision``, which lets :meth:`~DocumentStore.sync` see a rewrite
of identical text.

Usage::

    store = DocumentStore(JsonFileBackend(Path(".multilogue.json")))
    store.on_change(PRIMARY_KEY, lambda event: print(event.value))
    store.set(PRIMARY_KEY, "Alice: hello\\n\\n")
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from multilogue.exceptions import InvalidInputError, MultilogueError
from multilogue.markup import from_markup

logger = logging.getLogger(__name__)

PRIMARY_KEY = "multilogue"
"""Key of the transcript document (plain transcript text)."""

AUXILIARY_KEY = "thoughts"
"""Key of the auxiliary notes document (model reasoning text)."""

REVISION_SUFFIX = ".revision"
"""Suffix of the companion key holding a key's write counter."""


@dataclass(frozen=True)
class ChangeEvent:
    """Change signal broadcast for every write to a key.

    Attributes:
        key: The key that changed.
        value: The new value, or ``None`` if the key was removed by
            another context.
        timestamp: POSIX time of the notification.
    """

    key: str
    value: str | None
    timestamp: float


ChangeHandler = Callable[[ChangeEvent], None]


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class KeyValueBackend(Protocol):
    """Persistent string-keyed storage shared between contexts."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryBackend:
    """In-process backend.  Sharing one instance between stores models
    several contexts looking at the same storage."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileBackend:
    """Backend persisting all keys in a single JSON object file.

    Writes go through a temporary file and :func:`os.replace`, so a reader
    in another process sees either the old or the new document, never a
    partial one.

    Args:
        path: Location of the JSON file.  Created on first write.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("Store file %s is not valid JSON, ignoring it: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Store file %s does not hold a JSON object, ignoring it", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DocumentStore:
    """Owner of the current transcript and auxiliary notes.

    Args:
        backend: Persistent key-value storage.
    """

    def __init__(self, backend: KeyValueBackend) -> None:
        self._backend = backend
        self._handlers: dict[str, list[ChangeHandler]] = {}
        self._last_seen: dict[str, tuple[str | None, int]] = {}
        self._seeded = False

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def get(self, key: str) -> str | None:
        """Return the stored value for *key*, or ``None`` if absent."""
        return self._backend.get(key)

    def set(self, key: str, text: str) -> None:
        """Replace the value of *key* and notify its subscribers.

        Raises:
            InvalidInputError: If *text* is not a string.
        """
        if not isinstance(text, str):
            raise InvalidInputError(f"Stored value must be a string, got {type(text).__name__}")
        revision = self._revision(key) + 1
        self._backend.set(key, text)
        self._backend.set(key + REVISION_SUFFIX, str(revision))
        self._last_seen[key] = (text, revision)
        logger.debug("Stored %d character(s) under %r", len(text), key)
        self._emit(ChangeEvent(key=key, value=text, timestamp=time.time()))

    def on_change(self, key: str, handler: ChangeHandler) -> Callable[[], None]:
        """Subscribe *handler* to writes of *key*.

        Handlers fire for writes made through this store and, via
        :meth:`sync`, for writes made by other contexts.

        Returns:
            A callable that removes the subscription.
        """
        self._handlers.setdefault(key, []).append(handler)
        if key not in self._last_seen:
            self._last_seen[key] = self._snapshot(key)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def sync(self) -> list[ChangeEvent]:
        """Pick up writes made by other contexts and notify subscribers.

        Compares every subscribed key's value and write counter against
        what this store last saw and emits one :class:`ChangeEvent` per key
        that differs, so rewriting the same text still notifies.

        Returns:
            The events that were emitted.
        """
        emitted: list[ChangeEvent] = []
        for key in list(self._handlers):
            snapshot = self._snapshot(key)
            if snapshot == self._last_seen.get(key):
                continue
            self._last_seen[key] = snapshot
            event = ChangeEvent(key=key, value=snapshot[0], timestamp=time.time())
            logger.info("Key %r changed in another context", key)
            self._emit(event)
            emitted.append(event)
        return emitted

    def _revision(self, key: str) -> int:
        raw = self._backend.get(key + REVISION_SUFFIX)
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring unreadable write counter %r for key %r", raw, key)
            return 0

    def _snapshot(self, key: str) -> tuple[str | None, int]:
        return self._backend.get(key), self._revision(key)

    def _emit(self, event: ChangeEvent) -> None:
        for handler in list(self._handlers.get(event.key, [])):
            handler(event)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed(self, static_markup: str | None = None) -> str:
        """Initialise the transcript on first use.

        If the transcript key is absent, its value is derived from any
        pre-existing static markup via :func:`~multilogue.markup.from_markup`
        (empty text when there is none or the conversion fails) and stored.
        Seeding runs at most once per store instance; later calls only
        return the current transcript.

        Args:
            static_markup: Dialogue markup found by the caller, if any.

        Returns:
            The current transcript text.
        """
        if self._seeded:
            return self.transcript
        self._seeded = True

        existing = self.get(PRIMARY_KEY)
        if existing is not None:
            return existing

        initial = ""
        if static_markup is not None and static_markup.strip():
            try:
                initial = from_markup(static_markup)
            except MultilogueError as exc:
                logger.error("Could not convert static markup to transcript text: %s", exc)
                initial = ""

        logger.info("Seeding transcript with %d character(s)", len(initial))
        self.set(PRIMARY_KEY, initial)
        return initial

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    @property
    def transcript(self) -> str:
        """Current transcript text (empty string when absent)."""
        return self.get(PRIMARY_KEY) or ""

    @property
    def notes(self) -> str:
        """Current auxiliary notes (empty string when absent)."""
        return self.get(AUXILIARY_KEY) or ""
