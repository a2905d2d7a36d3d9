"""Companion view coordination for the auxiliary notes document.

When reasoning notes are stored, a secondary viewer should show them.  The
primary side (:class:`CompanionCoordinator`) makes sure one tagged viewer
exists and points at the companion address; the secondary side
(:class:`CompanionView`) renders the notes and, after a short delay,
navigates itself back to the primary view.

Viewer handles are external collaborators described by the
:class:`ViewHandle` and :class:`ViewOpener` protocols.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from typing import Protocol
from urllib.parse import urlparse

from multilogue.store import AUXILIARY_KEY, ChangeEvent, DocumentStore

logger = logging.getLogger(__name__)

COMPANION_ADDRESS = "thoughts.html"
PRIMARY_ADDRESS = "machine.html"
COMPANION_HANDLE = "geminiThoughtsTab"

RETURN_DELAY = 1.0  # seconds
EMPTY_NOTES_PLACEHOLDER = "There were no thoughts."


class ViewError(Exception):
    """Raised by a view handle when it cannot be navigated."""


class ViewHandle(Protocol):
    """A secondary viewer window or tab."""

    @property
    def closed(self) -> bool: ...

    @property
    def location(self) -> str | None:
        """Current address, or ``None`` when it cannot be determined."""
        ...

    def navigate(self, address: str) -> None: ...


class ViewOpener(Protocol):
    """Opens and finds named viewers."""

    def find(self, name: str) -> ViewHandle | None: ...

    def open(self, address: str, name: str) -> ViewHandle: ...


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


class ViewStatus(str, enum.Enum):
    ABSENT = "absent"
    AT_TARGET = "at_target"
    ELSEWHERE = "elsewhere"
    UNKNOWN = "unknown"


class ViewAction(str, enum.Enum):
    OPEN = "open"
    NAVIGATE = "navigate"
    NONE = "none"


TRANSITIONS: dict[ViewStatus, ViewAction] = {
    ViewStatus.ABSENT: ViewAction.OPEN,
    ViewStatus.ELSEWHERE: ViewAction.NAVIGATE,
    ViewStatus.UNKNOWN: ViewAction.NAVIGATE,
    ViewStatus.AT_TARGET: ViewAction.NONE,
}


def view_status(handle: ViewHandle | None, address: str) -> ViewStatus:
    """Classify *handle* relative to the target *address*."""
    if handle is None or handle.closed:
        return ViewStatus.ABSENT
    location = handle.location
    if location is None:
        return ViewStatus.UNKNOWN
    if urlparse(location).path.endswith(address):
        return ViewStatus.AT_TARGET
    return ViewStatus.ELSEWHERE


class CompanionCoordinator:
    """Keeps one tagged companion viewer in sync with the notes document.

    Args:
        store: The document store to observe.
        opener: Opens and finds viewers.
        address: Companion address to show.
        name: Handle name the companion viewer is tagged with.
    """

    def __init__(
        self,
        store: DocumentStore,
        opener: ViewOpener,
        *,
        address: str = COMPANION_ADDRESS,
        name: str = COMPANION_HANDLE,
    ) -> None:
        self._store = store
        self._opener = opener
        self._address = address
        self._name = name
        self._handle: ViewHandle | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self) -> None:
        """Start reacting to changes of the auxiliary key."""
        if self._unsubscribe is None:
            self._unsubscribe = self._store.on_change(AUXILIARY_KEY, self.handle_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle_change(self, event: ChangeEvent) -> ViewAction:
        """React to one auxiliary-key change.

        Empty notes never touch the viewer.

        Returns:
            The action that was taken.
        """
        if not event.value or not event.value.strip():
            return ViewAction.NONE

        handle = self._handle if self._handle is not None else self._opener.find(self._name)
        status = view_status(handle, self._address)
        action = TRANSITIONS[status]
        logger.info("Companion view is %s, action: %s", status.value, action.value)

        if handle is None or action is ViewAction.OPEN:
            self._handle = self._opener.open(self._address, self._name)
            action = ViewAction.OPEN
        elif action is ViewAction.NAVIGATE:
            try:
                handle.navigate(self._address)
                self._handle = handle
            except ViewError as exc:
                logger.error("Failed to navigate companion view, reopening: %s", exc)
                self._handle = self._opener.open(self._address, self._name)
                action = ViewAction.OPEN
        else:
            self._handle = handle
        return action


# ---------------------------------------------------------------------------
# Secondary side
# ---------------------------------------------------------------------------


class CompanionView:
    """The companion viewer itself.

    Renders the current notes on load and on each notes change, then
    schedules exactly one self-navigation back to the primary view after
    :data:`RETURN_DELAY`.  A newer render replaces a pending return.

    Args:
        store: The document store to read notes from.
        render: Displays the given text.
        navigate_self: Replaces this viewer's address (never opens a new
            viewer).
        loop: Event loop used for the delayed return.
        primary_address: Where to return to.
        delay: Seconds before returning.
    """

    def __init__(
        self,
        store: DocumentStore,
        render: Callable[[str], None],
        navigate_self: Callable[[str], None],
        loop: asyncio.AbstractEventLoop,
        *,
        primary_address: str = PRIMARY_ADDRESS,
        delay: float = RETURN_DELAY,
    ) -> None:
        self._store = store
        self._render = render
        self._navigate_self = navigate_self
        self._loop = loop
        self._primary_address = primary_address
        self._delay = delay
        self._pending: asyncio.TimerHandle | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def load(self) -> None:
        """Render the notes, schedule the return and start listening."""
        self.refresh()
        self._schedule_return()
        if self._unsubscribe is None:
            self._unsubscribe = self._store.on_change(AUXILIARY_KEY, self._on_notes_change)

    def refresh(self) -> str:
        """Re-render the current notes without scheduling a return."""
        text = self._store.notes
        shown = text if text.strip() else EMPTY_NOTES_PLACEHOLDER
        self._render(shown)
        return shown

    def close(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_notes_change(self, event: ChangeEvent) -> None:
        logger.info("Notes changed, refreshing companion view")
        self.refresh()
        self._schedule_return()

    def _schedule_return(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self._loop.call_later(self._delay, self._return_to_primary)

    def _return_to_primary(self) -> None:
        self._pending = None
        logger.info("Returning to %s", self._primary_address)
        self._navigate_self(self._primary_address)
