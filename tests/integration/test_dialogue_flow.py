"""Integration tests for the full dialogue flow.

These tests wire the real codecs, the JSON file store, the orchestrator and
the companion view together, mocking only the inference service.  Two
:class:`DocumentStore` instances over the same file stand in for the
primary and the companion viewer.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from multilogue.companion import COMPANION_ADDRESS, PRIMARY_ADDRESS, CompanionCoordinator, CompanionView
from multilogue.files import load_transcript, save_transcript
from multilogue.markup import from_markup, to_markup
from multilogue.messages import to_grouped_messages
from multilogue.models.messages import InferenceRequest, MachineConfig
from multilogue.orchestrator import CycleStatus, InferenceOrchestrator
from multilogue.store import PRIMARY_KEY, DocumentStore, JsonFileBackend

_DIALOGUE = (
    "INSTRUCTIONS: Keep replies to one sentence.\n\n"
    "Alice: Shall we start the story?\n\n"
    "Bob: Only if it has dragons.\n\n"
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ScriptedInference:
    """Replies from a fixed script, one entry per request."""

    def __init__(self, replies: list[dict[str, Any]]) -> None:
        self._replies = list(replies)
        self.requests: list[InferenceRequest] = []

    async def __call__(self, request: InferenceRequest, credential: str) -> dict[str, Any]:
        self.requests.append(request)
        return self._replies.pop(0)


def _reply(text: str, thought: str | None = None) -> dict[str, Any]:
    parts: list[dict[str, Any]] = []
    if thought:
        parts.append({"text": thought, "thought": True})
    parts.append({"text": text})
    return {"type": "success", "data": {"content": {"parts": parts}}}


class _Handle:
    def __init__(self, address: str) -> None:
        self.closed = False
        self.location: str | None = address

    def navigate(self, address: str) -> None:
        self.location = address


class _Opener:
    def __init__(self) -> None:
        self.opened: list[_Handle] = []

    def find(self, name: str) -> _Handle | None:
        return self.opened[-1] if self.opened else None

    def open(self, address: str, name: str) -> _Handle:
        handle = _Handle(address)
        self.opened.append(handle)
        return handle


class _Timer:
    def __init__(self, callback: Any) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class _Loop:
    def __init__(self) -> None:
        self.timers: list[_Timer] = []

    def call_later(self, delay: float, callback: Any) -> _Timer:
        timer = _Timer(callback)
        self.timers.append(timer)
        return timer


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestDialogueFlow:
    """Load, run cycles, show reasoning, save."""

    def test_two_cycles_then_save(self, tmp_path: Path) -> None:
        store_path = tmp_path / "store.json"
        source = tmp_path / "dialogue.txt"
        source.write_text(_DIALOGUE, encoding="utf-8")
        primary = DocumentStore(JsonFileBackend(store_path))

        load_transcript(primary, source)

        inference = ScriptedInference(
            [
                _reply("A dragon <em>lands</em> on the roof.", thought="Bob asked for dragons."),
                _reply("pass"),
            ]
        )
        orchestrator = InferenceOrchestrator(
            primary, MachineConfig(name="Narrator"), inference, credential="key"
        )

        first = asyncio.run(orchestrator.run_cycle())
        second = asyncio.run(orchestrator.run_cycle())

        expected = _DIALOGUE + "Narrator: A dragon lands on the roof.\n\n"
        assert first.status is CycleStatus.APPLIED
        assert second.status is CycleStatus.PASSED
        assert primary.transcript == expected
        assert primary.notes == "Bob asked for dragons."

        # The second request saw the first reply as a model turn.
        roles = [m.role for m in inference.requests[1].messages]
        assert roles == ["user", "model"]

        written = save_transcript(primary, tmp_path)
        assert written.read_text(encoding="utf-8") == expected

    def test_reasoning_opens_and_refreshes_companion(self, tmp_path: Path) -> None:
        store_path = tmp_path / "store.json"
        primary = DocumentStore(JsonFileBackend(store_path))
        companion_store = DocumentStore(JsonFileBackend(store_path))
        primary.set(PRIMARY_KEY, _DIALOGUE)

        opener = _Opener()
        coordinator = CompanionCoordinator(primary, opener)
        coordinator.attach()

        rendered: list[str] = []
        navigated: list[str] = []
        loop = _Loop()
        view = CompanionView(companion_store, rendered.append, navigated.append, loop)  # type: ignore[arg-type]
        view.load()

        inference = ScriptedInference([_reply("Fire!", thought="Time for action.")])
        orchestrator = InferenceOrchestrator(
            primary, MachineConfig(name="Narrator"), inference, credential="key"
        )
        asyncio.run(orchestrator.run_cycle())

        assert len(opener.opened) == 1
        assert opener.opened[0].location == COMPANION_ADDRESS

        companion_store.sync()
        assert rendered[-1] == "Time for action."

        pending = [t for t in loop.timers if not t.cancelled]
        assert len(pending) == 1
        pending[0].callback()
        assert navigated == [PRIMARY_ADDRESS]

    def test_markup_and_messages_agree(self) -> None:
        markup = to_markup(_DIALOGUE)

        assert from_markup(markup) == _DIALOGUE
        assert to_grouped_messages(markup, "Narrator", fmt="markup") == to_grouped_messages(
            _DIALOGUE, "Narrator"
        )
