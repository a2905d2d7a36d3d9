"""Console rendering for the multilogue CLI.

Renders the stored dialogue in any of its representations and formats
inference cycle outcomes.  This is the only place (together with
``__main__``) that produces user-facing text.
"""

from __future__ import annotations

import json
import sys
from typing import Literal

from multilogue.markup import to_markup
from multilogue.messages import to_flat_messages, to_grouped_messages
from multilogue.orchestrator import CycleOutcome, CycleStatus

DisplayFormat = Literal["text", "markup", "flat", "grouped"]
DISPLAY_FORMATS: tuple[str, ...] = ("text", "markup", "flat", "grouped")

_SEPARATOR = "=" * 60

_STATUS_TAGS: dict[CycleStatus, str] = {
    CycleStatus.APPLIED: "OK",
    CycleStatus.PASSED: "PASS",
    CycleStatus.STALE: "STALE",
    CycleStatus.FAILED: "FAILED",
    CycleStatus.NEEDS_CREDENTIAL: "CREDENTIAL",
    CycleStatus.NOTHING_TO_SEND: "EMPTY",
}


def render_document(transcript: str, fmt: DisplayFormat, model_name: str | None = None) -> str:
    """Render *transcript* in the requested representation.

    Message formats are rendered as indented JSON.

    Raises:
        MissingConfigurationError: If a message format is requested
            without a model name.
        ValueError: If *fmt* is unknown.
    """
    if fmt == "text":
        return transcript
    if fmt == "markup":
        return to_markup(transcript)
    if fmt == "flat":
        messages = to_flat_messages(transcript, model_name)
    elif fmt == "grouped":
        messages = to_grouped_messages(transcript, model_name)
    else:
        raise ValueError(f"Unknown display format: {fmt!r}")
    return json.dumps([m.model_dump() for m in messages], indent=2, ensure_ascii=False)


def format_outcome(outcome: CycleOutcome, show_notes: bool = True) -> str:
    """Render a :class:`CycleOutcome` for the console."""
    lines = [f"[{_STATUS_TAGS[outcome.status]}] {outcome.message}"]
    if outcome.notes and show_notes:
        lines.append("")
        lines.append("--- THOUGHTS ---")
        lines.append(outcome.notes)
        lines.append(_SEPARATOR)
    return "\n".join(lines)


def print_outcome(outcome: CycleOutcome) -> None:
    """Format and print a :class:`CycleOutcome` to stdout."""
    sys.stdout.write(format_outcome(outcome) + "\n")
