"""Transcript data models for parsed dialogues.

These dataclasses represent the structured output of the transcript
grammar.  They are intentionally simple stdlib dataclasses (not Pydantic):
utterances are created in bulk on every conversion and never cross a
service boundary on their own.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Utterance:
    """A single speaker turn in a dialogue.

    Attributes:
        speaker: Speaker identifier, trimmed.
        body: Utterance text, trimmed.  Paragraph breaks inside the body
            are kept as ``\\n`` or as the ``\\n\\t`` continuation marker.
        line_number: 1-based line number where the block begins in the
            source text, or ``0`` when the utterance did not come from
            parsed text.
    """

    speaker: str
    body: str
    line_number: int = 0


@dataclass(frozen=True)
class ParseWarning:
    """A structured diagnostic for a block that was skipped.

    Attributes:
        line_number: 1-based line number of the skipped block, or ``0``
            for blocks taken from markup.
        message: Human-readable description of the issue.
        raw_block: The original block text that triggered the warning.
    """

    line_number: int
    message: str
    raw_block: str


@dataclass(frozen=True)
class TranscriptParseResult:
    """Top-level return type from the transcript grammar.

    Attributes:
        utterances: Parsed speaker turns, in order of appearance.
        speakers: Unique speaker names, ordered by first appearance.
        warnings: Diagnostics for skipped blocks.
        source: Origin of the text (a file path), or ``"<string>"``.
    """

    utterances: list[Utterance] = field(default_factory=list)
    speakers: list[str] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)
    source: str = "<string>"
