"""Transcript grammar for plain-text dialogues.

Parses text made of blank-line separated blocks in the format
``Speaker: utterance`` into structured
:class:`~multilogue.models.transcript.TranscriptParseResult` objects, and
serializes utterances back into that format.

A paragraph break inside one utterance is written as a newline followed by
a tab (the *continuation marker*) so it can never be confused with the
blank line that separates blocks.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from multilogue.exceptions import InvalidInputError
from multilogue.models.transcript import ParseWarning, TranscriptParseResult, Utterance

logger = logging.getLogger(__name__)

CONTINUATION = "\n\t"
"""Marker for a paragraph break inside a single utterance."""

BLOCK_SEPARATOR = "\n\n"

# Matches blocks like: Speaker Name: utterance text (may span lines).
_BLOCK_RE = re.compile(r"^([A-Za-z0-9_ \-]+):(.*)$", re.DOTALL)
_SPEAKER_RE = re.compile(r"^[A-Za-z0-9_ \-]+$")

# Two or more newlines, optionally with whitespace-only lines in between.
_PARAGRAPH_RUN_RE = re.compile(r"\n(?:[ \t]*\n)+")


def is_valid_speaker(name: str) -> bool:
    """Return ``True`` if *name* is a usable speaker identifier.

    Speakers are non-empty after trimming and use only letters, digits,
    underscore, space and hyphen.
    """
    return bool(name.strip()) and _SPEAKER_RE.match(name) is not None


def normalize_body(body: str) -> str:
    """Collapse paragraph runs in *body* into continuation markers and trim.

    Args:
        body: Raw utterance text.

    Returns:
        The body with every run of two or more newlines replaced by
        :data:`CONTINUATION`, stripped of surrounding whitespace.
    """
    return _PARAGRAPH_RUN_RE.sub(CONTINUATION, body.replace("\r\n", "\n")).strip()


def _iter_blocks(text: str) -> Iterable[tuple[int, str]]:
    """Yield ``(line_number, block_text)`` for each blank-line separated block."""
    block_lines: list[str] = []
    start = 0
    for idx, line in enumerate(text.split("\n")):
        if not line.strip():
            if block_lines:
                yield start, "\n".join(block_lines)
                block_lines = []
            continue
        if not block_lines:
            start = idx + 1  # 1-based
        block_lines.append(line)
    if block_lines:
        yield start, "\n".join(block_lines)


def parse_transcript(text: str, source: str = "<string>") -> TranscriptParseResult:
    """Parse a transcript string into structured data.

    Args:
        text: Transcript text made of ``Speaker: utterance`` blocks
            separated by one or more blank lines.  The final block does not
            need a trailing blank line.
        source: Label for the transcript origin (e.g. a file path).

    Returns:
        A :class:`TranscriptParseResult`.  Blocks that do not match the
        grammar, or whose body is empty after trimming, are skipped and
        reported in ``warnings``.

    Raises:
        InvalidInputError: If *text* is not a string.
    """
    if not isinstance(text, str):
        raise InvalidInputError(
            f"Transcript text must be a string, got {type(text).__name__}"
        )

    # Fast path: empty or whitespace-only input.
    if not text.strip():
        return TranscriptParseResult(source=source)

    utterances: list[Utterance] = []
    warnings: list[ParseWarning] = []

    def _skip(line_number: int, message: str, block: str) -> None:
        warnings.append(ParseWarning(line_number=line_number, message=message, raw_block=block))
        logger.warning("%s:%d: %s, skipping block: %r", source, line_number, message, block)

    for line_number, block in _iter_blocks(text.replace("\r\n", "\n")):
        match = _BLOCK_RE.match(block)
        if match is None:
            _skip(line_number, "Block does not match 'Speaker: utterance'", block)
            continue

        speaker = match.group(1).strip()
        if not speaker:
            _skip(line_number, "Empty speaker name", block)
            continue

        body = match.group(2).strip()
        if not body:
            _skip(line_number, f"Empty utterance from {speaker!r}", block)
            continue

        utterances.append(Utterance(speaker=speaker, body=body, line_number=line_number))

    speakers = list(dict.fromkeys(u.speaker for u in utterances))

    return TranscriptParseResult(
        utterances=utterances,
        speakers=speakers,
        warnings=warnings,
        source=source,
    )


def format_block(speaker: str, body: str) -> str:
    """Render one ``speaker: body`` block followed by the block separator."""
    return f"{speaker.strip()}: {normalize_body(body)}{BLOCK_SEPARATOR}"


def serialize_transcript(utterances: Iterable[Utterance]) -> str:
    """Serialize utterances into transcript text.

    Each utterance becomes ``speaker: body`` followed by a blank line.
    Paragraph runs inside a body are normalized to :data:`CONTINUATION`.
    Utterances whose body is empty after trimming are dropped.

    Args:
        utterances: Utterances in dialogue order.

    Returns:
        The transcript text (empty string for no utterances).
    """
    chunks: list[str] = []
    for utterance in utterances:
        if not utterance.body.strip():
            logger.warning("Dropping empty utterance from %r", utterance.speaker)
            continue
        chunks.append(format_block(utterance.speaker, utterance.body))
    return "".join(chunks)
