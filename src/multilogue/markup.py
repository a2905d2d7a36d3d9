"""Markup codec: transcript text <-> dialogue markup.

The markup form is a flat sequence of block elements, one per utterance::

    <p class="dialogue"><span class="speaker">Alice</span> First paragraph<br />&emsp;second paragraph</p>

Plain newlines inside a body become ``<br />``; the ``\\n\\t``
continuation marker becomes ``<br />&emsp;``.  ``&``, ``<`` and ``>`` in
speaker and body are entity-escaped on the way in and decoded on the way
out.  A body that starts with a colon has that colon written as
``&#58;``, since the reader drops one literal colon after the speaker tag.

The codec is purely structural: it never looks at roles.  It also hosts
:func:`llm_soup_to_text`, the sanitizer applied to text coming back from
the inference service.
"""

from __future__ import annotations

import html
import logging
import re

from multilogue.exceptions import InvalidInputError
from multilogue.grammar import CONTINUATION, normalize_body, parse_transcript, serialize_transcript
from multilogue.models.transcript import ParseWarning, TranscriptParseResult, Utterance

logger = logging.getLogger(__name__)

DIALOGUE_CLASS = "dialogue"
SPEAKER_CLASS = "speaker"

LINE_BREAK = "<br />"
INDENT = "&emsp;"
LEADING_COLON = "&#58;"

_PARAGRAPH_RE = re.compile(r"<p\b(?P<attrs>[^>]*)>(?P<inner>.*?)</p\s*>", re.IGNORECASE | re.DOTALL)
_SPAN_RE = re.compile(r"<span\b(?P<attrs>[^>]*)>(?P<inner>.*?)</span\s*>", re.IGNORECASE | re.DOTALL)
_CLASS_ATTR_RE = re.compile(r"""\bclass\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""", re.IGNORECASE)

# <br /> followed by the &emsp; entity.  A decoded U+2003 is body text.
_BR_INDENT_RE = re.compile(r"<br\s*/?>[ \t\r\n]*&emsp;", re.IGNORECASE)
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"</?[A-Za-z][^<>]*>")

_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_SCRIPT_STYLE_RE = re.compile(r"(?is)<(script|style)\b.*?>.*?</\1\s*>")
_BLOCK_TAG_RE = re.compile(r"(?i)</?(?:br|p|div|li|ul|ol|tr|table|h[1-6]|section|article|blockquote|pre)\b[^>]*>")


def _has_class(attrs: str, name: str) -> bool:
    match = _CLASS_ATTR_RE.search(attrs)
    if match is None:
        return False
    value = next(group for group in match.groups() if group is not None)
    return name in value.split()


def _escape(text: str) -> str:
    return html.escape(text, quote=False)


def _markup_to_text(fragment: str) -> str:
    """Decode a body fragment: line breaks, indentation, tags and entities."""
    text = _BR_INDENT_RE.sub(CONTINUATION, fragment)
    text = _BR_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    return html.unescape(text)


# ---------------------------------------------------------------------------
# Text -> markup
# ---------------------------------------------------------------------------


def utterance_to_markup(utterance: Utterance) -> str:
    """Render a single utterance as a dialogue block element."""
    body = _escape(normalize_body(utterance.body))
    body = body.replace(CONTINUATION, LINE_BREAK + INDENT).replace("\n", LINE_BREAK)
    if body.startswith(":"):
        # The reader drops one leading colon after the speaker tag.
        body = LEADING_COLON + body[1:]
    return (
        f'<p class="{DIALOGUE_CLASS}">'
        f'<span class="{SPEAKER_CLASS}">{_escape(utterance.speaker)}</span> '
        f"{body}</p>"
    )


def to_markup(transcript_text: str) -> str:
    """Convert transcript text into dialogue markup.

    Args:
        transcript_text: Plain-text transcript.

    Returns:
        One dialogue block per utterance, newline-separated.  Empty or
        whitespace-only input yields ``""``.

    Raises:
        InvalidInputError: If *transcript_text* is not a string.
    """
    result = parse_transcript(transcript_text)
    return "\n".join(utterance_to_markup(u) for u in result.utterances)


# ---------------------------------------------------------------------------
# Markup -> text
# ---------------------------------------------------------------------------


def parse_markup(markup: str, source: str = "<markup>") -> TranscriptParseResult:
    """Extract utterances directly from dialogue markup.

    Each dialogue block's speaker tag gives the speaker.  Everything after
    the speaker tag, minus one separating space and an optional leading
    colon, is the body.  Blocks without a speaker tag, or with an empty
    speaker or body, are skipped and reported in ``warnings``.

    Args:
        markup: Markup text containing dialogue blocks.
        source: Label for the markup origin.

    Returns:
        A :class:`TranscriptParseResult` (``line_number`` is ``0`` for
        markup-derived utterances).

    Raises:
        InvalidInputError: If *markup* is not a string.
    """
    if not isinstance(markup, str):
        raise InvalidInputError(f"Markup must be a string, got {type(markup).__name__}")
    if not markup.strip():
        return TranscriptParseResult(source=source)

    utterances: list[Utterance] = []
    warnings: list[ParseWarning] = []

    def _skip(message: str, block: str) -> None:
        warnings.append(ParseWarning(line_number=0, message=message, raw_block=block))
        logger.warning("%s: %s, skipping block: %r", source, message, block)

    for paragraph in _PARAGRAPH_RE.finditer(_COMMENT_RE.sub("", markup)):
        if not _has_class(paragraph.group("attrs"), DIALOGUE_CLASS):
            continue
        inner = paragraph.group("inner")

        speaker_match = next(
            (m for m in _SPAN_RE.finditer(inner) if _has_class(m.group("attrs"), SPEAKER_CLASS)),
            None,
        )
        if speaker_match is None:
            _skip("Dialogue block has no speaker tag", paragraph.group(0))
            continue

        speaker = _markup_to_text(speaker_match.group("inner")).strip()
        if not speaker:
            _skip("Empty speaker name", paragraph.group(0))
            continue

        body_markup = inner[speaker_match.end():]
        if body_markup.startswith(" "):
            body_markup = body_markup[1:]
        if body_markup.startswith(":"):
            body_markup = body_markup[1:]

        body = _markup_to_text(body_markup).strip()
        if not body:
            _skip(f"Empty utterance from {speaker!r}", paragraph.group(0))
            continue

        utterances.append(Utterance(speaker=speaker, body=body))

    return TranscriptParseResult(
        utterances=utterances,
        speakers=list(dict.fromkeys(u.speaker for u in utterances)),
        warnings=warnings,
        source=source,
    )


def utterances_from_markup(markup: str) -> list[Utterance]:
    """Return the utterances carried by *markup*, in document order."""
    return parse_markup(markup).utterances


def from_markup(markup: str) -> str:
    """Convert dialogue markup back into transcript text.

    Never raises on malformed fragments; those are skipped with a warning.

    Args:
        markup: Markup text containing dialogue blocks.

    Returns:
        Transcript text with ``speaker: body`` blocks joined by blank
        lines, or ``""`` when no usable block is found.

    Raises:
        InvalidInputError: If *markup* is not a string.
    """
    return serialize_transcript(utterances_from_markup(markup))


# ---------------------------------------------------------------------------
# Reply sanitizing
# ---------------------------------------------------------------------------


def llm_soup_to_text(text: str) -> str:
    """Reduce inference output that may contain stray markup to plain text.

    Script and style blocks are dropped, block-level tags and ``<br>``
    become newlines, remaining tags are stripped and entities decoded.
    Runs of three or more newlines collapse to a paragraph break.

    Args:
        text: Raw reply text.

    Returns:
        The sanitized, trimmed text.

    Raises:
        InvalidInputError: If *text* is not a string.
    """
    if not isinstance(text, str):
        raise InvalidInputError(f"Reply text must be a string, got {type(text).__name__}")
    cleaned = _COMMENT_RE.sub("", text)
    cleaned = _SCRIPT_STYLE_RE.sub(" ", cleaned)
    cleaned = _BLOCK_TAG_RE.sub("\n", cleaned)
    cleaned = _TAG_RE.sub("", cleaned)
    cleaned = html.unescape(cleaned)
    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    cleaned = re.sub(r" {2,}", " ", cleaned)
    return cleaned.strip()
