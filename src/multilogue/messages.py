"""Message model codec: utterances <-> message arrays for the inference exchange.

Two message shapes are produced from either textual representation:

- **Flat messages** -- one :class:`~multilogue.models.messages.FlatMessage`
  per utterance, with a role inferred from the speaker name.
- **Grouped messages** -- :class:`~multilogue.models.messages.GroupedMessage`
  entries in which consecutive non-model utterances are merged into one
  ``user`` message (each part prefixed with its speaker) and every model
  utterance becomes a single-part ``model`` message.

The inverse direction folds an assistant reply into the flat list and
serializes it back into transcript text, using exactly the same block
format as :func:`~multilogue.grammar.serialize_transcript`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Literal

from multilogue.exceptions import MissingConfigurationError
from multilogue.grammar import format_block, is_valid_speaker, parse_transcript
from multilogue.markup import utterances_from_markup
from multilogue.models.messages import FlatMessage, FlatRole, GroupedMessage, TextPart
from multilogue.models.transcript import Utterance

logger = logging.getLogger(__name__)

SourceFormat = Literal["text", "markup"]

SYSTEM_SPEAKER = "INSTRUCTIONS"

PASS_UTTERANCES: tuple[str, ...] = ("...", "silence", "pass")
"""Reply bodies with which a participant deliberately yields the turn."""


def role_of(speaker: str, model_name: str) -> FlatRole:
    """Infer the message role of *speaker*.

    Comparison is case-insensitive.  The configured model name maps to
    ``"assistant"``, the literal ``INSTRUCTIONS`` to ``"system"``, and
    every other speaker to ``"user"``.
    """
    folded = speaker.strip().casefold()
    if folded == model_name.strip().casefold():
        return "assistant"
    if folded == SYSTEM_SPEAKER.casefold():
        return "system"
    return "user"


def is_pass_utterance(text: str) -> bool:
    """Return ``True`` if *text* (trimmed, case-folded) is a pass utterance."""
    return text.strip().casefold() in PASS_UTTERANCES


def extract_utterances(source: str, fmt: SourceFormat = "text") -> list[Utterance]:
    """Pull utterances out of transcript text or dialogue markup.

    Args:
        source: Transcript text (``fmt="text"``) or markup (``fmt="markup"``).
        fmt: Which representation *source* is in.

    Returns:
        Utterances in document order.

    Raises:
        InvalidInputError: If *source* is not a string.
        ValueError: If *fmt* is not a known representation.
    """
    if fmt == "text":
        return parse_transcript(source).utterances
    if fmt == "markup":
        return utterances_from_markup(source)
    raise ValueError(f"Unknown source format: {fmt!r}")


def require_model_name(model_name: str | None) -> str:
    """Return *model_name* if it can head a transcript block.

    Raises:
        MissingConfigurationError: If *model_name* is blank, or uses
            characters outside the speaker charset.
    """
    if model_name is None or not model_name.strip():
        raise MissingConfigurationError(
            "Model name is not configured; cannot determine model messages"
        )
    if not is_valid_speaker(model_name):
        raise MissingConfigurationError(
            f"Model name {model_name!r} is not a valid speaker name "
            "(letters, digits, underscore, space and hyphen only)"
        )
    return model_name


def to_flat_messages(
    source: str,
    model_name: str | None,
    fmt: SourceFormat = "text",
) -> list[FlatMessage]:
    """Convert a dialogue into one flat message per utterance.

    Args:
        source: Transcript text or markup.
        model_name: Speaker name of the automated participant.
        fmt: Representation of *source*.

    Returns:
        Flat messages in dialogue order (empty for empty input).

    Raises:
        InvalidInputError: If *source* is not a string.
        MissingConfigurationError: If *model_name* is absent or blank and
            *source* holds at least one utterance.
    """
    utterances = extract_utterances(source, fmt)
    if not utterances:
        return []
    return flatten_utterances(utterances, require_model_name(model_name))


def flatten_utterances(utterances: Iterable[Utterance], model_name: str) -> list[FlatMessage]:
    """Tag each utterance with its inferred role."""
    return [
        FlatMessage(role=role_of(u.speaker, model_name), name=u.speaker, content=u.body)
        for u in utterances
    ]


def group_utterances(utterances: Iterable[Utterance], model_name: str) -> list[GroupedMessage]:
    """Group utterances into ``user`` / ``model`` messages.

    Non-model utterances accumulate as ``"{speaker}: {body}"`` parts of a
    single ``user`` message; each model utterance flushes the accumulated
    parts (if any) and is emitted as a one-part ``model`` message.
    """
    grouped: list[GroupedMessage] = []
    pending: list[TextPart] = []

    for utterance in utterances:
        if role_of(utterance.speaker, model_name) == "assistant":
            if pending:
                grouped.append(GroupedMessage(role="user", parts=pending))
                pending = []
            grouped.append(GroupedMessage(role="model", parts=[TextPart(text=utterance.body)]))
        else:
            pending.append(TextPart(text=f"{utterance.speaker}: {utterance.body}"))

    if pending:
        grouped.append(GroupedMessage(role="user", parts=pending))

    return grouped


def to_grouped_messages(
    source: str,
    model_name: str | None,
    fmt: SourceFormat = "text",
) -> list[GroupedMessage]:
    """Convert a dialogue into grouped messages for the inference request.

    Args:
        source: Transcript text or markup.
        model_name: Speaker name of the automated participant.
        fmt: Representation of *source*.

    Returns:
        Grouped messages in dialogue order (empty for empty input).

    Raises:
        InvalidInputError: If *source* is not a string.
        MissingConfigurationError: If *model_name* is absent or blank and
            *source* holds at least one utterance.
    """
    utterances = extract_utterances(source, fmt)
    if not utterances:
        return []
    return group_utterances(utterances, require_model_name(model_name))


def fold_assistant_reply(
    flat_messages: Sequence[FlatMessage],
    model_name: str,
    reply_body: str,
) -> list[FlatMessage]:
    """Return a copy of *flat_messages* with the assistant reply appended."""
    return [
        *flat_messages,
        FlatMessage(role="assistant", name=model_name, content=reply_body),
    ]


def flat_messages_to_transcript_text(flat_messages: Iterable[FlatMessage]) -> str:
    """Serialize flat messages into transcript text.

    Each message becomes a ``name: content`` block, with internal runs of
    blank lines normalized to the continuation marker.  Messages with empty
    content are skipped.

    Args:
        flat_messages: Messages in dialogue order.

    Returns:
        Transcript text, identical in format to
        :func:`~multilogue.grammar.serialize_transcript`.
    """
    chunks: list[str] = []
    for message in flat_messages:
        if not message.content.strip():
            logger.warning("Skipping empty message from %r", message.name)
            continue
        chunks.append(format_block(message.name, message.content))
    return "".join(chunks)
