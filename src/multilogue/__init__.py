"""multilogue: co-authored dialogues with a language model.

Converts a turn-based dialogue between its plain-text transcript, dialogue
markup, and the message arrays exchanged with the model, and runs
inference cycles against a shared document store.
"""

from __future__ import annotations

from multilogue.exceptions import (
    CredentialError,
    CycleInFlightError,
    EmptyInputError,
    ExternalFailureError,
    InferenceError,
    InvalidInputError,
    LoadError,
    MissingConfigurationError,
    MultilogueError,
    SaveError,
)
from multilogue.grammar import parse_transcript, serialize_transcript
from multilogue.markup import from_markup, llm_soup_to_text, parse_markup, to_markup
from multilogue.messages import (
    PASS_UTTERANCES,
    flat_messages_to_transcript_text,
    fold_assistant_reply,
    is_pass_utterance,
    role_of,
    to_flat_messages,
    to_grouped_messages,
)
from multilogue.models.messages import FlatMessage, GroupedMessage, InferenceRequest
from multilogue.models.transcript import ParseWarning, TranscriptParseResult, Utterance
from multilogue.orchestrator import CycleOutcome, CycleStatus, InferenceOrchestrator
from multilogue.store import AUXILIARY_KEY, PRIMARY_KEY, ChangeEvent, DocumentStore

__version__ = "0.1.0"

__all__ = [
    "AUXILIARY_KEY",
    "PASS_UTTERANCES",
    "PRIMARY_KEY",
    "ChangeEvent",
    "CredentialError",
    "CycleInFlightError",
    "CycleOutcome",
    "CycleStatus",
    "DocumentStore",
    "EmptyInputError",
    "ExternalFailureError",
    "FlatMessage",
    "GroupedMessage",
    "InferenceError",
    "InferenceOrchestrator",
    "InferenceRequest",
    "InvalidInputError",
    "LoadError",
    "MissingConfigurationError",
    "MultilogueError",
    "ParseWarning",
    "SaveError",
    "TranscriptParseResult",
    "Utterance",
    "flat_messages_to_transcript_text",
    "fold_assistant_reply",
    "from_markup",
    "is_pass_utterance",
    "llm_soup_to_text",
    "parse_markup",
    "parse_transcript",
    "role_of",
    "serialize_transcript",
    "to_flat_messages",
    "to_grouped_messages",
    "to_markup",
]
