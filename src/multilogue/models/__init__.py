"""Data models for multilogue."""

from __future__ import annotations

from multilogue.models.messages import (
    ErrorReply,
    FlatMessage,
    GroupedMessage,
    InferenceReply,
    InferenceRequest,
    LLMSettings,
    MachineConfig,
    ReplyContent,
    ReplyData,
    ReplyPart,
    SuccessReply,
    TextPart,
    parse_reply,
)
from multilogue.models.transcript import ParseWarning, TranscriptParseResult, Utterance

__all__ = [
    "ErrorReply",
    "FlatMessage",
    "GroupedMessage",
    "InferenceReply",
    "InferenceRequest",
    "LLMSettings",
    "MachineConfig",
    "ParseWarning",
    "ReplyContent",
    "ReplyData",
    "ReplyPart",
    "SuccessReply",
    "TextPart",
    "TranscriptParseResult",
    "Utterance",
    "parse_reply",
]
