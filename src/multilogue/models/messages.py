"""Pydantic models for the message representations and the inference exchange.

Defines the structured data types that cross the inference boundary:

- :class:`FlatMessage` -- one role-tagged message per utterance.
- :class:`GroupedMessage` -- role-grouped, multi-part message used in the
  inference request (``user`` / ``model`` roles).
- :class:`InferenceRequest` -- ``{config, settings, messages}`` payload.
- :class:`SuccessReply` / :class:`ErrorReply` -- the two variants of the
  :data:`InferenceReply` tagged union, discriminated on ``type``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# ---------------------------------------------------------------------------
# Flat and grouped messages
# ---------------------------------------------------------------------------

FlatRole = Literal["user", "assistant", "system"]
GroupedRole = Literal["user", "model"]


class FlatMessage(BaseModel):
    """A single role-tagged message, one per utterance.

    The role is always derived from the speaker name by
    :func:`~multilogue.messages.role_of`; it is never read from storage.

    Attributes:
        role: ``"user"``, ``"assistant"`` or ``"system"``.
        name: Speaker identifier.
        content: Utterance body.
    """

    model_config = ConfigDict(frozen=True)

    role: FlatRole
    name: str
    content: str


class TextPart(BaseModel):
    """One text part of a :class:`GroupedMessage`."""

    model_config = ConfigDict(frozen=True)

    text: str


class GroupedMessage(BaseModel):
    """A role-grouped message with one or more text parts.

    ``model`` messages always carry exactly one part.  ``user`` messages
    merge consecutive non-model utterances, each part prefixed with the
    original speaker name.
    """

    role: GroupedRole
    parts: list[TextPart] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Inference request
# ---------------------------------------------------------------------------


class MachineConfig(BaseModel):
    """Identity and model selection for the automated participant.

    Attributes:
        name: Speaker name the model writes under.  Utterances by this
            speaker are treated as assistant turns.
        model: Provider model identifier.
        system_instruction: Optional system instruction sent with every
            request.
    """

    name: str
    model: str = "gemini-2.5-flash"
    system_instruction: str | None = None


class LLMSettings(BaseModel):
    """Sampling and thinking settings forwarded to the inference service.

    Accepts both snake_case names and the camelCase aliases used by the
    provider API.  Unset values are omitted from the request.
    """

    model_config = ConfigDict(populate_by_name=True)

    temperature: float | None = None
    top_p: float | None = Field(default=None, alias="topP")
    top_k: float | None = Field(default=None, alias="topK")
    max_output_tokens: int | None = Field(default=None, alias="maxOutputTokens")
    thinking_budget: int | None = Field(default=None, alias="thinkingBudget")
    include_thoughts: bool | None = Field(default=None, alias="includeThoughts")


class InferenceRequest(BaseModel):
    """The payload dispatched to the inference capability."""

    config: MachineConfig
    settings: LLMSettings = Field(default_factory=LLMSettings)
    messages: list[GroupedMessage] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Inference reply (tagged union)
# ---------------------------------------------------------------------------


class ReplyPart(BaseModel):
    """One content segment of a successful reply.

    Attributes:
        text: Segment text (may contain incidental markup).
        thought: ``True`` when the segment is model-internal reasoning.
    """

    text: str = ""
    thought: bool | None = None


class ReplyContent(BaseModel):
    """Content block of a successful reply."""

    parts: list[ReplyPart] = Field(default_factory=list)


class ReplyData(BaseModel):
    """Data envelope of a successful reply."""

    content: ReplyContent


class SuccessReply(BaseModel):
    """Successful inference reply."""

    type: Literal["success"] = "success"
    data: ReplyData

    @property
    def parts(self) -> list[ReplyPart]:
        """Shortcut to ``data.content.parts``."""
        return self.data.content.parts


class ErrorReply(BaseModel):
    """Failed inference reply carrying a message."""

    type: Literal["error"] = "error"
    error: str


InferenceReply = Annotated[
    Union[SuccessReply, ErrorReply],
    Field(discriminator="type"),
]

_REPLY_ADAPTER: TypeAdapter[Any] = TypeAdapter(InferenceReply)


def parse_reply(payload: Any) -> SuccessReply | ErrorReply:
    """Validate a raw reply payload into a typed reply variant.

    Already-typed replies are returned unchanged.

    Args:
        payload: A :class:`SuccessReply`, :class:`ErrorReply` or a mapping
            in the wire shape.

    Returns:
        The validated reply variant.

    Raises:
        pydantic.ValidationError: If *payload* does not match either
            variant.
    """
    if isinstance(payload, (SuccessReply, ErrorReply)):
        return payload
    return _REPLY_ADAPTER.validate_python(payload)
