"""Gemini inference capability.

Wraps the Google ``google-genai`` SDK (async client) behind the inference
capability interface used by the orchestrator: it takes an
:class:`~multilogue.models.messages.InferenceRequest` plus an API key and
resolves to exactly one tagged reply.  API errors become
:class:`~multilogue.models.messages.ErrorReply` values; transport failures
raise :class:`~multilogue.exceptions.InferenceError`.
"""

from __future__ import annotations

import logging

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from multilogue.exceptions import InferenceError
from multilogue.models.messages import (
    ErrorReply,
    GroupedMessage,
    InferenceRequest,
    ReplyContent,
    ReplyData,
    ReplyPart,
    SuccessReply,
)

logger = logging.getLogger(__name__)


def build_contents(messages: list[GroupedMessage]) -> list[genai_types.Content]:
    """Map grouped messages onto SDK ``Content`` objects, one-to-one."""
    return [
        genai_types.Content(
            role=message.role,
            parts=[genai_types.Part(text=part.text) for part in message.parts],
        )
        for message in messages
    ]


def build_generate_config(request: InferenceRequest) -> genai_types.GenerateContentConfig:
    """Build the generation config from the request's machine config and settings.

    Thinking options are only sent when at least one of them is set.
    """
    settings = request.settings
    thinking_config = None
    if settings.thinking_budget is not None or settings.include_thoughts is not None:
        thinking_config = genai_types.ThinkingConfig(
            thinking_budget=settings.thinking_budget,
            include_thoughts=settings.include_thoughts,
        )

    return genai_types.GenerateContentConfig(
        system_instruction=request.config.system_instruction,
        temperature=settings.temperature,
        top_p=settings.top_p,
        top_k=settings.top_k,
        max_output_tokens=settings.max_output_tokens,
        thinking_config=thinking_config,
    )


def reply_from_response(response: genai_types.GenerateContentResponse) -> SuccessReply | ErrorReply:
    """Convert an SDK response into a tagged reply.

    Only the first candidate is used.  Parts without text are ignored;
    each part keeps the SDK's ``thought`` flag.
    """
    candidates = response.candidates or []
    if not candidates or candidates[0].content is None:
        feedback = getattr(response, "prompt_feedback", None)
        logger.warning("Gemini returned no usable candidate (feedback: %s)", feedback)
        return ErrorReply(error="Gemini returned no content")

    parts = [
        ReplyPart(text=part.text, thought=part.thought)
        for part in candidates[0].content.parts or []
        if part.text is not None
    ]
    return SuccessReply(data=ReplyData(content=ReplyContent(parts=parts)))


class GeminiInference:
    """Inference capability backed by Google Gemini.

    One SDK client is kept per credential, so a credential supplied later
    by the user replaces the client built for a previous one.
    """

    def __init__(self) -> None:
        self._client: genai.Client | None = None
        self._credential: str | None = None

    def _client_for(self, credential: str) -> genai.Client:
        if self._client is None or credential != self._credential:
            self._client = genai.Client(api_key=credential)
            self._credential = credential
        return self._client

    async def __call__(self, request: InferenceRequest, credential: str) -> SuccessReply | ErrorReply:
        """Dispatch one request and await its single reply.

        Args:
            request: Machine config, settings and grouped messages.
            credential: Gemini API key.

        Returns:
            A :class:`SuccessReply` with the reply parts, or an
            :class:`ErrorReply` when the API rejects the call.

        Raises:
            InferenceError: On transport-level failures.
        """
        client = self._client_for(credential)
        contents = build_contents(request.messages)
        config = build_generate_config(request)

        logger.debug(
            "Sending %d message(s) to %s for %s",
            len(contents),
            request.config.model,
            request.config.name,
        )

        try:
            response = await client.aio.models.generate_content(
                model=request.config.model,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as exc:
            logger.error("Gemini API error: %s", exc)
            return ErrorReply(error=f"Gemini API call failed: {exc}")
        except (httpx.HTTPError, OSError) as exc:
            logger.error("Gemini transport error: %s", exc)
            raise InferenceError(f"Gemini request failed: {exc}") from exc

        reply = reply_from_response(response)
        logger.debug("Raw Gemini reply: %s", reply)
        return reply
