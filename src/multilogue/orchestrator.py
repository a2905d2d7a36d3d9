"""Inference orchestrator: one request/response cycle against the document store.

A cycle moves through these states::

    IDLE -> AWAITING_CREDENTIAL -> AWAITING_REPLY -> APPLIED | FAILED

The current transcript is read from the store, turned into grouped
messages, sent to the inference capability, and the reply is folded back
into the transcript and stored.  Reasoning segments of the reply go to the
auxiliary notes key.  Nothing is written unless the whole reply has been
processed, so a failed cycle always leaves the store untouched.

The orchestrator never talks to the user.  Every invocation returns a
:class:`CycleOutcome`, and the presentation boundary decides what to show.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from multilogue.exceptions import CycleInFlightError, ExternalFailureError, MultilogueError
from multilogue.markup import llm_soup_to_text
from multilogue.messages import (
    extract_utterances,
    flat_messages_to_transcript_text,
    flatten_utterances,
    fold_assistant_reply,
    group_utterances,
    is_pass_utterance,
    require_model_name,
)
from multilogue.models.messages import (
    ErrorReply,
    FlatMessage,
    InferenceRequest,
    LLMSettings,
    MachineConfig,
    ReplyPart,
    parse_reply,
)
from multilogue.store import AUXILIARY_KEY, PRIMARY_KEY, DocumentStore

logger = logging.getLogger(__name__)

InferenceCapability = Callable[[InferenceRequest, str], Awaitable[Any]]
"""``async (request, credential) -> reply`` -- exactly one reply per request."""

CredentialFetcher = Callable[[], Awaitable[str]]


class CycleState(str, enum.Enum):
    """Orchestrator state within one invocation."""

    IDLE = "idle"
    AWAITING_CREDENTIAL = "awaiting_credential"
    AWAITING_REPLY = "awaiting_reply"
    APPLIED = "applied"
    FAILED = "failed"


class CycleStatus(str, enum.Enum):
    """How an invocation ended."""

    APPLIED = "applied"
    PASSED = "passed"
    STALE = "stale"
    FAILED = "failed"
    NEEDS_CREDENTIAL = "needs_credential"
    NOTHING_TO_SEND = "nothing_to_send"


@dataclass(frozen=True)
class CycleOutcome:
    """Result of one inference cycle.

    Attributes:
        status: How the cycle ended.
        message: Human-readable description for the presentation layer.
        transcript: The transcript text stored by this cycle, or ``None``
            if the transcript was not updated.
        notes: The reasoning text stored by this cycle, or ``None``.
    """

    status: CycleStatus
    message: str
    transcript: str | None = None
    notes: str | None = None

    @property
    def ok(self) -> bool:
        """``True`` when the reply was received and handled."""
        return self.status in (CycleStatus.APPLIED, CycleStatus.PASSED)


def split_reply_parts(parts: list[ReplyPart]) -> tuple[str, str]:
    """Split reply segments into sanitized ``(regular, reasoning)`` text.

    Segments flagged ``thought`` are reasoning; all others are regular.
    Each group is joined with a single space and passed through
    :func:`~multilogue.markup.llm_soup_to_text`.
    """
    regular = " ".join(part.text for part in parts if not part.thought)
    reasoning = " ".join(part.text for part in parts if part.thought)
    return llm_soup_to_text(regular), llm_soup_to_text(reasoning)


class InferenceOrchestrator:
    """Sequences inference cycles for one document store.

    Args:
        store: The document store holding the transcript.
        config: Machine config; ``config.name`` is the model's speaker name.
        inference: The inference capability.
        settings: Sampling settings forwarded with each request.
        fetch_credential: Called once when no credential is cached.  When
            ``None``, a missing credential must be supplied through
            :meth:`resume_with_credential`.
        credential: A credential to start with (e.g. from configuration).
        guard_stale_replies: When ``True``, a reply is discarded if the
            transcript changed while the request was in flight.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: MachineConfig,
        inference: InferenceCapability,
        *,
        settings: LLMSettings | None = None,
        fetch_credential: CredentialFetcher | None = None,
        credential: str | None = None,
        guard_stale_replies: bool = False,
    ) -> None:
        self._store = store
        self._config = config
        self._inference = inference
        self._settings = settings or LLMSettings()
        self._fetch_credential = fetch_credential
        self._credential = credential.strip() if credential and credential.strip() else None
        self._guard_stale_replies = guard_stale_replies
        self._state = CycleState.IDLE
        self._in_flight = False

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def has_credential(self) -> bool:
        return self._credential is not None

    def _transition(self, state: CycleState) -> None:
        logger.info("Inference cycle: %s -> %s", self._state.value, state.value)
        self._state = state

    def _fail(self, message: str) -> CycleOutcome:
        logger.error("Inference cycle failed: %s", message)
        self._transition(CycleState.FAILED)
        return CycleOutcome(status=CycleStatus.FAILED, message=message)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleOutcome:
        """Run one inference cycle.

        Returns:
            The :class:`CycleOutcome`.  External failures are reported as
            outcomes, never raised.

        Raises:
            CycleInFlightError: If another cycle on this orchestrator has
                not finished yet.
        """
        if self._in_flight:
            raise CycleInFlightError("An inference cycle is already in flight")

        transcript = self._store.transcript
        if not transcript.strip():
            logger.info("Dialogue is empty, nothing to send")
            return CycleOutcome(
                status=CycleStatus.NOTHING_TO_SEND,
                message="Dialogue is empty. Please add some content first.",
            )

        self._in_flight = True
        self._state = CycleState.IDLE
        try:
            return await self._run(transcript)
        finally:
            self._in_flight = False

    async def resume_with_credential(self, credential: str) -> CycleOutcome:
        """Cache a manually supplied credential and run the cycle again.

        Raises:
            ValueError: If *credential* is empty.
            CycleInFlightError: If a cycle is still running.
        """
        if not credential or not credential.strip():
            raise ValueError("Credential must not be empty")
        self._credential = credential.strip()
        logger.info("Credential supplied manually")
        return await self.run_cycle()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(self, transcript: str) -> CycleOutcome:
        # Stage 1: credential
        self._transition(CycleState.AWAITING_CREDENTIAL)
        credential = await self._obtain_credential()
        if credential is None:
            return CycleOutcome(
                status=CycleStatus.NEEDS_CREDENTIAL,
                message="No credential available. Please supply one to continue.",
            )

        # Stage 2: build request
        self._transition(CycleState.AWAITING_REPLY)
        try:
            model_name = require_model_name(self._config.name)
            utterances = extract_utterances(transcript)
            flat = flatten_utterances(utterances, model_name)
            grouped = group_utterances(utterances, model_name)
        except MultilogueError as exc:
            return self._fail(f"Could not prepare the dialogue: {exc}")

        if not grouped:
            self._transition(CycleState.IDLE)
            return CycleOutcome(
                status=CycleStatus.NOTHING_TO_SEND,
                message="Dialogue has no well-formed utterances to send.",
            )

        request = InferenceRequest(config=self._config, settings=self._settings, messages=grouped)
        logger.debug("Inference request: %s", request.model_dump_json(exclude_none=True))

        # Stage 3: one request, one reply
        try:
            raw_reply = await self._inference(request, credential)
        except ExternalFailureError as exc:
            return self._fail(f"Inference request failed: {exc}")

        try:
            reply = parse_reply(raw_reply)
        except ValidationError as exc:
            return self._fail(f"Received an invalid reply: {exc.error_count()} validation error(s)")

        if isinstance(reply, ErrorReply):
            return self._fail(f"Inference service reported an error: {reply.error}")

        # Stage 4: fold the reply back in
        return self._apply(transcript, flat, reply.parts)

    async def _obtain_credential(self) -> str | None:
        if self._credential is not None:
            return self._credential
        if self._fetch_credential is None:
            logger.warning("No cached credential and no credential source configured")
            return None
        try:
            credential = await self._fetch_credential()
        except ExternalFailureError as exc:
            logger.warning("Credential fetch failed, manual credential needed: %s", exc)
            return None
        if not credential or not credential.strip():
            logger.warning("Credential source returned nothing, manual credential needed")
            return None
        self._credential = credential.strip()
        return self._credential

    def _apply(
        self,
        sent_transcript: str,
        flat: list[FlatMessage],
        parts: list[ReplyPart],
    ) -> CycleOutcome:
        regular, reasoning = split_reply_parts(parts)

        if self._guard_stale_replies and self._store.transcript != sent_transcript:
            logger.warning("Transcript changed while the request was in flight, discarding reply")
            self._transition(CycleState.FAILED)
            return CycleOutcome(
                status=CycleStatus.STALE,
                message="The dialogue changed while waiting for the reply; the reply was discarded.",
            )

        new_transcript: str | None = None
        if regular and not is_pass_utterance(regular):
            new_transcript = flat_messages_to_transcript_text(
                fold_assistant_reply(flat, self._config.name, regular)
            )

        if new_transcript is not None:
            self._store.set(PRIMARY_KEY, new_transcript)
        else:
            logger.info("%s passed the turn (%r), transcript left unchanged", self._config.name, regular)

        notes = reasoning or None
        if notes is not None:
            self._store.set(AUXILIARY_KEY, notes)
            logger.info("Stored %d character(s) of reasoning notes", len(notes))

        self._transition(CycleState.APPLIED)
        if new_transcript is None:
            return CycleOutcome(
                status=CycleStatus.PASSED,
                message=f"{self._config.name} passed the turn.",
                notes=notes,
            )
        return CycleOutcome(
            status=CycleStatus.APPLIED,
            message=f"{self._config.name} replied.",
            transcript=new_transcript,
            notes=notes,
        )
