"""Custom exceptions for the multilogue interchange engine.

Codec errors are raised where the input itself is unusable; malformed
fragments inside otherwise valid input never raise (they are reported as
:class:`~multilogue.models.transcript.ParseWarning` records instead).

Exception hierarchy::

    MultilogueError
    +-- InvalidInputError          (wrong type passed to a codec)
    +-- MissingConfigurationError  (model name absent or not a valid speaker)
    +-- EmptyInputError            (nothing to send / nothing to save)
    +-- CycleInFlightError         (overlapping inference cycle)
    +-- ExternalFailureError       (collaborator failures)
        +-- LoadError
        +-- SaveError
        +-- CredentialError
        +-- InferenceError
"""

from __future__ import annotations


class MultilogueError(Exception):
    """Base class for all multilogue errors."""


class InvalidInputError(MultilogueError, TypeError):
    """Raised when a codec entry point receives a value of the wrong type.

    Always surfaced immediately; never silently recovered.
    """


class MissingConfigurationError(MultilogueError):
    """Raised when the model name is absent but role inference is required.

    Role assignment cannot proceed safely without it, so the whole
    conversion fails.
    """


class EmptyInputError(MultilogueError):
    """Raised when there is nothing to send or save.

    This is a user-facing notice rather than a hard failure.
    """


class CycleInFlightError(MultilogueError):
    """Raised when an inference cycle is started while another is running."""


class ExternalFailureError(MultilogueError):
    """Base class for load, save, credential and inference failures.

    Document state is always left unchanged when one of these is raised.
    """


class LoadError(ExternalFailureError):
    """Raised when transcript text cannot be loaded."""


class SaveError(ExternalFailureError):
    """Raised when transcript text cannot be saved."""


class CredentialError(ExternalFailureError):
    """Raised when the credential endpoint cannot provide a credential.

    Attributes:
        status_code: HTTP status code returned by the endpoint, or ``None``
            if the failure did not come from an HTTP response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InferenceError(ExternalFailureError):
    """Raised for transport-level inference failures.

    Attributes:
        raw_response: The raw payload that caused the failure, if any.
    """

    def __init__(self, message: str, raw_response: str = "") -> None:
        super().__init__(message)
        self.raw_response = raw_response
