"""Logging setup for the multilogue command line.

Library modules only ever call ``logging.getLogger(__name__)``; the CLI
entry point is the one place that attaches a handler.  Lines look like::

    2026-01-01T12:00:00 | INFO     | multilogue.orchestrator | Gemini replied

The Gemini API key can travel through log records (request URLs logged by
``httpx``, error payloads echoed by the SDK), so the handler carries a
:class:`SecretFilter` that masks every credential registered with
:func:`redact`.
"""

from __future__ import annotations

import logging
import sys

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

MASK = "***"

# HTTP and SDK loggers that report every request at INFO.
CHATTY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "google_genai")


class SecretFilter(logging.Filter):
    """Rewrites records so that registered secrets never reach the output."""

    def __init__(self) -> None:
        super().__init__()
        self._secrets: set[str] = set()

    def add(self, secret: str | None) -> None:
        if secret and secret.strip():
            self._secrets.add(secret.strip())

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, MASK)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


class _CliHandler(logging.StreamHandler):
    """The stderr handler owned by :func:`setup_logging`."""

    def __init__(self) -> None:
        super().__init__(sys.stderr)
        self.secrets = SecretFilter()
        self.addFilter(self.secrets)
        self.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))


def _cli_handler() -> _CliHandler | None:
    for handler in logging.getLogger().handlers:
        if isinstance(handler, _CliHandler):
            return handler
    return None


def setup_logging(level: str = "INFO") -> None:
    """Point the root logger at stderr with the multilogue format.

    Repeated calls reuse the same handler and only change levels.  Below
    ``DEBUG`` the loggers in :data:`CHATTY_LOGGERS` are held at
    ``WARNING`` so a normal run shows one line per cycle stage.

    Raises:
        ValueError: If *level* is not a recognised logging level name.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level!r}")

    root = logging.getLogger()
    root.setLevel(numeric_level)

    handler = _cli_handler()
    if handler is None:
        handler = _CliHandler()
        root.addHandler(handler)
    handler.setLevel(numeric_level)

    library_level = logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def redact(*secrets: str | None) -> None:
    """Mask *secrets* in everything the CLI handler writes from now on.

    Blank and ``None`` values are ignored; calling this before
    :func:`setup_logging` is a no-op.
    """
    handler = _cli_handler()
    if handler is None:
        return
    for secret in secrets:
        handler.secrets.add(secret)
