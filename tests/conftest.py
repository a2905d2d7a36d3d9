"""Shared fixtures for multilogue tests."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest

from multilogue.log import CHATTY_LOGGERS
from multilogue.store import DocumentStore, MemoryBackend

_ENV_KEYS = (
    "MACHINE_NAME",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "CREDENTIAL_ENDPOINT",
    "SYSTEM_INSTRUCTION",
    "MULTILOGUE_STORE",
    "LOG_LEVEL",
    "LLM_TEMPERATURE",
    "LLM_TOP_P",
    "LLM_TOP_K",
    "LLM_MAX_OUTPUT_TOKENS",
    "LLM_THINKING_BUDGET",
    "LLM_INCLUDE_THOUGHTS",
)


@pytest.fixture()
def monkeypatch_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required environment variables to valid defaults.

    Also patches ``load_dotenv`` so that a real ``.env`` file on disk does not
    override the test values.

    Returns the dict of variables so tests can inspect or override values.
    """
    monkeypatch.setattr("multilogue.config.load_dotenv", lambda *_a, **_kw: None)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    env_vars = {
        "MACHINE_NAME": "Gemini",
        "GEMINI_API_KEY": "test-gemini-key-12345",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all multilogue-related environment variables.

    Patches ``load_dotenv`` so a real ``.env`` file cannot re-inject values
    that the test explicitly removed.
    """
    monkeypatch.setattr("multilogue.config.load_dotenv", lambda *_a, **_kw: None)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def backend() -> MemoryBackend:
    """An empty in-memory key-value backend."""
    return MemoryBackend()


@pytest.fixture()
def store(backend: MemoryBackend) -> DocumentStore:
    """A document store over the shared in-memory backend."""
    return DocumentStore(backend)


@pytest.fixture(autouse=True)
def _reset_root_logger() -> Generator[None, None, None]:
    """Reset the root logger after each test to prevent handler leaks."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)
