"""Configuration loading for multilogue.

Reads settings from environment variables (with .env support via
python-dotenv) and validates that all required values are present.  Also
turns loose ``key=value`` pairs into typed
:class:`~multilogue.models.messages.LLMSettings`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from multilogue.grammar import is_valid_speaker
from multilogue.models.messages import LLMSettings, MachineConfig

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        machine_name: Speaker name of the automated participant.
        gemini_api_key: API key for Google Gemini, or ``None`` when it is
            to be fetched from ``credential_endpoint``.
        model: Gemini model identifier.
        credential_endpoint: URL returning the API key as its body.
        system_instruction: Optional system instruction for every request.
        store_path: JSON file backing the document store.
        log_level: Logging level (default ``"INFO"``).
    """

    machine_name: str
    gemini_api_key: str | None = None
    model: str = "gemini-2.5-flash"
    credential_endpoint: str | None = None
    system_instruction: str | None = None
    store_path: Path = Path(".multilogue.json")
    log_level: str = "INFO"

    def __repr__(self) -> str:
        return (
            f"Settings(machine_name={self.machine_name!r}, "
            f"gemini_api_key={'***' if self.gemini_api_key else None}, "
            f"model={self.model!r}, "
            f"credential_endpoint={self.credential_endpoint!r}, "
            f"store_path={str(self.store_path)!r}, "
            f"log_level={self.log_level!r})"
        )

    def machine_config(self) -> MachineConfig:
        """Build the :class:`MachineConfig` sent with inference requests."""
        return MachineConfig(
            name=self.machine_name,
            model=self.model,
            system_instruction=self.system_instruction,
        )


def load_settings() -> Settings:
    """Load and validate settings from environment variables.

    Calls :func:`dotenv.load_dotenv` so a ``.env`` file in the working
    directory is picked up automatically.

    Returns:
        A validated :class:`Settings` instance.

    Raises:
        ConfigError: If any required environment variable is missing,
            empty, or whitespace-only.  The error message names **all**
            missing variables.
            Also raised when ``MACHINE_NAME`` is not a valid speaker name.
    """
    load_dotenv()

    required = {
        "MACHINE_NAME": "machine_name",
    }

    values: dict[str, object] = {}
    missing: list[str] = []

    for env_var, field_name in required.items():
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            missing.append(env_var)
        else:
            values[field_name] = raw.strip()

    if missing:
        names = ", ".join(missing)
        raise ConfigError(f"Missing required environment variables: {names}")

    machine_name = str(values["machine_name"])
    if not is_valid_speaker(machine_name):
        raise ConfigError(
            f"MACHINE_NAME {machine_name!r} must use only letters, digits, "
            "underscore, space and hyphen"
        )

    # Optional settings with defaults handled by the dataclass.
    optional = {
        "GEMINI_API_KEY": "gemini_api_key",
        "GEMINI_MODEL": "model",
        "CREDENTIAL_ENDPOINT": "credential_endpoint",
        "SYSTEM_INSTRUCTION": "system_instruction",
        "LOG_LEVEL": "log_level",
    }
    for env_var, field_name in optional.items():
        raw = os.environ.get(env_var, "").strip()
        if raw:
            values[field_name] = raw

    store_path = os.environ.get("MULTILOGUE_STORE", "").strip()
    if store_path:
        values["store_path"] = Path(store_path)

    return Settings(**values)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# LLM settings
# ---------------------------------------------------------------------------

_FLOAT_KEYS = {"temperature", "top_p", "top_k"}
_INT_KEYS = {"max_output_tokens", "thinking_budget"}
_BOOL_KEYS = {"include_thoughts"}

_ALIASES = {
    "topP": "top_p",
    "topK": "top_k",
    "maxOutputTokens": "max_output_tokens",
    "thinkingBudget": "thinking_budget",
    "includeThoughts": "include_thoughts",
}

_LLM_ENV_PREFIX = "LLM_"


def parse_llm_settings(pairs: Mapping[str, str]) -> LLMSettings:
    """Convert string ``key=value`` pairs into :class:`LLMSettings`.

    Keys may be snake_case or the provider's camelCase.  Numeric values
    that fail to convert, and unknown keys, are logged and dropped.
    ``include_thoughts`` is true only for the string ``"true"``
    (case-insensitive).

    Args:
        pairs: Raw settings, e.g. from ``--set`` options.

    Returns:
        The typed settings.
    """
    values: dict[str, object] = {}
    for raw_key, raw_value in pairs.items():
        key = _ALIASES.get(raw_key, raw_key)
        value = raw_value.strip()
        try:
            if key in _FLOAT_KEYS:
                values[key] = float(value)
            elif key in _INT_KEYS:
                values[key] = int(value)
            elif key in _BOOL_KEYS:
                values[key] = value.lower() == "true"
            else:
                logger.warning("Ignoring unknown LLM setting %r", raw_key)
        except ValueError:
            logger.warning("Ignoring LLM setting %r: invalid value %r", raw_key, raw_value)
    return LLMSettings(**values)  # type: ignore[arg-type]


def llm_settings_from_env(overrides: Mapping[str, str] | None = None) -> LLMSettings:
    """Read ``LLM_*`` environment variables into :class:`LLMSettings`.

    ``LLM_TEMPERATURE=0.7`` becomes ``temperature=0.7`` and so on.

    Args:
        overrides: Pairs that take precedence over the environment.
    """
    pairs = {
        name[len(_LLM_ENV_PREFIX):].lower(): value
        for name, value in os.environ.items()
        if name.startswith(_LLM_ENV_PREFIX) and value.strip()
    }
    pairs.update(overrides or {})
    return parse_llm_settings(pairs)


def resolve_store_path(override: str | Path | None = None) -> Path:
    """Return the document store file, without requiring other settings.

    Precedence: *override*, then ``MULTILOGUE_STORE``, then the
    :class:`Settings` default.
    """
    if override:
        return Path(override)
    load_dotenv()
    raw = os.environ.get("MULTILOGUE_STORE", "").strip()
    return Path(raw) if raw else Settings.store_path
