"""Loading and saving transcript text files.

These are the load/save collaborators of the document store: they only
move text between the filesystem and the store, and raise
:class:`~multilogue.exceptions.LoadError` / :class:`~multilogue.exceptions.SaveError`
for the presentation layer to report.
"""

from __future__ import annotations

import logging
from pathlib import Path

from multilogue.exceptions import EmptyInputError, LoadError, SaveError
from multilogue.store import PRIMARY_KEY, DocumentStore

logger = logging.getLogger(__name__)

SUGGESTED_NAME = "multilogue.txt"
TEXT_SUFFIXES = (".txt", ".md", ".text", ".plato")


def load_text(path: str | Path) -> str:
    """Read a UTF-8 text file.

    Raises:
        LoadError: If *path* does not exist, is not a file, or cannot be
            read or decoded.
    """
    path = Path(path)
    if not path.is_file():
        raise LoadError(f"Not a file: {path}")
    if path.suffix.lower() not in TEXT_SUFFIXES:
        logger.warning("Loading %s with an unexpected suffix", path)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadError(f"Error opening file {path}: {exc}") from exc


def save_text(text: str, path: str | Path) -> Path:
    """Write *text* to *path* as UTF-8.

    A directory path gets :data:`SUGGESTED_NAME` appended.

    Returns:
        The path that was written.

    Raises:
        SaveError: If the file cannot be written.
    """
    path = Path(path)
    if path.is_dir():
        path = path / SUGGESTED_NAME
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise SaveError(f"Could not save file {path}: {exc}") from exc
    logger.info("Saved %d character(s) to %s", len(text), path)
    return path


def load_transcript(store: DocumentStore, path: str | Path) -> str:
    """Load a transcript file and replace the stored transcript with it."""
    text = load_text(path)
    store.set(PRIMARY_KEY, text)
    return text


def save_transcript(store: DocumentStore, path: str | Path) -> Path:
    """Save the stored transcript to *path*.

    After a successful write the transcript is stored again so every
    observer refreshes.

    Raises:
        EmptyInputError: If the transcript is empty.
        SaveError: If the file cannot be written.
    """
    text = store.transcript
    if not text.strip():
        raise EmptyInputError("Dialogue is empty. Nothing to save.")
    written = save_text(text, path)
    store.set(PRIMARY_KEY, text)
    return written
