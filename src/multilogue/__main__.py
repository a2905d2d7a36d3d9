"""Entry point for ``python -m multilogue``.

Provides a CLI over the document store and the inference orchestrator.
Uses stdlib :mod:`argparse` for argument parsing.

Subcommands:
    load      -- Load a transcript file into the store.
    save      -- Save the stored transcript to a file.
    show      -- Print the stored transcript in any representation.
    seed      -- First-use seeding of the transcript from static markup.
    run       -- Run one inference cycle with Gemini.
    thoughts  -- Print the stored reasoning notes.

Exit codes:
    0 -- Command completed successfully.
    1 -- An error occurred (file, config, credential or inference error).
    2 -- Argument parsing error (handled by argparse).
"""

from __future__ import annotations

import argparse
import asyncio
import functools
import getpass
import logging
import sys

from multilogue.companion import EMPTY_NOTES_PLACEHOLDER
from multilogue.config import ConfigError, llm_settings_from_env, load_settings, resolve_store_path
from multilogue.console import DISPLAY_FORMATS, print_outcome, render_document
from multilogue.credentials import fetch_credential
from multilogue.exceptions import EmptyInputError, MultilogueError
from multilogue.files import load_text, load_transcript, save_transcript
from multilogue.llm import GeminiInference
from multilogue.log import redact, setup_logging
from multilogue.orchestrator import CycleStatus, InferenceOrchestrator
from multilogue.store import DocumentStore, JsonFileBackend

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser with subcommands."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--store",
        type=str,
        default=None,
        help="Document store file (defaults to MULTILOGUE_STORE or .multilogue.json).",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )

    parser = argparse.ArgumentParser(
        prog="multilogue",
        description="Co-author a dialogue with a language model.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    load_parser = subparsers.add_parser("load", parents=[common], help="Load a transcript file.")
    load_parser.add_argument("file", type=str, help="Transcript text file.")

    save_parser = subparsers.add_parser("save", parents=[common], help="Save the transcript.")
    save_parser.add_argument("file", type=str, help="Destination file or directory.")

    show_parser = subparsers.add_parser("show", parents=[common], help="Print the transcript.")
    show_parser.add_argument(
        "--format",
        choices=DISPLAY_FORMATS,
        default="text",
        help="Representation to print (default: text).",
    )

    seed_parser = subparsers.add_parser(
        "seed", parents=[common], help="Seed an empty store from static markup."
    )
    seed_parser.add_argument("file", type=str, help="File containing dialogue markup.")

    run_parser = subparsers.add_parser("run", parents=[common], help="Run one inference cycle.")
    run_parser.add_argument(
        "--credential",
        type=str,
        default=None,
        help="Gemini API key (overrides GEMINI_API_KEY and the credential endpoint).",
    )
    run_parser.add_argument(
        "--set",
        dest="llm_settings",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="LLM setting, e.g. temperature=0.7 or includeThoughts=true (repeatable).",
    )
    run_parser.add_argument(
        "--guard-stale",
        action="store_true",
        default=False,
        help="Discard the reply if the transcript changed while waiting for it.",
    )

    subparsers.add_parser("thoughts", parents=[common], help="Print the reasoning notes.")

    return parser


def _parse_pairs(raw_pairs: list[str]) -> dict[str, str]:
    """Split ``KEY=VALUE`` strings; malformed entries raise ``ValueError``."""
    pairs: dict[str, str] = {}
    for raw in raw_pairs:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {raw!r}")
        pairs[key.strip()] = value
    return pairs


def _open_store(args: argparse.Namespace) -> DocumentStore:
    return DocumentStore(JsonFileBackend(resolve_store_path(args.store)))


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


def _handle_load(args: argparse.Namespace) -> int:
    store = _open_store(args)
    text = load_transcript(store, args.file)
    print(f"Loaded {len(text)} character(s) from {args.file}")
    return 0


def _handle_save(args: argparse.Namespace) -> int:
    store = _open_store(args)
    written = save_transcript(store, args.file)
    print(f"Saved dialogue to {written}")
    return 0


def _handle_show(args: argparse.Namespace) -> int:
    store = _open_store(args)
    model_name = None
    if args.format in ("flat", "grouped"):
        model_name = load_settings().machine_name
    print(render_document(store.transcript, args.format, model_name))
    return 0


def _handle_seed(args: argparse.Namespace) -> int:
    store = _open_store(args)
    text = store.seed(load_text(args.file))
    print(f"Transcript holds {len(text)} character(s)")
    return 0


def _handle_thoughts(args: argparse.Namespace) -> int:
    store = _open_store(args)
    notes = store.notes
    print(notes if notes.strip() else EMPTY_NOTES_PLACEHOLDER)
    return 0


def _handle_run(args: argparse.Namespace) -> int:
    settings = load_settings()
    if not args.verbose:
        setup_logging(settings.log_level)
    redact(settings.gemini_api_key, args.credential)
    llm_settings = llm_settings_from_env(_parse_pairs(args.llm_settings))
    store = DocumentStore(JsonFileBackend(resolve_store_path(args.store or settings.store_path)))

    fetcher = None
    if settings.credential_endpoint:
        fetcher = functools.partial(fetch_credential, settings.credential_endpoint)

    orchestrator = InferenceOrchestrator(
        store,
        settings.machine_config(),
        GeminiInference(),
        settings=llm_settings,
        fetch_credential=fetcher,
        credential=args.credential or settings.gemini_api_key,
        guard_stale_replies=args.guard_stale,
    )

    outcome = asyncio.run(orchestrator.run_cycle())

    if outcome.status is CycleStatus.NEEDS_CREDENTIAL and sys.stdin.isatty():
        credential = getpass.getpass("Gemini API key: ")
        redact(credential)
        if credential.strip():
            outcome = asyncio.run(orchestrator.resume_with_credential(credential))

    print_outcome(outcome)
    return 0 if outcome.ok or outcome.status is CycleStatus.NOTHING_TO_SEND else 1


_HANDLERS = {
    "load": _handle_load,
    "save": _handle_save,
    "show": _handle_show,
    "seed": _handle_seed,
    "run": _handle_run,
    "thoughts": _handle_thoughts,
}


def main(argv: list[str] | None = None) -> int:
    """Run the multilogue CLI.

    Args:
        argv: Command-line arguments.  Defaults to ``sys.argv[1:]``.

    Returns:
        Exit code: ``0`` on success, ``1`` on error.
    """
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    setup_logging("DEBUG" if args.verbose else "INFO")

    try:
        return _HANDLERS[args.command](args)
    except EmptyInputError as exc:
        print(str(exc))
        return 0
    except (ConfigError, MultilogueError, ValueError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
