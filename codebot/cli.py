"""
Entry point for the codebot command-line interface (exposed as `cb`).

`cb` takes a plain-language modification request, sends it together with
every text file of the current project to a chat completion endpoint, and
writes the files the model proposes back to disk.  With git mode on (the
default) it refuses to start on a dirty working tree and commits the
result with the request as the commit message.

Usage examples::

    # Ask for a change; all trailing words form the instruction
    cb add a --verbose flag to the argument parser

    # Talk to a local OpenAI-compatible server without touching git
    cb --endpoint http://localhost:8000 --no-git rename Foo to Bar

    # Give up after five round trips instead of retrying forever
    cb --max-attempts 5 write unit tests for utils.js

During development the module can be run directly via:
    python -m codebot.cli
from the project root.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import BotConfig
from .errors import CodebotError, VcsError
from .pipeline import Pipeline
from .progress import InPlaceLogHandler, ProgressLine

USAGE = "Usage: cb <modification prompt>"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cb",
        description="Apply a natural-language modification request to the current project.",
    )
    parser.add_argument(
        "instruction",
        nargs="*",
        help="The modification request.  All non-flag words are joined with spaces.",
    )
    parser.add_argument("--endpoint", default=None, help="Base URL of the completion API.")
    parser.add_argument("--api-key", dest="api_key", default=None, help="Bearer token for the completion API.")
    parser.add_argument("--model", default=None, help="Model identifier sent with each request.")
    parser.add_argument("--language", default=None, help="Source-language label used in the system prompt.")
    parser.add_argument(
        "--git",
        dest="git",
        action="store_true",
        default=None,
        help="Guard against uncommitted changes and commit the result (default).",
    )
    parser.add_argument(
        "--no-git",
        dest="git",
        action="store_false",
        help="Skip the clean-tree check and do not commit.",
    )
    parser.add_argument(
        "--max-attempts",
        dest="max_attempts",
        type=int,
        default=None,
        help="Stop after this many round trips (default: retry until success).",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.environ.get("CODEBOT_LOGLEVEL", "INFO").upper(),
        help="Logging verbosity (default from env CODEBOT_LOGLEVEL or INFO).",
    )
    return parser


def setup_logging(level_name: str, line: ProgressLine) -> None:
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    handler = InPlaceLogHandler(line)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(asctime)s %(name)s:%(lineno)d - %(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    logging.getLogger("httpx").setLevel(level)
    logging.getLogger("openai").setLevel(level)
    # Also surface httpcore (wire) when DEBUG to help diagnose networking
    if level <= logging.DEBUG:
        logging.getLogger("httpcore").setLevel(level)


def main(argv: Optional[List[str]] = None, root: Optional[Path] = None) -> int:
    """Primary CLI entry point.

    Parses arguments, runs the pipeline in the current directory and
    returns an exit code.
    """
    args = build_parser().parse_intermixed_args(argv)
    line = ProgressLine()
    setup_logging(args.log_level, line)
    logger = logging.getLogger("codebot.cli")

    instruction = " ".join(args.instruction).strip()
    if not instruction:
        print(USAGE, file=sys.stderr)
        return 1

    root = (root or Path.cwd()).resolve()
    try:
        config = BotConfig.load(
            root,
            overrides={
                "endpoint": args.endpoint,
                "api_key": args.api_key,
                "model": args.model,
                "language": args.language,
                "git": args.git,
                "max_attempts": args.max_attempts,
            },
        )
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    logger.info("Loaded configuration from %s", config.config_path or "defaults")
    logger.debug(
        "Execution context: root=%s | endpoint=%s | model=%s | language=%s | git=%s | max_attempts=%s",
        root,
        config.endpoint,
        config.model,
        config.language,
        config.git,
        config.max_attempts,
    )

    try:
        pipeline = Pipeline(config, root, progress=line)
        result = pipeline.run(instruction)
    except VcsError as exc:
        logger.error("Git error: %s", exc)
        return 1
    except CodebotError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        line.clear()
        logger.error("Interrupted.")
        return 130

    for path in result.written:
        logger.info("Updated %s", os.path.relpath(path, root))
    if config.git and not result.committed:
        logger.info("Nothing changed; no commit created.")
    return 0


def run() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover
    run()
