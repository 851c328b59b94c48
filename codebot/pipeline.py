"""
The request/response pipeline behind `cb`.

One run takes one instruction through these states:

    IDLE -> SCANNING -> REQUESTING -> PARSING -> WRITING -> DONE
                            ^             |          |
                            +-------------+----------+   (retry)

The project snapshot and the request body are built once.  Each attempt
then sends the request, recovers the file set from the answer and writes
it.  A failed attempt (endpoint error, unusable answer, write error) is
logged and the round trip is repeated with the same request.  Endpoint
errors back off exponentially first.  Without `max_attempts` this goes on
until it succeeds or the process is interrupted.

All run state lives in a `RunContext`; the elapsed-time ticker is started
and stopped by the run that owns it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .config import CONFIG_FILE, BotConfig
from .context_builder import ContextBuilder, Snapshot
from .errors import (
    CompletionError,
    DirtyWorkingTreeError,
    ParseError,
    RequestTooLargeError,
    RetryLimitExceeded,
    UsageError,
    WriteError,
)
from .openai_client import CompletionClient
from .parser import parse_response
from .progress import ElapsedTicker, ProgressLine
from .prompt import ChatRequest, build_request
from .vcs import GitRepository
from .writer import FileWriter

logger = logging.getLogger(__name__)

RECOVERABLE = (CompletionError, ParseError, WriteError)


class RunState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    REQUESTING = "requesting"
    PARSING = "parsing"
    WRITING = "writing"
    DONE = "done"


@dataclass
class RunContext:
    """Everything one run knows about itself."""

    instruction: str
    config: BotConfig
    root: Path
    ticker: ElapsedTicker
    state: RunState = RunState.IDLE
    attempts: int = 0
    requests_sent: int = 0
    history: List[RunState] = field(default_factory=list)

    @property
    def elapsed(self) -> int:
        return self.ticker.elapsed

    def enter(self, state: RunState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)


@dataclass
class RunResult:
    attempts: int
    written: List[Path]
    committed: bool = False
    state: RunState = RunState.DONE
    context: Optional[RunContext] = None


class Pipeline:
    """Orchestrates snapshot, request, recovery and write for one instruction."""

    def __init__(
        self,
        config: BotConfig,
        root: Path,
        client: Optional[CompletionClient] = None,
        vcs: Optional[GitRepository] = None,
        progress: Optional[ProgressLine] = None,
        tick_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.root = Path(root)
        self.client = client if client is not None else CompletionClient.from_config(config)
        self.vcs = vcs if vcs is not None else GitRepository(self.root)
        self.progress = progress if progress is not None else ProgressLine()
        self.tick_interval = tick_interval
        self.sleep = sleep
        self.writer = FileWriter(self.root)

    def _estimate_tokens(self, request: ChatRequest) -> int:
        text = request.text()
        try:
            return self.client.estimate_tokens(text)
        except Exception as exc:
            logger.warning("Failed to estimate tokens precisely (%s). Falling back to heuristic.", exc)
            return max(1, len(text) // 4)

    def check_size(self, request: ChatRequest) -> None:
        """Enforce `input_token_limit`; tokenizing is skipped when it is off."""
        limit = self.config.input_token_limit
        if not limit and not logger.isEnabledFor(logging.DEBUG):
            return
        tokens = self._estimate_tokens(request)
        logger.info("Request will use ~%d input tokens", tokens)
        if limit and tokens > limit:
            raise RequestTooLargeError(
                f"Input token count {tokens} exceeds limit {limit}. "
                "Exclude more directories or raise inputTokenLimit."
            )

    def _backoff(self, failures: int) -> float:
        return min(self.config.backoff_base * (2 ** (failures - 1)), self.config.backoff_max)

    def guard(self) -> None:
        """Refuse to run on a dirty working tree when git mode is on."""
        if not self.config.git:
            return
        if not self.vcs.is_clean():
            raise DirtyWorkingTreeError(
                "There are uncommitted changes in the working directory. Aborting..."
            )
        logger.info("No uncommitted changes detected. Continuing...")

    def snapshot(self, ctx: RunContext) -> Snapshot:
        ctx.enter(RunState.SCANNING)
        snapshot = ContextBuilder(self.root, self.config.exclude_dirs, exclude_files=[CONFIG_FILE]).scan()
        logger.info("Collected %d file(s) from %s", len(snapshot), self.root)
        return snapshot

    def attempt(self, ctx: RunContext, request: ChatRequest) -> List[Path]:
        """One full round trip; raises a recoverable error on failure."""
        ctx.enter(RunState.REQUESTING)
        ctx.requests_sent += 1
        text = self.client.send(request)
        ctx.enter(RunState.PARSING)
        file_set = parse_response(text)
        ctx.enter(RunState.WRITING)
        return self.writer.apply(file_set)

    def _retry_loop(self, ctx: RunContext, request: ChatRequest) -> List[Path]:
        limit = self.config.max_attempts
        completion_failures = 0
        while True:
            ctx.attempts += 1
            try:
                written = self.attempt(ctx, request)
            except RECOVERABLE as exc:
                logger.warning("Attempt %d failed (%s): %s", ctx.attempts, type(exc).__name__, exc)
                if limit is not None and ctx.attempts >= limit:
                    raise RetryLimitExceeded(ctx.attempts, exc) from exc
                if isinstance(exc, CompletionError):
                    completion_failures += 1
                    delay = self._backoff(completion_failures)
                    logger.info("Retrying in %.1fs", delay)
                    self.sleep(delay)
                else:
                    completion_failures = 0
                continue
            return written

    def run(self, instruction: str) -> RunResult:
        """Apply `instruction` to the project; commit when git mode is on."""
        if not instruction.strip():
            raise UsageError("An instruction is required.")
        ctx = RunContext(
            instruction=instruction,
            config=self.config,
            root=self.root,
            ticker=ElapsedTicker(self.progress, interval=self.tick_interval),
        )
        self.guard()

        with ctx.ticker:
            snapshot = self.snapshot(ctx)
            request = build_request(instruction, snapshot, self.config)
            self.check_size(request)
            written = self._retry_loop(ctx, request)
            ctx.enter(RunState.DONE)

        logger.info(
            "Wrote %d file(s) after %d attempt(s) in %ds", len(written), ctx.attempts, ctx.elapsed
        )
        result = RunResult(attempts=ctx.attempts, written=written, state=ctx.state, context=ctx)
        if self.config.git:
            result.committed = self.vcs.commit_all(instruction)
        return result
