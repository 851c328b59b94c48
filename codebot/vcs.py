"""
Git integration: the clean-tree guard and the final commit.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Tuple

from .errors import VcsError

logger = logging.getLogger(__name__)


class GitRepository:
    """Runs git commands inside `root`."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _run(self, args: List[str]) -> Tuple[int, str, str]:
        """Run a git command in root and return (returncode, stdout, stderr)."""
        try:
            proc = subprocess.run(
                ["git", *args],
                cwd=str(self.root),
                text=True,
                capture_output=True,
                check=False,
            )
            return proc.returncode, proc.stdout, proc.stderr
        except FileNotFoundError:
            return 127, "", "git not found"

    def _check(self, args: List[str]) -> str:
        code, out, err = self._run(args)
        if code != 0:
            raise VcsError(f"git {args[0]} failed ({code}): {err.strip() or out.strip()}")
        return out

    def is_clean(self) -> bool:
        """True when `git status --porcelain` reports nothing."""
        return not self._check(["status", "--porcelain"]).strip()

    def has_staged_changes(self) -> bool:
        code, _, err = self._run(["diff", "--cached", "--quiet"])
        if code not in (0, 1):
            raise VcsError(f"git diff failed ({code}): {err.strip()}")
        return code == 1

    def commit_all(self, message: str) -> bool:
        """Stage everything and commit it with `message`.

        Returns False without committing when staging leaves nothing to
        commit, e.g. when the written files match what was already there.
        """
        self._check(["add", "."])
        if not self.has_staged_changes():
            logger.info("Nothing to commit; working tree unchanged.")
            return False
        self._check(["commit", "-m", message])
        logger.info("Committed changes: %s", message)
        return True
