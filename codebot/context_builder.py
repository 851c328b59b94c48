"""
Project snapshot for the codebot CLI.

This module walks the project directory and captures every source file
as a `FileRecord` holding its relative path and complete text.  Any
directory whose bare name appears in the exclusion list is pruned
without being descended into, at any depth.

Entries are visited depth-first in the order they are met while walking
(names sorted within each directory), so the result is deterministic
but not globally sorted.  Symlinked directories are not followed.
Binary and non-UTF-8 files are skipped.  Any other read failure aborts
the whole snapshot with `ScanError`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple

from .errors import ScanError

logger = logging.getLogger(__name__)


def is_binary(file_path: Path) -> bool:
    with open(file_path, "rb") as file:
        chunk = file.read(1024)
        return b"\0" in chunk


@dataclass(frozen=True)
class FileRecord:
    """A single file: its path and its full body (never a diff)."""

    path: str
    content: str

    def as_wire(self) -> dict:
        return {"filepath": self.path, "code": self.content}


Snapshot = Tuple[FileRecord, ...]


class ContextBuilder:
    """Collects the project files that are sent along with an instruction."""

    def __init__(self, base_dir: Path, exclude_dirs: Iterable[str], exclude_files: Iterable[str] = ()) -> None:
        self.base_dir = Path(base_dir)
        self.exclude_dirs = frozenset(exclude_dirs)
        # relative paths, e.g. a config file holding credentials
        self.exclude_files = frozenset(exclude_files)

    def _rel(self, path: Path) -> str:
        return os.path.relpath(path, self.base_dir).replace(os.sep, "/")

    def _read(self, path: Path) -> str | None:
        """Return the text of `path`, or None when it is not a text file."""
        try:
            if is_binary(path):
                logger.debug("Skipping binary file %s", self._rel(path))
                return None
            with path.open("r", encoding="utf-8", newline="") as f:
                return f.read()
        except UnicodeDecodeError:
            logger.debug("Skipping non UTF-8 file %s", self._rel(path))
            return None
        except OSError as exc:
            raise ScanError(f"Cannot read {path}: {exc}") from exc

    def _traverse(self, current_dir: Path, records: List[FileRecord]) -> None:
        try:
            names = sorted(os.listdir(current_dir))
        except OSError as exc:
            raise ScanError(f"Cannot list {current_dir}: {exc}") from exc

        for name in names:
            if name in self.exclude_dirs:
                continue
            path = current_dir / name
            if path.is_symlink() and path.is_dir():
                logger.debug("Not following symlinked directory %s", self._rel(path))
                continue
            if path.is_dir():
                self._traverse(path, records)
            elif path.is_file():
                if self._rel(path) in self.exclude_files:
                    logger.debug("Leaving %s out of the snapshot", self._rel(path))
                    continue
                content = self._read(path)
                if content is not None:
                    records.append(FileRecord(self._rel(path), content))

    def scan(self) -> Snapshot:
        """Walk `base_dir` and return the snapshot of its text files."""
        if not self.base_dir.is_dir():
            raise ScanError(f"{self.base_dir} is not a directory")
        records: List[FileRecord] = []
        self._traverse(self.base_dir, records)
        logger.debug("Snapshot of %s holds %d file(s)", self.base_dir, len(records))
        return tuple(records)


def scan(root: Path, excluded_names: Iterable[str]) -> Snapshot:
    """Shorthand for `ContextBuilder(root, excluded_names).scan()`."""
    return ContextBuilder(root, excluded_names).scan()
