"""
Writing a parsed file set to disk.

Each file is fully replaced with the proposed content.  A single file is
written all-or-nothing: the text goes to a temporary file next to the
target and is moved into place with `os.replace`.  The set as a whole is
not transactional, so a failure partway leaves earlier files updated.

Every path is checked before anything is written; a path that resolves
outside the working directory rejects the whole set.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import List

from .errors import UnsafePathError, WriteError
from .parser import FileSet

logger = logging.getLogger(__name__)


def atomic_write_text(target: Path, data: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_file = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False,
    )
    temp_name = temp_file.name
    try:
        with temp_file:
            temp_file.write(data)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        if target.exists():
            os.chmod(temp_name, target.stat().st_mode & 0o7777)
        else:
            os.chmod(temp_name, 0o644)
        os.replace(temp_name, target)
    finally:
        if os.path.exists(temp_name):
            try:
                os.remove(temp_name)
            except OSError:
                pass


class FileWriter:
    """Applies file sets below a fixed root directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()

    def resolve(self, path: str) -> Path:
        """Resolve `path` against the root, refusing anything outside it."""
        target = (self.root / path).resolve()
        if target == self.root or not target.is_relative_to(self.root):
            raise UnsafePathError(f"Refusing to write outside {self.root}: {path}")
        return target

    def apply(self, file_set: FileSet) -> List[Path]:
        """Write every record of `file_set`; return the written paths."""
        targets = [(self.resolve(record.path), record) for record in file_set.files]
        written: List[Path] = []
        for target, record in targets:
            try:
                atomic_write_text(target, record.content)
            except OSError as exc:
                raise WriteError(f"Failed to write {record.path}: {exc}") from exc
            logger.debug("Wrote %s (%d chars)", record.path, len(record.content))
            written.append(target)
        return written
