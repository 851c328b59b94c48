"""
Recovery of the structured answer from free-form completion text.

Models often wrap the requested JSON in prose or code fences.  The
recovery strategy is deliberately simple: take everything from the first
`{` to the last `}` inclusive, decode it, and validate it against the
file set shape:

    {"files": [{"filepath": "<path>", "code": "<full file body>"}, ...]}

Anything that does not fit raises `ParseError`; no other exception
escapes `parse_response` for any string input.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .context_builder import FileRecord
from .errors import ParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileSet:
    """The validated file edits proposed by the model."""

    files: Tuple[FileRecord, ...]

    def to_json(self) -> str:
        return json.dumps({"files": [record.as_wire() for record in self.files]}, ensure_ascii=False)


def extract_json_object(text: str) -> Optional[str]:
    """Return the substring from the first `{` to the last `}`, if any."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return text[start : end + 1]


def _record(index: int, item: Any) -> FileRecord:
    if not isinstance(item, dict):
        raise ParseError(f"files[{index}] is not an object")
    path = item.get("filepath")
    code = item.get("code")
    if not isinstance(path, str) or not path.strip():
        raise ParseError(f"files[{index}].filepath is missing or not a string")
    if "\x00" in path:
        raise ParseError(f"files[{index}].filepath contains a NUL byte")
    if not isinstance(code, str):
        raise ParseError(f"files[{index}].code is missing or not a string")
    return FileRecord(path, code)


def decode_file_set(payload: Any) -> FileSet:
    """Validate an already decoded JSON value as a file set."""
    if not isinstance(payload, dict):
        raise ParseError("Payload is not a JSON object")
    files = payload.get("files")
    if not isinstance(files, list):
        raise ParseError("Payload has no 'files' array")
    return FileSet(tuple(_record(i, item) for i, item in enumerate(files)))


def parse_response(text: str) -> FileSet:
    """Extract and validate the file set embedded in `text`."""
    candidate = extract_json_object(text)
    if candidate is None:
        raise ParseError("No JSON object found in the completion")
    try:
        payload = json.loads(candidate)
    except (ValueError, RecursionError) as exc:
        raise ParseError(f"Failed to decode JSON object: {exc}") from exc
    file_set = decode_file_set(payload)
    if not file_set.files:
        logger.warning("The completion proposes no file changes")
    return file_set
