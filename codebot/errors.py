"""
Exception hierarchy for the codebot CLI.

Every failure the pipeline knows how to classify derives from
`CodebotError`.  The retry controller treats `ParseError`, `WriteError`
and `CompletionError` as recoverable; the rest stop the run and are
turned into exit code 1 by the CLI.
"""

from __future__ import annotations


class CodebotError(Exception):
    """Base class for all codebot failures."""


class ConfigurationError(CodebotError):
    """A setting is missing or unusable."""


class UsageError(CodebotError):
    """No instruction was supplied on the command line."""


class ScanError(CodebotError):
    """A file or directory of the project could not be read."""


class CompletionError(CodebotError):
    """The completion endpoint failed or returned an unexpected envelope."""


class RequestTooLargeError(CodebotError):
    """The assembled request exceeds the configured input token limit."""


class ParseError(CodebotError):
    """The completion text did not contain a well-formed file set."""


class WriteError(CodebotError):
    """A file from the parsed file set could not be written."""


class UnsafePathError(WriteError):
    """A proposed file path resolves outside the working directory."""


class VcsError(CodebotError):
    """A git command failed."""


class DirtyWorkingTreeError(CodebotError):
    """The git working tree has uncommitted changes."""


class RetryLimitExceeded(CodebotError):
    """The configured maximum number of attempts was used up."""

    def __init__(self, attempts: int, last_error: Exception | None = None) -> None:
        message = f"Gave up after {attempts} attempt(s)"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
