"""
Configuration management for the codebot CLI.

This module centralizes loading of configuration values from a JSON
configuration file, environment variables and command-line overrides.
It defines sane defaults and provides a single object that the rest of
the application is handed explicitly, instead of reading globals.

The configuration file `codebot_config.json` is looked up in the
directory the command runs in.  Its keys follow the camelCase spelling
of the completion service settings (`endpoint`, `apiKey`, `model`,
`language`, `git`, `excludeDirs`, `maxAttempts`, ...).  If the file is
absent, reasonable defaults are used.

Precedence, lowest first: defaults, config file, environment, overrides.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

CONFIG_FILE = "codebot_config.json"

DEFAULT_EXCLUDE_DIRS: List[str] = [
    "node_modules",
    ".git",
    "__pycache__",
    ".pytest_cache",
    "dist",
    "build",
    ".svn",
    "vendor",
    "target",
    ".idea",
    ".vscode",
    "bin",
    "obj",
    "out",
    ".next",
    ".nuxt",
    "jspm_packages",
    "bower_components",
    "venv",
    ".mypy_cache",
    ".history",
    ".docker",
]

# JSON key -> dataclass attribute
_FILE_KEYS: Dict[str, str] = {
    "endpoint": "endpoint",
    "apiKey": "api_key",
    "model": "model",
    "language": "language",
    "git": "git",
    "excludeDirs": "exclude_dirs",
    "maxAttempts": "max_attempts",
    "requestTimeout": "request_timeout",
    "backoffBase": "backoff_base",
    "backoffMax": "backoff_max",
    "inputTokenLimit": "input_token_limit",
}

_ENV_KEYS: Dict[str, str] = {
    "CODEBOT_ENDPOINT": "endpoint",
    "CODEBOT_MODEL": "model",
    "CODEBOT_LANGUAGE": "language",
    "CODEBOT_GIT": "git",
}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _name_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        logger.warning("excludeDirs must be a list of names, got %r; using defaults", value)
        return list(DEFAULT_EXCLUDE_DIRS)
    return [str(name) for name in value]


@dataclass(frozen=True)
class BotConfig:
    """Settings for a single codebot run.

    Attributes
    ----------
    endpoint: str
        Base URL of the completion API.  Requests go to
        `{endpoint}/v1/chat/completions`.

    api_key: str
        Bearer token sent with every request.  May be empty for local
        endpoints that do not authenticate.

    model: str
        Model identifier passed through to the endpoint.

    language: str
        Source-language label inserted into the system prompt.

    git: bool
        Refuse to run on a dirty working tree and commit the applied
        changes on success.

    exclude_dirs: List[str]
        Directory names pruned from the project snapshot.  Matching is
        on the bare name, at any depth.

    max_attempts: Optional[int]
        Upper bound on full round trips.  `None` retries until a usable
        answer arrives or the process is interrupted.

    request_timeout: float
        Per-request HTTP timeout in seconds.

    backoff_base, backoff_max: float
        Exponential backoff applied after a failed completion request.

    input_token_limit: int
        Abort before sending when the estimated prompt size is above
        this many tokens.  Set to 0 to disable the check.
    """

    endpoint: str = "https://api.openai.com"
    api_key: str = ""
    model: str = "gpt-4o"
    language: str = "javascript"
    git: bool = True
    exclude_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_DIRS))
    max_attempts: Optional[int] = None
    request_timeout: float = 600.0
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    input_token_limit: int = 0
    config_path: Optional[Path] = None

    def with_overrides(self, overrides: Mapping[str, Any]) -> "BotConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if v is not None and k in known}
        if "git" in changes:
            changes["git"] = _parse_bool(changes["git"])
        return replace(self, **changes)

    @staticmethod
    def _from_file(config_path: Path) -> Dict[str, Any]:
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to parse %s, using defaults: %s", config_path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: top-level value is not an object", config_path)
            return {}
        values: Dict[str, Any] = {}
        for key, attr in _FILE_KEYS.items():
            if key in data:
                values[attr] = data[key]
        unknown = sorted(set(data) - set(_FILE_KEYS))
        if unknown:
            logger.debug("Ignoring unknown keys in %s: %s", config_path, ", ".join(unknown))
        return values

    @staticmethod
    def _from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for var, attr in _ENV_KEYS.items():
            if environ.get(var):
                values[attr] = environ[var]
        api_key = environ.get("CODEBOT_API_KEY") or environ.get("OPENAI_API_KEY")
        if api_key:
            values["api_key"] = api_key
        return values

    @staticmethod
    def load(
        base_dir: Path,
        overrides: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BotConfig":
        """Load configuration for a run started in `base_dir`.

        Parameters
        ----------
        base_dir: Path
            The directory where the command is being executed.  This
            directory is checked for a `codebot_config.json` file.

        overrides: Mapping[str, Any], optional
            Values from the command line.  `None` entries are ignored.

        environ: Mapping[str, str], optional
            Environment to read from; defaults to `os.environ`.

        Returns
        -------
        BotConfig
            A populated configuration object.
        """
        config = BotConfig()
        config_path = base_dir / CONFIG_FILE
        if config_path.exists():
            config = config.with_overrides(BotConfig._from_file(config_path))
            config = replace(config, config_path=config_path)
        config = config.with_overrides(BotConfig._from_env(os.environ if environ is None else environ))
        config = config.with_overrides(overrides or {})

        if config.max_attempts is not None:
            config = replace(config, max_attempts=int(config.max_attempts))
            if config.max_attempts < 1:
                raise ValueError("max_attempts must be at least 1")
        config = replace(
            config,
            exclude_dirs=_name_list(config.exclude_dirs),
            request_timeout=float(config.request_timeout),
            backoff_base=float(config.backoff_base),
            backoff_max=float(config.backoff_max),
            input_token_limit=int(config.input_token_limit),
        )
        return config
