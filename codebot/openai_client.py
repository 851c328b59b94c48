"""
Completion client for the codebot CLI.

This module encapsulates the single HTTP call the pipeline makes: a chat
completion request against an OpenAI-compatible endpoint.  By routing the
call through the `openai` library here, the rest of the application stays
decoupled from the service interface, and tests can swap the transport.

Every failure mode of the call (network error, non-2xx status, an envelope
without usable `choices`) is surfaced as `CompletionError`.  Retrying is the
caller's decision, so the library's own retries are disabled.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx
import openai
import tiktoken

from .config import BotConfig
from .errors import CompletionError, ConfigurationError
from .prompt import ChatRequest

logger = logging.getLogger(__name__)

# Local OpenAI-compatible servers usually ignore the token, but the SDK
# refuses to start without one.
PLACEHOLDER_API_KEY = "no-key"


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_content(response: Any) -> str:
    """Concatenate `choices[*].message.content` in array order.

    Raises `CompletionError` when the envelope does not have that shape.
    """
    choices = _field(response, "choices")
    if not isinstance(choices, list) or not choices:
        raise CompletionError("Response has no choices")
    buf: List[str] = []
    for index, choice in enumerate(choices):
        message = _field(choice, "message")
        if message is None:
            raise CompletionError(f"Choice {index} has no message")
        content = _field(message, "content")
        if content is None:
            continue
        if not isinstance(content, str):
            raise CompletionError(f"Choice {index} content is not text")
        buf.append(content)
    return "".join(buf)


class CompletionClient:
    """Wrapper around the chat completions endpoint with token estimation."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        model: str = "gpt-4o",
        timeout: float = 600.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        if not endpoint:
            raise ConfigurationError("A completion endpoint is required.")
        if not api_key:
            logger.warning("No API key configured; sending a placeholder token.")
            api_key = PLACEHOLDER_API_KEY
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        try:
            self.client = openai.OpenAI(
                api_key=api_key,
                base_url=f"{self.endpoint}/v1",
                timeout=timeout,
                max_retries=0,
                http_client=http_client,
            )
        except openai.OpenAIError as exc:
            raise ConfigurationError(f"Cannot create completion client: {exc}") from exc

    @classmethod
    def from_config(cls, config: BotConfig, http_client: Optional[httpx.Client] = None) -> "CompletionClient":
        return cls(
            endpoint=config.endpoint,
            api_key=config.api_key,
            model=config.model,
            timeout=config.request_timeout,
            http_client=http_client,
        )

    def estimate_tokens(self, text: str) -> int:
        """Estimate the number of tokens used by a text for the configured model."""
        try:
            encoding = tiktoken.encoding_for_model(self.model)
        except KeyError:
            # Default to cl100k_base if model unknown
            encoding = tiktoken.get_encoding("cl100k_base")
        return len(encoding.encode(text))

    def send(self, request: ChatRequest) -> str:
        """POST `request` and return the concatenated completion text."""
        logger.debug("Sending chat completion: model=%s, messages=%d", request.model, len(request.messages))
        try:
            response = self.client.chat.completions.create(
                model=request.model,
                messages=request.messages,
            )
        except openai.APIStatusError as exc:
            raise CompletionError(f"Endpoint returned HTTP {exc.status_code}: {exc.message}") from exc
        except openai.APIError as exc:
            raise CompletionError(f"Request failed: {exc}") from exc
        except ValueError as exc:
            raise CompletionError(f"Malformed response body: {exc}") from exc

        text = extract_content(response)
        logger.debug("Completion received: id=%s, length=%d", _field(response, "id"), len(text))
        return text
