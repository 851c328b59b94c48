"""
Request construction for the codebot CLI.

The outbound request is a two-message chat: a fixed system message that
casts the model as a code modification assistant for the configured
language, and a user message carrying a JSON document with the
instruction, the required response format and the project snapshot.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, List

from .config import BotConfig
from .context_builder import Snapshot


SYSTEM_PROMPT = (
    "You are a code modification assistant. Your task is to help users by suggesting "
    "modifications and comments to the {language} code files they provide based on the "
    "instructions given in the user_request. Please maintain the original functionality "
    "of the code as much as possible and make clear if a request cannot be fulfilled. "
    "Always finish your code, never provide todos. You are allowed to specify new files "
    "if the user did not provide any"
)

# The response parser relies on this shape; keep both in sync.
RESPONSE_FORMAT = json.dumps(
    {
        "files": [
            {"filepath": "<FILEPATH1_HERE>", "code": "<CODE1_HERE>"},
            {"filepath": "<FILEPATH2_HERE>", "code": "<CODE2_HERE>"},
        ]
    },
    separators=(",", ":"),
)


@dataclass(frozen=True)
class ChatRequest:
    """The body of a chat completion call."""

    model: str
    messages: List[Dict[str, str]]

    def text(self) -> str:
        """All message contents joined, used for token estimates."""
        return "\n".join(m["content"] for m in self.messages)


def build_user_message(instruction: str, snapshot: Snapshot) -> str:
    return json.dumps(
        {
            "user_request": (
                f"{instruction}. You respond exclusively in the following format: "
                f"{RESPONSE_FORMAT}"
            ),
            "files": [record.as_wire() for record in snapshot],
        },
        ensure_ascii=False,
    )


def build_request(instruction: str, snapshot: Snapshot, config: BotConfig) -> ChatRequest:
    """Assemble the chat request for `instruction` over `snapshot`."""
    return ChatRequest(
        model=config.model,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT.format(language=config.language)},
            {"role": "user", "content": build_user_message(instruction, snapshot)},
        ],
    )
