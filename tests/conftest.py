import io
from typing import List, Optional

import pytest

from codebot.config import BotConfig
from codebot.errors import CompletionError
from codebot.progress import ProgressLine


@pytest.fixture(autouse=True)
def offline_token_estimate(monkeypatch):
    # tiktoken fetches encodings over the network on first use
    monkeypatch.setattr(
        "codebot.openai_client.CompletionClient.estimate_tokens",
        lambda self, text: max(1, len(text) // 4),
    )


class ScriptedClient:
    """Stands in for CompletionClient, replaying canned answers in order."""

    def __init__(self, responses: List[object]):
        self.responses = list(responses)
        self.requests = []
        self.estimates = 0

    def estimate_tokens(self, text: str) -> int:
        self.estimates += 1
        return max(1, len(text) // 4)

    def send(self, request):
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("no scripted responses left")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeRepo:
    def __init__(self, clean: bool = True, commit_error: Optional[Exception] = None, changed: bool = True):
        self.changed = changed
        self.clean = clean
        self.commit_error = commit_error
        self.commits: List[str] = []
        self.status_calls = 0

    def is_clean(self) -> bool:
        self.status_calls += 1
        return self.clean

    def commit_all(self, message: str) -> bool:
        if self.commit_error is not None:
            raise self.commit_error
        if not self.changed:
            return False
        self.commits.append(message)
        return True


@pytest.fixture
def config():
    return BotConfig(git=False, backoff_base=0.0, backoff_max=0.0)


@pytest.fixture
def progress():
    return ProgressLine(io.StringIO())


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client():
    return ScriptedClient


@pytest.fixture
def make_repo():
    return FakeRepo


@pytest.fixture
def completion_error():
    return CompletionError("Endpoint returned HTTP 503: overloaded")
