import json

import httpx
import pytest

from codebot.config import BotConfig
from codebot.errors import CompletionError, ConfigurationError
from codebot.openai_client import PLACEHOLDER_API_KEY, CompletionClient, extract_content
from codebot.prompt import ChatRequest


def completion_body(*contents):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "test-model",
        "choices": [
            {"index": i, "finish_reason": "stop", "message": {"role": "assistant", "content": c}}
            for i, c in enumerate(contents)
        ],
    }


def make_client(handler, api_key="secret-key"):
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    config = BotConfig(endpoint="http://llm.local:3000/", api_key=api_key, model="test-model")
    return CompletionClient.from_config(config, http_client=http_client)


REQUEST = ChatRequest(
    model="test-model",
    messages=[{"role": "system", "content": "sys"}, {"role": "user", "content": "usr"}],
)


def test_send_posts_chat_completion_with_bearer_token():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion_body("hello"))

    text = make_client(handler).send(REQUEST)

    assert text == "hello"
    assert seen["method"] == "POST"
    assert seen["url"] == "http://llm.local:3000/v1/chat/completions"
    assert seen["auth"] == "Bearer secret-key"
    assert seen["body"]["model"] == "test-model"
    assert seen["body"]["messages"] == REQUEST.messages


def test_choice_contents_are_concatenated_in_order():
    client = make_client(lambda request: httpx.Response(200, json=completion_body('{"files"', ": []}")))

    assert client.send(REQUEST) == '{"files": []}'


@pytest.mark.parametrize("status", [400, 401, 429, 500, 503])
def test_non_2xx_status_is_a_completion_error(status):
    client = make_client(lambda request: httpx.Response(status, json={"error": {"message": "nope"}}))

    with pytest.raises(CompletionError):
        client.send(REQUEST)


def test_network_failure_is_a_completion_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CompletionError):
        make_client(handler).send(REQUEST)


@pytest.mark.parametrize(
    "body",
    [
        {"id": "x", "object": "chat.completion", "created": 0, "model": "m"},
        {"id": "x", "object": "chat.completion", "created": 0, "model": "m", "choices": []},
    ],
)
def test_missing_choices_is_a_completion_error(body):
    client = make_client(lambda request: httpx.Response(200, json=body))

    with pytest.raises(CompletionError):
        client.send(REQUEST)


def test_extract_content_accepts_plain_dicts():
    assert extract_content({"choices": [{"message": {"content": "a"}}, {"message": {"content": "b"}}]}) == "ab"


@pytest.mark.parametrize(
    "response",
    [
        {},
        {"choices": "text"},
        {"choices": [{}]},
        {"choices": [{"message": {"content": 42}}]},
    ],
)
def test_extract_content_rejects_unexpected_shapes(response):
    with pytest.raises(CompletionError):
        extract_content(response)


def test_missing_api_key_sends_placeholder_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json=completion_body("ok"))

    assert make_client(handler, api_key="").send(REQUEST) == "ok"
    assert seen["auth"] == f"Bearer {PLACEHOLDER_API_KEY}"


def test_empty_endpoint_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        CompletionClient(endpoint="", api_key="k")
