"""Tests for the JSON-reply chat client with a stubbed OpenAI SDK."""
from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError, BadRequestError

from script_compiler.llm_client import LLMClient, LLMClientError

REQUEST = httpx.Request("POST", "https://llm.example/v1/chat/completions")


def _reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _bad_request(message):
    return BadRequestError(message, response=httpx.Response(400, request=REQUEST), body=None)


class FakeCompletions:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def create(self, **request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(*outcomes):
    completions = FakeCompletions(*outcomes)
    sdk = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return LLMClient(model="test-model", timeout=5, client=sdk), completions


def test_json_mode_is_requested():
    client, completions = _client(_reply('{"message": "ok"}'))

    assert client.complete_json([{"role": "user", "content": "hi"}], temperature=0.1) == '{"message": "ok"}'

    request = completions.requests[0]
    assert request["response_format"] == {"type": "json_object"}
    assert request["model"] == "test-model"
    assert request["temperature"] == 0.1
    assert request["timeout"] == 5


def test_rejected_json_mode_falls_back_and_is_remembered():
    client, completions = _client(
        _bad_request("Unrecognized request argument supplied: response_format"),
        _reply("{}"),
        _reply("{}"),
    )

    client.complete_json([])
    client.complete_json([])

    assert "response_format" in completions.requests[0]
    assert "response_format" not in completions.requests[1]
    assert "response_format" not in completions.requests[2]
    assert client.json_mode is False


def test_other_bad_requests_are_not_retried():
    client, completions = _client(_bad_request("maximum context length exceeded"))

    with pytest.raises(LLMClientError):
        client.complete_json([])
    assert len(completions.requests) == 1
    assert client.json_mode is True


def test_connection_errors_become_client_errors():
    client, _ = _client(APIConnectionError(request=REQUEST))
    with pytest.raises(LLMClientError):
        client.complete_json([])


def test_content_parts_are_joined():
    parts = [{"type": "text", "text": '{"a"'}, {"type": "text", "text": ": 1}"}]
    client, _ = _client(_reply(parts))
    assert client.complete_json([]) == '{"a": 1}'


@pytest.mark.parametrize("response", [
    SimpleNamespace(choices=[]),
    _reply(None),
    _reply("   "),
])
def test_empty_replies_are_errors(response):
    client, _ = _client(response)
    with pytest.raises(LLMClientError):
        client.complete_json([])


def test_missing_configuration_is_rejected(monkeypatch):
    for name in ("OPENAI_API_KEY", "API_KEY", "OPENAI_MODEL", "MODEL_STD"):
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(ValueError):
        LLMClient()
    with pytest.raises(ValueError):
        LLMClient(api_key="sk-test")
