"""Tests for the LLM generation pipeline with a scripted fake client."""
from __future__ import annotations

import json

import pytest

from script_compiler.errors import GenerationAgentError
from script_compiler.generation import ScriptGenerationPipeline, extract_json_block, validate_request
from script_compiler.llm_client import LLMClientError
from script_compiler.models import ActionScript, ClickAction, GotoAction

VALID_REPLY = {
    "message": "Opens the page and clicks sign in.",
    "script": {
        "version": "1.0.0",
        "actions": [
            {"type": "goto", "url": "https://example.com"},
            {"type": "click", "selector": "text=Sign in"},
        ],
    },
}


class FakeClient:
    """Returns the queued replies in order and records every request."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def complete_json(self, messages, *, temperature=0.2):
        self.requests.append({"messages": list(messages), "temperature": temperature})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _pipeline(*replies, max_attempts=3):
    client = FakeClient(*replies)
    return ScriptGenerationPipeline(client=client, max_attempts=max_attempts), client


def test_valid_reply_is_returned_on_first_attempt():
    pipeline, client = _pipeline(json.dumps(VALID_REPLY))

    result = pipeline.generate("https://example.com", "sign in")

    assert result.message == "Opens the page and clicks sign in."
    assert result.script.actions == [GotoAction("https://example.com"), ClickAction("text=Sign in")]
    assert result.to_dict() == VALID_REPLY
    assert len(client.requests) == 1
    assert client.requests[0]["temperature"] == 0.2
    assert "目标 URL: https://example.com" in client.requests[0]["messages"][-1]["content"]


def test_fenced_reply_is_accepted():
    pipeline, _ = _pipeline("Here you go:\n```json\n" + json.dumps(VALID_REPLY) + "\n```")
    assert pipeline.generate("https://example.com", "sign in").script.version == "1.0.0"


def test_invalid_reply_is_fed_back_and_retried():
    broken = {"message": "oops", "script": {"version": "1.0.0", "actions": [{"type": "hover", "selector": "#a"}]}}
    pipeline, client = _pipeline(json.dumps(broken), json.dumps(VALID_REPLY))

    result = pipeline.generate("https://example.com", "sign in")

    assert len(result.script.actions) == 2
    retry_messages = client.requests[1]["messages"]
    assert retry_messages[-2] == {"role": "assistant", "content": json.dumps(broken)}
    assert retry_messages[-1]["role"] == "user"
    assert "actions->0" in retry_messages[-1]["content"]


def test_gives_up_after_max_attempts():
    pipeline, client = _pipeline("not json", "{\"message\": \"x\"}", max_attempts=2)

    with pytest.raises(GenerationAgentError) as excinfo:
        pipeline.generate("https://example.com", "sign in")

    assert str(excinfo.value).startswith("2 次尝试")
    assert len(client.requests) == 2


def test_client_failure_becomes_generation_error():
    pipeline, _ = _pipeline(LLMClientError("LLM 调用失败: 500"))
    with pytest.raises(GenerationAgentError):
        pipeline.generate("https://example.com", "sign in")


def test_previous_script_is_included_in_prompt():
    pipeline, client = _pipeline(json.dumps(VALID_REPLY))
    previous = ActionScript(version="1.0.0", actions=[GotoAction("https://example.com/old")])

    pipeline.generate("https://example.com", "also sign in", previous)

    assert "https://example.com/old" in client.requests[0]["messages"][-1]["content"]


@pytest.mark.parametrize("url, prompt", [
    ("", "sign in"),
    ("example.com", "sign in"),
    ("ftp://example.com", "sign in"),
    ("https://example.com", "   "),
    ("https://example.com", None),
])
def test_bad_requests_are_rejected_before_calling_the_llm(url, prompt):
    pipeline, client = _pipeline()
    with pytest.raises(ValueError):
        pipeline.generate(url, prompt)
    assert client.requests == []
    with pytest.raises(ValueError):
        validate_request(url, prompt)


def test_extract_json_block_without_object_fails():
    with pytest.raises(ValueError):
        extract_json_block("no json here")
    assert extract_json_block("noise {\"a\": 1} trailing") == "{\"a\": 1}"


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        ScriptGenerationPipeline(client=FakeClient(), max_attempts=0)
