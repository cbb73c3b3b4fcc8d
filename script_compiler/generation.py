"""LLM-driven generation of action scripts from natural language."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .errors import GenerationAgentError, SchemaValidationError
from .llm_agents import SYSTEM_PROMPT, GenerationRequestSummarizer, ScriptSpecification
from .llm_client import LLMClient, LLMClientError
from .models import ActionScript
from .schema import validate_script

LOGGER = logging.getLogger("script_compiler.generation")

JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


@dataclass(frozen=True)
class GenerationResult:
    """Assistant message plus the script it produced."""

    message: str
    script: ActionScript

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "script": self.script.to_dict()}


def extract_json_block(text: str) -> str:
    match = JSON_BLOCK_RE.search(text)
    if match:
        return match.group(1)
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        return text[first_brace:last_brace + 1]
    raise ValueError("LLM 输出中没有 JSON 对象")


def validate_request(url: Any, prompt: Any) -> None:
    if not isinstance(url, str) or not url.strip():
        raise ValueError("url 不能为空")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"url 必须是完整的 http(s) 地址: {url!r}")
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValueError("prompt 必须是非空字符串")


def parse_reply(payload: Any) -> GenerationResult:
    """Turn the decoded LLM reply into a :class:`GenerationResult`."""
    if not isinstance(payload, dict):
        raise SchemaValidationError("回复必须是包含 `message` 和 `script` 的 JSON 对象")
    if "script" not in payload:
        raise SchemaValidationError("回复缺少 `script` 字段")
    message = payload.get("message") or ""
    if not isinstance(message, str):
        raise SchemaValidationError("`message` 必须是字符串")
    return GenerationResult(message=message.strip(), script=validate_script(payload["script"]))


class ScriptGenerationPipeline:
    """Asks the LLM for a script and feeds validation errors back until it is valid."""

    def __init__(
        self,
        *,
        client: Optional[LLMClient] = None,
        max_attempts: int = 3,
        temperature: float = 0.2,
        spec: Optional[ScriptSpecification] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client or LLMClient()
        self.spec = spec or ScriptSpecification()
        self.max_attempts = max_attempts
        self.temperature = temperature

    def generate(self, url: str, prompt: str, previous_script: Optional[ActionScript] = None) -> GenerationResult:
        """Produce ``{message, script}`` for ``prompt`` against ``url``.

        Raises:
            ValueError: the url or prompt is unusable.
            GenerationAgentError: the LLM failed or never produced a valid script.
        """
        validate_request(url, prompt)
        messages = self._initial_messages(url.strip(), prompt, previous_script)
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                completion = self.client.complete_json(messages, temperature=self.temperature)
            except LLMClientError as exc:
                raise GenerationAgentError(f"脚本生成失败: {exc}") from exc

            try:
                result = parse_reply(json.loads(extract_json_block(completion)))
            except json.JSONDecodeError as exc:
                last_error = f"JSON 解析失败：{exc}"
            except ValueError as exc:
                last_error = str(exc)
            else:
                LOGGER.info("Generated script with %d actions (attempt %d)", len(result.script.actions), attempt)
                return result

            LOGGER.warning("Attempt %d produced an invalid script: %s", attempt, last_error)
            messages.append({"role": "assistant", "content": completion})
            messages.append({
                "role": "user",
                "content": ("上一步生成的 JSON 存在问题：\n"
                            f"{last_error}\n"
                            "请根据错误信息重新输出完整的 JSON 对象，仍然只输出 JSON。"),
            })

        raise GenerationAgentError(f"{self.max_attempts} 次尝试后仍未得到合法的脚本：{last_error}")

    def _initial_messages(
        self,
        url: str,
        prompt: str,
        previous_script: Optional[ActionScript],
    ) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": self.spec.as_prompt()},
            {
                "role": "user",
                "content": (f"{GenerationRequestSummarizer.summarize(url, prompt, previous_script)}\n\n"
                            "请基于上述需求生成回复 JSON。"),
            },
        ]
