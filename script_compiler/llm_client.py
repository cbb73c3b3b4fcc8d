"""Chat Completions client used by the script generation agent."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from openai import BadRequestError, OpenAI, OpenAIError

LOGGER = logging.getLogger("script_compiler.llm_client")

DEFAULT_TIMEOUT = 60.0
DEFAULT_BASE_URL = "https://api.openai.com/v1"


class LLMClientError(RuntimeError):
    """Raised when the LLM API call fails or returns no text."""


def _message_text(response: Any) -> str:
    if not response.choices:
        raise LLMClientError("LLM 未返回任何候选结果")

    content = getattr(response.choices[0].message, "content", None)
    if isinstance(content, str) and content.strip():
        return content
    # 部分兼容网关以分段列表返回内容
    if isinstance(content, list):
        texts = [part.get("text") for part in content if isinstance(part, dict) and part.get("text")]
        if texts:
            return "".join(texts)
    raise LLMClientError("LLM 响应中没有文本内容")


class LLMClient:
    """Asks an OpenAI compatible endpoint for a single JSON reply.

    JSON mode (``response_format=json_object``) is requested first. Gateways
    that reject the parameter are remembered and asked again without it; the
    caller extracts and validates the JSON either way.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        resolved_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("API_KEY")
        if not resolved_key and client is None:
            raise ValueError("未设置 OPENAI_API_KEY（或 API_KEY），无法调用 LLM")

        self.model = model or os.getenv("OPENAI_MODEL") or os.getenv("MODEL_STD")
        if not self.model:
            raise ValueError("未设置 OPENAI_MODEL（或 MODEL_STD），缺少默认模型")

        timeout_env = os.getenv("LLM_TIMEOUT")
        self.timeout = timeout or (float(timeout_env) if timeout_env else DEFAULT_TIMEOUT)
        self.json_mode = True
        self.client = client or OpenAI(
            api_key=resolved_key,
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or os.getenv("BASE_URL") or DEFAULT_BASE_URL,
        )

    def complete_json(self, messages: List[Dict[str, Any]], *, temperature: float = 0.2) -> str:
        """Return the raw text of a reply that is expected to hold one JSON object."""
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "timeout": self.timeout,
        }
        if self.json_mode:
            try:
                return _message_text(self._create(response_format={"type": "json_object"}, **request))
            except BadRequestError as exc:
                if "response_format" not in str(exc):
                    raise LLMClientError(f"LLM 拒绝了请求: {exc}") from exc
                LOGGER.warning("Endpoint rejected JSON mode, retrying without it: %s", exc)
                self.json_mode = False
        try:
            return _message_text(self._create(**request))
        except BadRequestError as exc:
            raise LLMClientError(f"LLM 拒绝了请求: {exc}") from exc

    def _create(self, **request: Any) -> Any:
        try:
            return self.client.chat.completions.create(**request)
        except BadRequestError:
            raise
        except OpenAIError as exc:
            raise LLMClientError(f"LLM 调用失败: {exc}") from exc
