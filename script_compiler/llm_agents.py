"""Prompt building blocks shared with the LLM during script generation."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .models import ActionScript
from .schema import ACTION_SCRIPT_SCHEMA

SYSTEM_PROMPT = ("你是一名资深的浏览器拨测与合成监控脚本专家。"
                 "你需要把用户的测试需求转换成带版本号的动作脚本，由 Playwright 执行器逐步回放。"
                 "请严格遵守提供的 JSON Schema，并只输出 JSON。")

GUIDELINES = ("生成动作脚本时请遵循以下规则：\n"
              "1. 只允许三种动作：goto（url）、click（selector）和 sleep（milliseconds）。\n"
              "2. 第一个动作必须是 goto 到目标 URL；修改已有脚本且其已以 goto 开头时除外。\n"
              "3. selector 必须是 Playwright 支持的语法。优先使用 data-testid、aria 标签、id 以及 "
              "`text=登录`、`button:has-text('登录')` 这类文本选择器，避免脆弱的 CSS 路径。\n"
              "4. 禁止使用 :contains() 等 jQuery 伪类。\n"
              "5. 触发跳转或动画的操作之后，如果下一次点击依赖其结果，请插入 500-2000 毫秒的 sleep。\n"
              "6. 只覆盖用户描述的场景，不要添加无关步骤。\n"
              "7. `version` 必须是 \"1.0.0\"。\n")

SAMPLE_REPLY: Dict[str, Any] = {
    "message": "打开首页，点击定价链接，并等待套餐列表渲染完成。",
    "script": {
        "version": "1.0.0",
        "actions": [
            {"type": "goto", "url": "https://example.com"},
            {"type": "click", "selector": "a:has-text('Pricing')"},
            {"type": "sleep", "milliseconds": 1000},
        ],
    },
}


@dataclass
class ScriptSpecification:
    """Schema and sample reply handed to the LLM."""

    schema: Dict[str, Any] = field(default_factory=lambda: ACTION_SCRIPT_SCHEMA)
    sample: Dict[str, Any] = field(default_factory=lambda: SAMPLE_REPLY)

    def as_prompt(self) -> str:
        schema_json = json.dumps(self.schema, ensure_ascii=False, indent=2)
        sample_json = json.dumps(self.sample, ensure_ascii=False, indent=2)
        return ("回复中的 `script` 字段必须符合以下 JSON Schema。\n"
                "### JSON Schema\n"
                f"```json\n{schema_json}\n```\n"
                "### 生成规则\n"
                f"{GUIDELINES}\n"
                "### 回复格式\n"
                "只回复一个 JSON 对象，包含两个字段：`message` 是给用户的简短说明，`script` 是动作脚本。\n"
                f"```json\n{sample_json}\n```\n"
                "务必只返回 JSON，不要添加多余说明。")


class GenerationRequestSummarizer:
    """把用户需求整理成发给 LLM 的文本。"""

    @staticmethod
    def summarize(url: str, prompt: str, previous_script: Optional[ActionScript] = None) -> str:
        lines = [f"目标 URL: {url}", f"测试需求: {prompt.strip()}"]
        if previous_script is not None:
            # 修改模式：保留仍然适用的步骤
            lines.append("当前脚本（请在此基础上修改以满足需求，保留仍然适用的步骤）：")
            lines.append(f"```json\n{json.dumps(previous_script.to_dict(), ensure_ascii=False, indent=2)}\n```")
        return "\n".join(lines)
