"""CLI entry for LLM-based action script generation."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from .errors import GenerationAgentError, SchemaValidationError
from .generation import ScriptGenerationPipeline
from .llm_client import LLMClient
from .schema import validate_script


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Use an LLM to turn a test scenario into an action script")
    parser.add_argument("--url", required=True, help="Absolute URL of the site under test")
    parser.add_argument("--prompt", required=True, help="Natural language description of the scenario")
    parser.add_argument("--previous", help="Path to an existing script JSON to revise")
    parser.add_argument(
        "--output",
        help="Where to write the generated script (default: scripts/<timestamp>_script.json)",
    )
    parser.add_argument(
        "--attempts",
        type=int,
        default=3,
        help="Maximum number of correction attempts when validation fails (default: 3)",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=0.2,
        help="LLM temperature (default: 0.2)",
    )
    parser.add_argument(
        "--api-timeout",
        type=float,
        help="HTTP timeout in seconds for LLM requests (default: env LLM_TIMEOUT or 60)",
    )
    parser.add_argument("--summary", action="store_true", help="Print the generated script JSON")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    parser = build_parser()
    args = parser.parse_args(argv)

    previous = None
    if args.previous:
        try:
            previous = validate_script(json.loads(Path(args.previous).read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, SchemaValidationError) as exc:
            logging.error("无法读取已有脚本 %s: %s", args.previous, exc)
            return 2

    try:
        client = LLMClient(timeout=args.api_timeout)
        pipeline = ScriptGenerationPipeline(client=client, max_attempts=args.attempts, temperature=args.temperature)
        result = pipeline.generate(args.url, args.prompt, previous)
    except ValueError as exc:
        logging.error("输入参数有误: %s", exc)
        return 2
    except GenerationAgentError as exc:
        logging.error("脚本生成失败: %s", exc)
        return 1

    output_path = Path(args.output) if args.output else Path("scripts") / f"{datetime.now().strftime('%Y%m%dT%H%M%S')}_script.json"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(result.script.to_dict(), handle, ensure_ascii=False, indent=2)

    print(result.message)
    print(f"脚本已保存到: {output_path}（共 {len(result.script.actions)} 个动作）")
    if args.summary:
        print(json.dumps(result.script.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
