"""Command-line interface for running action scripts in a sandbox."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from script_compiler.errors import SchemaValidationError, UnsupportedVersionError

from .errors import SandboxUnavailableError
from .gateway import ExecutionGateway, GatewaySettings
from .loader import load_script, write_run_artifacts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run an action script against the sandbox browser")
    parser.add_argument("--script", required=True, help="Path to the action script JSON")
    parser.add_argument("--sandbox", help="Sandbox name (default: env MOMOS_SANDBOX_NAME or my-sandbox)")
    parser.add_argument(
        "--output",
        default="results",
        help="Directory where run artifacts will be stored (default: results)",
    )
    parser.add_argument(
        "--no-spotlight",
        action="store_true",
        help="Do not inject Sentry or collect spotlight envelopes",
    )
    parser.add_argument(
        "--retries",
        type=int,
        help="Health check attempts before giving up (default: env MOMOS_HEALTH_RETRIES or 10)",
    )
    parser.add_argument(
        "--emit-program",
        metavar="FILE",
        help="Write the generated program to FILE for the given --cdp endpoint and exit without running",
    )
    parser.add_argument(
        "--cdp",
        default="ws://localhost:9222/devtools/browser",
        help="CDP endpoint baked into the program written by --emit-program",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print the result payload (without screenshots) to stdout upon completion",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    settings = GatewaySettings.from_env()
    if args.sandbox:
        settings = replace(settings, sandbox_name=args.sandbox)
    if args.retries is not None:
        settings = replace(settings, health_retries=args.retries)
    if args.no_spotlight:
        settings = replace(settings, telemetry=False)

    try:
        script = load_script(args.script)
    except (OSError, json.JSONDecodeError, SchemaValidationError) as exc:
        logging.error("无法加载脚本 %s: %s", args.script, exc)
        return 2

    gateway = ExecutionGateway(settings=settings)

    if args.emit_program:
        try:
            program = gateway.build_program(script, args.cdp)
        except UnsupportedVersionError as exc:
            logging.error("%s", exc)
            return 2
        Path(args.emit_program).write_text(program, encoding="utf-8")
        print(f"执行程序已写入: {args.emit_program}")
        return 0

    started_at = datetime.now()
    try:
        result = gateway.run(script)
    except UnsupportedVersionError as exc:
        logging.error("%s", exc)
        return 2
    except SandboxUnavailableError as exc:
        logging.error("沙箱不可用: %s", exc)
        return 3
    finished_at = datetime.now()

    run_dir = Path(args.output) / f"{started_at.strftime('%Y%m%dT%H%M%S')}_{settings.sandbox_name}"
    images = write_run_artifacts(result, run_dir)

    if result.stdout:
        print(result.stdout)
    if result.stderr:
        print(result.stderr, file=sys.stderr)

    print("")
    print("=" * 80)
    print("执行完成")
    print("=" * 80)
    print(f"退出码: {result.exit_code}")
    if result.trace is None:
        print("未生成 trace")
    else:
        print(f"执行成功: {result.trace.success}")
        print(f"已截图步骤: {len(result.trace.steps)}/{len(script.actions)}")
        print(f"脚本耗时: {result.trace.duration / 1000:.2f}s")
        if result.trace.error:
            print(f"错误信息: {result.trace.error}")
    if result.spotlight is not None:
        print(f"Spotlight 事件数: {len(result.spotlight)}")
    print(f"总耗时: {(finished_at - started_at).total_seconds():.2f}s")
    print(f"结果目录: {run_dir}（{len(images)} 张截图）")

    if args.summary:
        payload = result.to_dict()
        if payload["trace"]:
            for step in payload["trace"]["steps"]:
                step["screenshot"] = f"<{len(step['screenshot'])} base64 chars>"
        print(json.dumps(payload, ensure_ascii=False, indent=2))

    return 0 if result.trace is not None and result.trace.success else 1


if __name__ == "__main__":
    sys.exit(main())
