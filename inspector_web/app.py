"""Flask application serving the inspector API."""
from __future__ import annotations

import argparse
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv
from flask import Flask

from sandbox_executor.gateway import ExecutionGateway
from script_compiler.generation import ScriptGenerationPipeline

from .routes.api import api_bp
from .routes.health import health_bp
from .services.runtime import configure

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(debug: bool = False, log_dir: Optional[Path] = Path("log")) -> None:
    """控制台日志，外加 ``log_dir`` 下按天轮转的日志文件。"""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=level)

    if log_dir is None:
        return
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "momos-inspector.log"
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, TimedRotatingFileHandler) and Path(handler.baseFilename) == log_path.resolve():
            return

    file_handler = TimedRotatingFileHandler(
        log_path,
        when="midnight",
        encoding="utf-8",
        backupCount=7,
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)


def create_app(
    debug: bool = False,
    *,
    gateway: Optional[ExecutionGateway] = None,
    pipeline: Optional[ScriptGenerationPipeline] = None,
    log_dir: Optional[Path] = Path("log"),
) -> Flask:
    """Create the Flask app; ``gateway`` and ``pipeline`` override the defaults."""
    app = Flask(__name__)
    app.config["DEBUG"] = debug
    app.json.sort_keys = False

    setup_logging(debug, log_dir)
    configure(gateway=gateway, pipeline=pipeline)

    app.register_blueprint(health_bp)
    app.register_blueprint(api_bp, url_prefix="/api")
    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="启动脚本生成与执行的 Inspector API 服务")
    parser.add_argument("--port", type=int, default=5110, help="监听端口（默认 5110）")
    parser.add_argument("--debug", action="store_true", help="开启 Flask 调试模式和 DEBUG 日志")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    load_dotenv()
    args = build_parser().parse_args(argv)
    app = create_app(debug=args.debug)

    print(f"Inspector API 已启动: http://localhost:{args.port}")
    print("按 Ctrl+C 停止服务")

    app.run(host="0.0.0.0", port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
