"""Inspector REST API: script generation and sandbox runs."""
from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from sandbox_executor.errors import SandboxUnavailableError
from script_compiler.errors import GenerationAgentError, SchemaValidationError, UnsupportedVersionError
from script_compiler.schema import validate_script

from ..services.runtime import get_gateway, get_generation_pipeline
from ..utils.serializers import error_response

LOGGER = logging.getLogger("inspector.api")

api_bp = Blueprint("api", __name__)


@api_bp.route("/generate", methods=["POST"])
def generate():
    """Turn ``{url, prompt, previousScript?}`` into ``{message, script}``."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return error_response("INVALID_REQUEST", "请求体必须是 JSON 对象", 400)

    url = data.get("url")
    prompt = data.get("prompt")
    if not url:
        return error_response("MISSING_URL", "缺少 url 参数", 400)
    if not isinstance(prompt, str) or not prompt.strip():
        return error_response("MISSING_PROMPT", "缺少 prompt 参数", 400)

    previous_script = None
    if data.get("previousScript") is not None:
        try:
            previous_script = validate_script(data["previousScript"])
        except SchemaValidationError as exc:
            return error_response("INVALID_SCRIPT", f"previousScript 不合法: {exc}", 400)

    try:
        pipeline = get_generation_pipeline()
    except ValueError as exc:
        LOGGER.error("Generation pipeline unavailable: %s", exc)
        return error_response("GENERATION_UNAVAILABLE", "脚本生成服务未配置", 500)

    LOGGER.info("Generate request: url=%s, revising=%s", url, previous_script is not None)
    try:
        result = pipeline.generate(url, prompt, previous_script)
    except GenerationAgentError as exc:
        LOGGER.error("Script generation failed: %s", exc)
        return error_response("GENERATION_FAILED", "脚本生成失败", 502)
    except ValueError as exc:
        return error_response("INVALID_REQUEST", str(exc), 400)
    except Exception as exc:  # pylint: disable=broad-except
        LOGGER.exception("Unexpected generation error: %s", exc)
        return error_response("INTERNAL_ERROR", "服务器内部错误", 500)

    return jsonify(result.to_dict())


@api_bp.route("/run", methods=["POST"])
def run():
    """Run ``{script}`` and return ``{exitCode, stdout, stderr, trace, spotlight}``."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "script" not in data:
        return error_response("INVALID_REQUEST", "请求体中缺少 script", 400)

    try:
        script = validate_script(data["script"])
    except SchemaValidationError as exc:
        return error_response("INVALID_SCRIPT", str(exc), 400, {"errors": exc.errors})

    LOGGER.info("Run request: %d actions", len(script.actions))
    try:
        result = get_gateway().run(script)
    except UnsupportedVersionError as exc:
        return error_response("UNSUPPORTED_VERSION", str(exc), 400)
    except SandboxUnavailableError as exc:
        LOGGER.error("Sandbox unavailable: %s", exc)
        return error_response("SANDBOX_UNAVAILABLE", str(exc), 503)
    except Exception as exc:  # pylint: disable=broad-except
        LOGGER.exception("Run failed unexpectedly: %s", exc)
        return error_response("INTERNAL_ERROR", "服务器内部错误", 500)

    return jsonify(result.to_dict())
