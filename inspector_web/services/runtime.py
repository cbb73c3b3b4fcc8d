"""Process-wide gateway and generation pipeline used by the API routes."""
from __future__ import annotations

import logging
from typing import Optional

from sandbox_executor.gateway import ExecutionGateway, GatewaySettings
from script_compiler.generation import ScriptGenerationPipeline

LOGGER = logging.getLogger("inspector.runtime")

_gateway: Optional[ExecutionGateway] = None
_pipeline: Optional[ScriptGenerationPipeline] = None


def configure(
    gateway: Optional[ExecutionGateway] = None,
    pipeline: Optional[ScriptGenerationPipeline] = None,
) -> None:
    """注入预先构建好的网关和生成管线（供应用工厂和测试使用）。"""
    global _gateway, _pipeline
    if gateway is not None:
        _gateway = gateway
    if pipeline is not None:
        _pipeline = pipeline


def get_gateway() -> ExecutionGateway:
    global _gateway
    if _gateway is None:
        settings = GatewaySettings.from_env()
        LOGGER.info("Using sandbox %s (spotlight=%s)", settings.sandbox_name, settings.telemetry)
        _gateway = ExecutionGateway(settings=settings)
    return _gateway


def get_generation_pipeline() -> ScriptGenerationPipeline:
    """首次使用时构建生成管线；未配置 LLM 时抛出 ValueError。"""
    global _pipeline
    if _pipeline is None:
        _pipeline = ScriptGenerationPipeline()
    return _pipeline


def reset() -> None:
    global _gateway, _pipeline
    _gateway = None
    _pipeline = None
