import io
import json
import logging
import sys

import pytest
import structlog

from tool_orchestrator.observability.logging_config import setup_logging


@pytest.fixture
def stderr(monkeypatch):
    buffer = io.StringIO()
    monkeypatch.setattr(sys, "stderr", buffer)
    yield buffer
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def test_production_writes_json_to_stderr(stderr):
    setup_logging(env="production", level="INFO")

    with structlog.contextvars.bound_contextvars(request_id="abc123"):
        structlog.get_logger().info("计划生成完成", step_count=2)

    record = json.loads(stderr.getvalue().strip().splitlines()[-1])
    assert record["event"] == "计划生成完成"
    assert record["step_count"] == 2
    assert record["request_id"] == "abc123"
    assert record["level"] == "info"
    assert "timestamp" in record


def test_level_filters_lower_events(stderr):
    setup_logging(env="production", level="WARNING")

    logger = structlog.get_logger()
    logger.info("不应输出")
    logger.warning("应输出")

    output = stderr.getvalue()
    assert "不应输出" not in output
    assert "应输出" in output


def test_development_console_output(stderr):
    setup_logging(env="development", level="debug")

    structlog.get_logger().debug("调试信息", provider="openrouter")

    output = stderr.getvalue()
    assert "调试信息" in output
    assert "openrouter" in output


def test_unknown_level_defaults_to_info(stderr):
    setup_logging(env="production", level="chatty")

    logger = structlog.get_logger()
    logger.debug("debug 被过滤")
    logger.info("info 保留")

    output = stderr.getvalue()
    assert "debug 被过滤" not in output
    assert "info 保留" in output
    assert logging.getLogger("LiteLLM").level == logging.WARNING
