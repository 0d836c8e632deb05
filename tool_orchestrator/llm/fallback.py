"""
降级执行边界：AI 不可用 / 执行失败时返回原始 Prompt，由人工或其它流程接手
"""

from dataclasses import dataclass
from typing import Literal

import structlog

from tool_orchestrator.llm.errors import AIExecutionError, AIUnavailableError
from tool_orchestrator.llm.executor import PromptExecutor
from tool_orchestrator.llm.schemas import ExecutionOptions, ExecutionResult

log = structlog.get_logger()


@dataclass
class FallbackResult:
    mode: Literal["full", "prompt-only"]
    content: str
    instructions: str | None = None
    result: ExecutionResult | None = None
    reason: str | None = None


def _prompt_only(prompt: str, instructions: str | None, reason: str) -> FallbackResult:
    return FallbackResult(mode="prompt-only", content=prompt, instructions=instructions, reason=reason)


async def execute_prompt_with_fallback(
    executor: PromptExecutor,
    prompt: str,
    instructions: str | None = None,
    options: ExecutionOptions | None = None,
) -> FallbackResult:
    """
    尝试执行 Prompt，AI 不可用或执行失败时降级为 prompt-only。

    执行前先检查 is_available()（最新配置缺失凭据时同样视为不可用）；
    执行中只吞掉 AIUnavailableError / AIExecutionError，其它异常继续上抛。
    """
    if not executor.is_available():
        log.info("AI 不可用，直接返回 prompt-only")
        return _prompt_only(prompt, instructions, "AI 执行不可用")

    options = options or ExecutionOptions()
    if instructions and not options.system_prompt:
        options = options.model_copy(update={"system_prompt": instructions})

    try:
        result = await executor.execute_prompt(prompt, options)
    except (AIUnavailableError, AIExecutionError) as e:
        log.warning("AI 执行失败，降级为 prompt-only", error_code=e.code, error=str(e))
        return _prompt_only(prompt, instructions, str(e))

    return FallbackResult(mode="full", content=result.content, instructions=instructions, result=result)
