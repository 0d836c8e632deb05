"""
工具链编排器：自然语言请求 → 经过校验的工具调用计划

组件：
- llm: 供应商配置、Prompt 执行器（缓存 + 重试 + 结构化输出）、降级执行
- intent: 意图分类（AI + 关键词兜底）
- planner: 计划生成与安全校验
- session: 会话健康监测
"""

from tool_orchestrator.orchestrator import (
    OrchestratorInputError,
    OrchestratorRequest,
    OrchestratorResponse,
    ToolChainOrchestrator,
    build_orchestrator,
)

__all__ = [
    "OrchestratorInputError",
    "OrchestratorRequest",
    "OrchestratorResponse",
    "ToolChainOrchestrator",
    "build_orchestrator",
]
