"""
Prompt 执行器的数据契约
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExecutionOptions(BaseModel):
    """单次执行的可选覆盖项（None 表示使用供应商配置的默认值）"""

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, gt=0)
    system_prompt: str | None = None


class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ExecutionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    execution_time: int  # 毫秒
    cached: bool = False
    retry_count: int = 0
    timestamp: str  # ISO-8601


class ExecutionResult(BaseModel):
    """一次 Prompt 执行的结果（不可变，缓存命中返回副本）"""

    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    usage: TokenUsage | None = None
    metadata: ExecutionMetadata

    def as_cached(self) -> "ExecutionResult":
        """返回 cached=True 的副本"""
        return self.model_copy(
            update={"metadata": self.metadata.model_copy(update={"cached": True})}
        )


@dataclass
class StructuredResult:
    """结构化输出：data 为解析后的 JSON 或 Schema 实例，raw 为原始执行结果"""

    data: Any
    raw: ExecutionResult


@dataclass
class CompletionResponse:
    """供应商适配器的统一返回"""

    content: str
    model: str
    usage: TokenUsage | None = None
