"""工具链计划的数据契约（AI 返回 camelCase JSON）"""

from typing import Any

from pydantic import Field, field_validator, model_validator

from tool_orchestrator.schemas import CamelModel


class ToolChainStep(CamelModel):
    step_id: str
    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    description: str
    depends_on: list[str] = Field(default_factory=list)
    conditional: bool = False  # 仅在前序步骤成功时执行
    retryable: bool = True

    @field_validator("depends_on", "parameters", mode="before")
    @classmethod
    def _none_to_empty(cls, v, info):
        if v is None:
            return {} if info.field_name == "parameters" else []
        return v


class ToolChainPlan(CamelModel):
    plan_id: str
    user_intent: str
    confidence: float = Field(ge=0.0, le=1.0)
    estimated_duration: str
    steps: list[ToolChainStep] = Field(min_length=1)
    fallback_steps: list[ToolChainStep] = Field(default_factory=list)
    prerequisites: list[str] = Field(default_factory=list)
    expected_outputs: list[str]

    @field_validator("fallback_steps", "prerequisites", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or []

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "ToolChainPlan":
        seen: set[str] = set()
        duplicated = []
        for step in self.steps:
            if step.step_id in seen:
                duplicated.append(step.step_id)
            seen.add(step.step_id)
        if duplicated:
            raise ValueError(f"stepId 重复: {', '.join(duplicated)}")
        return self

    def tool_chain(self) -> list[str]:
        return [step.tool_name for step in self.steps]
