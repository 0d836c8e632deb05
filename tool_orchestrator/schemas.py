"""
编排器对外数据契约（调用方 / AI 使用 camelCase，Python 侧统一 snake_case）
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """接受 camelCase 与 snake_case 两种键名，导出时按 by_alias 决定"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProjectContext(CamelModel):
    project_path: str
    adr_directory: str = "docs/adrs"
    todo_path: str = "TODO.md"
    has_adrs: bool | None = Field(default=None, alias="hasADRs")
    has_todo: bool | None = Field(default=None, alias="hasTODO")
    project_type: str | None = None  # web-app / library / api ...


class PlanConstraints(CamelModel):
    max_steps: int = Field(default=10, gt=0)
    time_limit: str | None = None
    exclude_tools: list[str] = Field(default_factory=list)
    prioritize_speed: bool = False

    @field_validator("exclude_tools", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or []


class SessionContext(CamelModel):
    """宿主传入的会话信号（只读）"""

    conversation_length: int | None = Field(default=None, ge=0)
    previous_actions: list[str] = Field(default_factory=list)
    confusion_indicators: list[str] = Field(default_factory=list)
    last_successful_action: str | None = None
    stuck_on_task: str | None = None

    @field_validator("previous_actions", "confusion_indicators", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or []
