"""
计划生成器：请求 + 项目上下文 → 经过校验的 ToolChainPlan

流程：
1. AI 不可用直接抛 AIUnavailableError（调用方可用 build_prompts 降级为 prompt-only）
2. 结构化 Prompt → ToolChainPlan Schema 校验
3. 安全校验（无论如何都会执行，计划不会未经校验返回）
4. 按工具目录逐步校验参数形状
"""

from dataclasses import dataclass

import structlog
from pydantic import ValidationError

from tool_orchestrator.llm.errors import AIUnavailableError, JSONParseError
from tool_orchestrator.llm.executor import PromptExecutor
from tool_orchestrator.llm.provider_config import get_recommended_model
from tool_orchestrator.llm.schemas import ExecutionOptions
from tool_orchestrator.planner.prompts import build_system_prompt, build_user_prompt
from tool_orchestrator.planner.safety import validate_plan_safety
from tool_orchestrator.planner.schemas import ToolChainPlan, ToolChainStep
from tool_orchestrator.schemas import PlanConstraints, ProjectContext
from tool_orchestrator.tools.catalog import ToolCatalog, create_default_catalog

log = structlog.get_logger()

PLANNING_TEMPERATURE = 0.1


@dataclass
class PlanPrompts:
    system: str
    user: str


class PlanGenerator:
    """AI 驱动的工具链规划"""

    def __init__(self, executor: PromptExecutor, catalog: ToolCatalog | None = None):
        self.executor = executor
        self.catalog = catalog or create_default_catalog()

    def build_prompts(
        self,
        request: str,
        project_context: ProjectContext,
        constraints: PlanConstraints | None = None,
        custom_instructions: str | None = None,
    ) -> PlanPrompts:
        return PlanPrompts(
            system=build_system_prompt(self.catalog.capabilities(), project_context),
            user=build_user_prompt(request, constraints, custom_instructions),
        )

    async def generate_plan(
        self,
        request: str,
        project_context: ProjectContext,
        constraints: PlanConstraints | None = None,
        custom_instructions: str | None = None,
    ) -> ToolChainPlan:
        """
        Raises:
            AIUnavailableError: AI 执行未启用
            AIExecutionError: 供应商调用重试耗尽
            JSONParseError: 返回内容不是合法计划，或某一步参数不符合工具参数模型
            PlanSafetyError: 计划违反安全规则
        """
        if not self.executor.is_available():
            raise AIUnavailableError(
                "AI 执行未启用，请配置供应商 API Key 并设置 EXECUTION_MODE=full"
            )

        prompts = self.build_prompts(request, project_context, constraints, custom_instructions)
        options = ExecutionOptions(temperature=PLANNING_TEMPERATURE, system_prompt=prompts.system)
        if self.executor.get_config().provider == "openrouter":
            options.model = get_recommended_model("analysis")

        log.info("开始生成工具链计划", request_preview=request[:100])
        result = await self.executor.execute_structured_prompt(
            prompts.user,
            schema=ToolChainPlan,
            options=options,
        )
        plan: ToolChainPlan = result.data

        validate_plan_safety(plan, constraints, vocabulary=self.catalog.tool_names())
        self.validate_parameters(plan)

        log.info(
            "工具链计划生成完成",
            plan_id=plan.plan_id,
            step_count=len(plan.steps),
            confidence=plan.confidence,
            tool_chain=plan.tool_chain(),
        )
        return plan

    def validate_parameters(self, plan: ToolChainPlan) -> None:
        """
        按工具参数模型校验每一步的 parameters（主步骤 + 备用步骤）。

        Raises:
            JSONParseError: errors 中逐条列出 steps[i].parameters.<field>
        """
        errors: list[str] = []
        groups: list[tuple[str, list[ToolChainStep]]] = [
            ("steps", plan.steps),
            ("fallback_steps", plan.fallback_steps),
        ]
        for group, steps in groups:
            for i, step in enumerate(steps):
                if not self.catalog.has_tool(step.tool_name):
                    continue
                try:
                    self.catalog.parse_parameters(step.tool_name, step.parameters)
                except ValidationError as e:
                    for err in e.errors():
                        path = ".".join(str(p) for p in err["loc"])
                        errors.append(f"{group}[{i}].parameters.{path}: {err['msg']}")

        if errors:
            log.warning("计划步骤参数校验失败", plan_id=plan.plan_id, errors=errors)
            raise JSONParseError(
                f"计划步骤参数不符合工具定义: {'; '.join(errors)}",
                errors=errors,
            )
