"""
计划安全校验：纯函数、同步、无 I/O

按固定优先级逐条检查，命中第一条即抛出对应的具名异常：
1. 步骤数超过 max_steps
2. 使用了调用方排除的工具
3. 使用了词表外的工具
4. dependsOn 指向不存在的 stepId
5. 计划置信度 < 0.6

规则 2-4 同样作用于 fallback_steps。
"""

from collections.abc import Collection

from tool_orchestrator.planner.schemas import ToolChainPlan, ToolChainStep
from tool_orchestrator.schemas import PlanConstraints
from tool_orchestrator.tools.catalog import AVAILABLE_TOOLS

MIN_PLAN_CONFIDENCE = 0.6


class PlanSafetyError(Exception):
    """计划未通过安全校验"""

    rule = "PLAN_SAFETY"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PlanTooComplexError(PlanSafetyError):
    rule = "PLAN_TOO_COMPLEX"


class ExcludedToolError(PlanSafetyError):
    rule = "EXCLUDED_TOOLS_USED"


class UnknownToolError(PlanSafetyError):
    rule = "UNKNOWN_TOOLS"


class InvalidDependencyError(PlanSafetyError):
    rule = "INVALID_DEPENDENCY"


class LowConfidenceError(PlanSafetyError):
    rule = "LOW_CONFIDENCE_PLAN"


def _all_steps(plan: ToolChainPlan) -> list[ToolChainStep]:
    return [*plan.steps, *plan.fallback_steps]


def validate_plan_safety(
    plan: ToolChainPlan,
    constraints: PlanConstraints | None = None,
    vocabulary: Collection[str] = AVAILABLE_TOOLS,
) -> None:
    """
    Raises:
        PlanSafetyError: 具体子类对应违反的规则
    """
    steps = _all_steps(plan)

    if constraints is not None and len(plan.steps) > constraints.max_steps:
        raise PlanTooComplexError(
            f"计划步骤数超出上限: {len(plan.steps)} > {constraints.max_steps}",
            details={"step_count": len(plan.steps), "max_steps": constraints.max_steps},
        )

    if constraints is not None and constraints.exclude_tools:
        excluded = [s.tool_name for s in steps if s.tool_name in constraints.exclude_tools]
        if excluded:
            raise ExcludedToolError(
                f"计划使用了被排除的工具: {', '.join(excluded)}",
                details={"tools": excluded},
            )

    unknown = [s.tool_name for s in steps if s.tool_name not in vocabulary]
    if unknown:
        raise UnknownToolError(
            f"计划使用了未知工具: {', '.join(unknown)}",
            details={"tools": unknown},
        )

    step_ids = {s.step_id for s in steps}
    for step in steps:
        for dep_id in step.depends_on:
            if dep_id not in step_ids:
                raise InvalidDependencyError(
                    f"步骤 {step.step_id} 依赖了不存在的步骤: {dep_id}",
                    details={"step_id": step.step_id, "depends_on": dep_id},
                )

    if plan.confidence < MIN_PLAN_CONFIDENCE:
        raise LowConfidenceError(
            f"计划置信度过低: {plan.confidence} < {MIN_PLAN_CONFIDENCE}",
            details={"confidence": plan.confidence, "threshold": MIN_PLAN_CONFIDENCE},
        )
