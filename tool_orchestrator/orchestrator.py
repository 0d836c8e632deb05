"""
工具链编排器门面：校验请求 → 按 operation 分派 → 组装响应

operation:
- generate_plan: AI 生成计划（安全校验 + 参数校验），AI 不可用时降级返回规划 Prompt
- analyze_intent / suggest_tools: 意图分析（AI 失败自动走关键词兜底）
- validate_plan: 对调用方提供的计划做安全校验 + 参数校验
- reality_check / session_guidance: 会话健康评估（纯计算）

安全校验 / 解析失败返回逐条说明的错误响应，不抛给宿主。
"""

import json
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError, model_validator

from tool_orchestrator.cache.store import create_cache_store
from tool_orchestrator.config import Settings, get_settings
from tool_orchestrator.intent.classifier import IntentClassifier
from tool_orchestrator.llm.errors import AIExecutionError, AIUnavailableError, JSONParseError
from tool_orchestrator.llm.executor import PromptExecutor
from tool_orchestrator.llm.provider_config import load_provider_config
from tool_orchestrator.observability.logging_config import setup_logging
from tool_orchestrator.persistence.plan_recorder import PlanRecord, PlanRecorder
from tool_orchestrator.planner.generator import PlanGenerator, PlanPrompts
from tool_orchestrator.planner.safety import PlanSafetyError, validate_plan_safety
from tool_orchestrator.planner.schemas import ToolChainPlan
from tool_orchestrator.schemas import CamelModel, PlanConstraints, ProjectContext, SessionContext
from tool_orchestrator.session.health import RiskAssessment, SessionGuidance, SessionHealthMonitor
from tool_orchestrator.tools.catalog import ToolCatalog, create_default_catalog

log = structlog.get_logger()

Operation = Literal[
    "generate_plan",
    "analyze_intent",
    "suggest_tools",
    "validate_plan",
    "reality_check",
    "session_guidance",
]


class OrchestratorInputError(Exception):
    """调用方输入不合法"""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class OrchestratorRequest(CamelModel):
    operation: Operation
    user_request: str
    project_context: ProjectContext
    constraints: PlanConstraints | None = None
    custom_instructions: str | None = None
    session_context: SessionContext | None = None
    plan: ToolChainPlan | None = None  # 仅 validate_plan 使用

    @model_validator(mode="after")
    def _plan_required_for_validation(self) -> "OrchestratorRequest":
        if self.operation == "validate_plan" and self.plan is None:
            raise ValueError("validate_plan 需要提供 plan")
        return self


class OrchestratorResponse(BaseModel):
    operation: Operation
    text: str  # Markdown，直接展示给调用方
    data: dict[str, Any] = Field(default_factory=dict)
    is_error: bool = False
    mode: Literal["full", "prompt-only"] = "full"


# ── 文本渲染 ──

_RISK_MARK = {"high": "🚨", "medium": "⚠️", "low": "✅"}
_STATUS_MARK = {"critical": "🚨", "concerning": "⚠️", "healthy": "✅"}


def _render_plan(plan: ToolChainPlan) -> str:
    lines = [
        "# 🎯 AI 生成的工具执行计划",
        "",
        "## 意图分析",
        f"**用户意图**: {plan.user_intent}",
        f"**置信度**: {plan.confidence * 100:.1f}%",
        f"**预计耗时**: {plan.estimated_duration}",
        "",
        "## 执行步骤",
    ]
    for i, step in enumerate(plan.steps, 1):
        lines += [
            "",
            f"### 步骤 {i}: {step.description}",
            f"- **工具**: `{step.tool_name}`",
            f"- **步骤 ID**: `{step.step_id}`",
        ]
        if step.depends_on:
            lines.append(f"- **依赖**: {', '.join(step.depends_on)}")
        lines += [
            "- **参数**:",
            "```json",
            json.dumps(step.parameters, ensure_ascii=False, indent=2),
            "```",
        ]
        if step.conditional:
            lines.append("- **条件执行**: 仅在前序步骤成功时执行")
        if step.retryable:
            lines.append("- **可重试**: 失败后可重试")

    lines += ["", "## 预期产出", *(f"- {o}" for o in plan.expected_outputs)]

    if plan.fallback_steps:
        lines += ["", "## 备用步骤", *(f"- **{s.tool_name}**: {s.description}" for s in plan.fallback_steps)]
    if plan.prerequisites:
        lines += ["", "## 前置条件", *(f"- {p}" for p in plan.prerequisites)]

    lines += [
        "",
        "## 使用说明",
        "1. 按顺序执行步骤，遵守依赖关系",
        "2. 将给出的参数原样传给对应工具",
        "3. 条件步骤根据前序结果决定是否执行",
        "4. 主计划受阻时使用备用步骤",
    ]
    return "\n".join(lines)


def _render_prompt_only(prompts: PlanPrompts, reason: str) -> str:
    return "\n".join([
        "# 📝 工具链规划 Prompt（AI 不可用，需人工或其它流程完成）",
        "",
        f"**原因**: {reason}",
        "",
        "## 系统提示词",
        prompts.system,
        "",
        "## 用户提示词",
        prompts.user,
    ])


def _render_error(title: str, error: Exception, rule: str, items: list[str]) -> str:
    lines = [f"# ❌ {title}", "", f"**规则 / 错误码**: `{rule}`", f"**原因**: {error}"]
    if items:
        lines += ["", "## 明细", *(f"- {item}" for item in items)]
    return "\n".join(lines)


def _render_assessment(assessment: RiskAssessment) -> str:
    risk = assessment.hallucination_risk
    lines = [
        "# 🔍 现实检查结果",
        "",
        "## 幻觉风险评估",
        f"**风险等级**: {risk.upper()} {_RISK_MARK[risk]}（得分 {assessment.risk_score}）",
        "",
        "## 困惑信号",
    ]
    if assessment.confusion_indicators:
        lines += [f"⚠️ {i}" for i in assessment.confusion_indicators]
    else:
        lines.append("✅ 未检测到困惑信号")
    if assessment.reported_indicators:
        lines += ["", "## 宿主上报的信号（不计分）", *(f"- {i}" for i in assessment.reported_indicators)]
    if assessment.recommendations:
        lines += ["", "## 建议", *(f"💡 {r}" for r in assessment.recommendations)]
    lines += ["", "## 推荐操作", *(f"🎯 {a}" for a in assessment.suggested_actions)]
    return "\n".join(lines)


def _render_guidance(guidance: SessionGuidance) -> str:
    status = guidance.session_status
    lines = [
        "# 🧭 会话指引",
        "",
        f"## 会话状态: {status.upper()} {_STATUS_MARK[status]}",
        "",
        "## 指引",
        *guidance.guidance,
        "",
        "## 推荐操作",
        *(f"• {a}" for a in guidance.assessment.suggested_actions),
        "",
        "## 下一步",
        f"🎯 **{guidance.recommended_next_step}**",
    ]
    if guidance.human_intervention_needed:
        lines += [
            "",
            "## 🚨 需要刷新上下文",
            "- 使用 analyze_project_ecosystem 重新加载上下文",
            "- 打破困惑循环",
            "- 在干净的状态下完成任务",
        ]
    return "\n".join(lines)


# ── 编排器 ──


class ToolChainOrchestrator:
    """编排入口（由宿主持有，组件通过构造函数注入）"""

    def __init__(
        self,
        executor: PromptExecutor,
        *,
        catalog: ToolCatalog | None = None,
        intent_classifier: IntentClassifier | None = None,
        plan_generator: PlanGenerator | None = None,
        health_monitor: SessionHealthMonitor | None = None,
        recorder: PlanRecorder | None = None,
    ):
        self.executor = executor
        self.catalog = catalog or create_default_catalog()
        self.intent_classifier = intent_classifier or IntentClassifier(executor, self.catalog)
        self.plan_generator = plan_generator or PlanGenerator(executor, self.catalog)
        self.health_monitor = health_monitor or SessionHealthMonitor()
        self.recorder = recorder

        self._handlers: dict[str, Callable[[OrchestratorRequest, str], Awaitable[OrchestratorResponse]]] = {
            "generate_plan": self._generate_plan,
            "analyze_intent": self._analyze_intent,
            "suggest_tools": self._suggest_tools,
            "validate_plan": self._validate_plan,
            "reality_check": self._reality_check,
            "session_guidance": self._session_guidance,
        }

    async def run(self, request: OrchestratorRequest | dict) -> OrchestratorResponse:
        """
        Raises:
            OrchestratorInputError: 请求结构不合法
            ConfigurationError: 供应商配置缺失（fail-fast，不降级）
        """
        req = self._parse_request(request)
        request_id = uuid.uuid4().hex[:12]

        with structlog.contextvars.bound_contextvars(operation=req.operation, request_id=request_id):
            log.info("编排请求开始", request_preview=req.user_request[:100])
            try:
                response = await self._handlers[req.operation](req, request_id)
            except PlanSafetyError as e:
                log.warning("计划未通过安全校验", rule=e.rule, error=str(e))
                return OrchestratorResponse(
                    operation=req.operation,
                    text=_render_error(
                        "计划未通过安全校验",
                        e,
                        e.rule,
                        [f"{k}: {v}" for k, v in e.details.items()],
                    ),
                    data={"error_code": e.rule, "message": str(e), "details": e.details},
                    is_error=True,
                )
            except JSONParseError as e:
                log.warning("计划解析失败", errors=e.errors, error=str(e))
                return OrchestratorResponse(
                    operation=req.operation,
                    text=_render_error("计划解析失败", e, e.code, e.errors),
                    data={"error_code": e.code, "message": str(e), "errors": e.errors},
                    is_error=True,
                )

            log.info("编排请求完成", mode=response.mode, is_error=response.is_error)
            return response

    @staticmethod
    def _parse_request(request: OrchestratorRequest | dict) -> OrchestratorRequest:
        if isinstance(request, OrchestratorRequest):
            return request
        try:
            return OrchestratorRequest.model_validate(request)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            ]
            log.warning("编排请求参数非法", errors=errors)
            raise OrchestratorInputError(f"请求参数非法: {'; '.join(errors)}", errors=errors) from e

    # ── 各 operation 处理 ──

    async def _generate_plan(self, req: OrchestratorRequest, request_id: str) -> OrchestratorResponse:
        try:
            plan = await self.plan_generator.generate_plan(
                req.user_request,
                req.project_context,
                req.constraints,
                req.custom_instructions,
            )
        except (AIUnavailableError, AIExecutionError) as e:
            log.warning("AI 规划不可用，降级为 prompt-only", error_code=e.code, error=str(e))
            prompts = self.plan_generator.build_prompts(
                req.user_request,
                req.project_context,
                req.constraints,
                req.custom_instructions,
            )
            return OrchestratorResponse(
                operation=req.operation,
                text=_render_prompt_only(prompts, str(e)),
                data={
                    "system_prompt": prompts.system,
                    "user_prompt": prompts.user,
                    "reason": str(e),
                },
                mode="prompt-only",
            )

        if self.recorder is not None:
            self.recorder.record_plan_background(
                PlanRecord(request_id=request_id, user_request=req.user_request, plan=plan)
            )

        return OrchestratorResponse(
            operation=req.operation,
            text=_render_plan(plan),
            data={
                "plan": plan.model_dump(by_alias=True),
                "plan_id": plan.plan_id,
                "confidence": plan.confidence,
                "step_count": len(plan.steps),
                "tool_chain": plan.tool_chain(),
            },
        )

    async def _analyze_intent(self, req: OrchestratorRequest, request_id: str) -> OrchestratorResponse:
        analysis = await self.intent_classifier.analyze_intent(req.user_request)
        capabilities = self.catalog.capabilities()
        text = "\n".join([
            "# 🎯 意图分析",
            "",
            f"**意图**: {analysis.intent}",
            f"**类别**: {analysis.category}",
            f"**复杂度**: {analysis.complexity}",
            f"**置信度**: {analysis.confidence * 100:.1f}%",
            "",
            "## 建议工具",
            *(f"- **{t}**: {capabilities.get(t, '')}" for t in analysis.suggested_tools),
            "",
            "*使用 generate_plan 生成完整的执行计划。*",
        ])
        return OrchestratorResponse(
            operation=req.operation,
            text=text,
            data=analysis.model_dump(by_alias=True),
        )

    async def _suggest_tools(self, req: OrchestratorRequest, request_id: str) -> OrchestratorResponse:
        suggestions = await self.intent_classifier.suggest_tools(req.user_request)
        sections = [f"## {s.tool}\n{s.capability}" for s in suggestions] or ["未找到匹配的工具"]
        return OrchestratorResponse(
            operation=req.operation,
            text="# 🛠️ 工具建议\n\n" + "\n\n".join(sections),
            data={"suggestions": [s.model_dump() for s in suggestions]},
        )

    async def _validate_plan(self, req: OrchestratorRequest, request_id: str) -> OrchestratorResponse:
        plan = req.plan
        validate_plan_safety(plan, req.constraints, vocabulary=self.catalog.tool_names())
        self.plan_generator.validate_parameters(plan)
        return OrchestratorResponse(
            operation=req.operation,
            text="\n".join([
                "# ✅ 计划校验通过",
                "",
                f"- **计划 ID**: {plan.plan_id}",
                f"- **步骤数**: {len(plan.steps)}",
                f"- **工具链**: {' → '.join(plan.tool_chain())}",
            ]),
            data={"valid": True, "plan_id": plan.plan_id, "step_count": len(plan.steps)},
        )

    async def _reality_check(self, req: OrchestratorRequest, request_id: str) -> OrchestratorResponse:
        assessment = self.health_monitor.perform_reality_check(req.session_context, req.user_request)
        return OrchestratorResponse(
            operation=req.operation,
            text=_render_assessment(assessment),
            data=assessment.model_dump(),
        )

    async def _session_guidance(self, req: OrchestratorRequest, request_id: str) -> OrchestratorResponse:
        guidance = self.health_monitor.generate_session_guidance(req.session_context, req.user_request)
        return OrchestratorResponse(
            operation=req.operation,
            text=_render_guidance(guidance),
            data=guidance.model_dump(),
        )


def build_orchestrator(
    settings: Settings | None = None,
    recorder: PlanRecorder | None = None,
) -> ToolChainOrchestrator:
    """
    按配置装配默认组件（宿主启动时调用一次）。

    默认不记录计划；需要持久化时由宿主传入 PlanRecorder 实现。

    不传 settings 时从环境变量读取，并在每次执行前检测配置漂移；
    显式传入 settings 时以其为准，不做漂移检测。
    """
    if settings is None:
        settings = get_settings()
        executor_kwargs: dict = {"config_loader": load_provider_config}
    else:
        executor_kwargs = {"config": load_provider_config(settings)}

    setup_logging(env=settings.ENV, level=settings.LOG_LEVEL)

    executor = PromptExecutor(cache=create_cache_store(settings), **executor_kwargs)
    orchestrator = ToolChainOrchestrator(executor, recorder=recorder)
    log.info(
        "编排器初始化完成",
        provider=executor.get_config().provider,
        execution_mode=executor.get_config().execution_mode,
        ai_available=executor.is_available(),
    )
    return orchestrator
