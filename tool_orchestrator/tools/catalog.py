"""
工具目录：封闭的工具词表 + 每个工具的参数模型

- 已知工具带类型化参数模型（宽松：允许额外字段，向前兼容工具新增参数）
- 未登记参数模型的工具使用 GenericToolParams（运行时仅校验为键值映射）
- 计划里每一步的 parameters 由 parse_parameters 按工具名分派到对应模型
"""

from dataclasses import dataclass
from typing import Any, Literal

import structlog
from pydantic import ConfigDict

from tool_orchestrator.schemas import CamelModel

log = structlog.get_logger()


# ── 参数模型 ──


class ToolParams(CamelModel):
    model_config = ConfigDict(extra="allow")


class GenericToolParams(ToolParams):
    """未登记参数模型的工具：任意键值"""


class AnalyzeProjectEcosystemParams(ToolParams):
    project_path: str | None = None
    analysis_depth: Literal["basic", "standard", "comprehensive"] = "standard"
    include_environment: bool = True
    recursive_depth: Literal["shallow", "moderate", "deep", "comprehensive"] | None = None


class GenerateAdrsFromPrdParams(ToolParams):
    prd_path: str
    output_directory: str | None = None


class SuggestAdrsParams(ToolParams):
    project_path: str | None = None
    analysis_type: Literal["implicit_decisions", "code_changes", "comprehensive"] = "comprehensive"
    existing_adrs: list[str] = []


class AnalyzeContentSecurityParams(ToolParams):
    content: str | None = None
    content_type: Literal["code", "documentation", "configuration", "logs", "general"] = "general"


class GenerateAdrTodoParams(ToolParams):
    adr_directory: str | None = None
    todo_path: str | None = None
    phase: Literal["both", "test", "production"] = "both"


class CompareAdrProgressParams(ToolParams):
    adr_directory: str | None = None
    todo_path: str | None = None
    deep_code_analysis: bool = True


class ManageTodoParams(ToolParams):
    operation: str
    todo_path: str | None = None


class GenerateDeploymentGuidanceParams(ToolParams):
    adr_directory: str | None = None
    environment: Literal["development", "staging", "production", "all"] = "production"


class SmartScoreParams(ToolParams):
    operation: str = "recalculate_scores"
    project_path: str | None = None


class TroubleshootGuidedWorkflowParams(ToolParams):
    operation: Literal["analyze_failure", "generate_test_plan", "full_workflow"] = "full_workflow"
    failure: dict[str, Any] | None = None


class SmartGitPushParams(ToolParams):
    branch: str | None = None
    message: str | None = None
    dry_run: bool = False


# ── 工具目录 ──


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    params_model: type[ToolParams] = GenericToolParams


class ToolCatalog:
    """工具注册中心（只管词表与参数形状，不负责执行）"""

    def __init__(self):
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        self._tools[spec.name] = spec
        log.debug("工具已登记", tool=spec.name, params_model=spec.params_model.__name__)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def tool_names(self) -> list[str]:
        return list(self._tools)

    def capabilities(self) -> dict[str, str]:
        """工具名 → 一句话能力描述（按登记顺序）"""
        return {name: spec.description for name, spec in self._tools.items()}

    def parse_parameters(self, name: str, params: dict[str, Any]) -> ToolParams:
        """
        按工具名把参数映射校验为对应的参数模型。

        Raises:
            KeyError: 工具未登记
            pydantic.ValidationError: 参数不符合该工具的参数模型
        """
        spec = self._tools[name]
        return spec.params_model.model_validate(params)


TOOL_CAPABILITIES: dict[str, str] = {
    "analyze_project_ecosystem": "Analyze technology stack, dependencies, and architectural patterns",
    "generate_adrs_from_prd": "Convert Product Requirements Documents to Architectural Decision Records",
    "suggest_adrs": "Auto-suggest ADRs based on code analysis and project patterns",
    "analyze_content_security": "Detect and mask sensitive information in project content",
    "generate_rules": "Extract architectural rules and constraints from project analysis",
    "generate_adr_todo": "Generate TODO.md from ADRs with comprehensive task breakdown",
    "compare_adr_progress": "Validate TODO vs ADRs vs actual environment state",
    "manage_todo": "Comprehensive TODO.md lifecycle management and progress tracking",
    "generate_deployment_guidance": "AI-driven deployment procedures from architectural decisions",
    "smart_score": "Project health scoring with cross-tool synchronization",
    "troubleshoot_guided_workflow": "Systematic troubleshooting with ADR/TODO alignment",
    "smart_git_push": "Intelligent release readiness analysis and git operations",
    "generate_research_questions": "Generate targeted research questions for project analysis",
    "validate_rules": "Validate architectural rule compliance across the project",
    "analyze_code_patterns": "Identify code patterns and architectural consistency",
    "suggest_improvements": "Provide targeted improvement recommendations",
    "generate_test_scenarios": "Create comprehensive test scenarios and strategies",
    "create_documentation": "Generate project documentation from code and ADRs",
    "security_audit": "Comprehensive security analysis and vulnerability detection",
    "performance_analysis": "Analyze performance bottlenecks and optimization opportunities",
    "dependency_analysis": "Analyze project dependencies and potential issues",
    "refactoring_suggestions": "Suggest code refactoring based on architectural principles",
    "api_documentation": "Generate API documentation from code analysis",
    "deployment_checklist": "Create deployment checklists based on ADRs and project state",
    "release_notes": "Generate release notes from commits, ADRs, and TODO completion",
}

AVAILABLE_TOOLS: tuple[str, ...] = tuple(TOOL_CAPABILITIES)

_TYPED_PARAMS: dict[str, type[ToolParams]] = {
    "analyze_project_ecosystem": AnalyzeProjectEcosystemParams,
    "generate_adrs_from_prd": GenerateAdrsFromPrdParams,
    "suggest_adrs": SuggestAdrsParams,
    "analyze_content_security": AnalyzeContentSecurityParams,
    "generate_adr_todo": GenerateAdrTodoParams,
    "compare_adr_progress": CompareAdrProgressParams,
    "manage_todo": ManageTodoParams,
    "generate_deployment_guidance": GenerateDeploymentGuidanceParams,
    "smart_score": SmartScoreParams,
    "troubleshoot_guided_workflow": TroubleshootGuidedWorkflowParams,
    "smart_git_push": SmartGitPushParams,
}


def create_default_catalog() -> ToolCatalog:
    """登记全部内置工具"""
    catalog = ToolCatalog()
    for name, description in TOOL_CAPABILITIES.items():
        catalog.register(
            ToolSpec(
                name=name,
                description=description,
                params_model=_TYPED_PARAMS.get(name, GenericToolParams),
            )
        )
    log.info("工具目录初始化完成", tool_count=len(catalog.tool_names()))
    return catalog
