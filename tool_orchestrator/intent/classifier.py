"""
意图分类器：AI 结构化输出 + 关键词兜底

- AI 可用：结构化 Prompt 限定在封闭工具词表内，按 IntentAnalysis 校验
- AI 不可用 / 任一 AIError：降级为关键词匹配，保证总有结果
- 建议工具一律过滤掉词表外的名字，保序去重，最多 5 个
"""

import structlog

from tool_orchestrator.intent.keyword_matcher import dedupe_and_cap, match_keywords
from tool_orchestrator.intent.schemas import IntentAnalysis, ToolSuggestion
from tool_orchestrator.llm.errors import AIError
from tool_orchestrator.llm.executor import PromptExecutor
from tool_orchestrator.llm.provider_config import get_recommended_model
from tool_orchestrator.llm.schemas import ExecutionOptions
from tool_orchestrator.tools.catalog import ToolCatalog, create_default_catalog

log = structlog.get_logger()

INTENT_MAX_TOKENS = 500

_INTENT_SYSTEM_PROMPT = """你是 MCP 工具编排的意图分析器。分析用户请求，给出意图分类并从可用工具中挑选相关工具。

## 可用工具（suggestedTools 只能从以下名称中选择）
{tool_lines}

## 输出格式
严格按以下 JSON 格式输出：
{{
  "intent": "用一句话描述用户想完成什么",
  "category": "analysis|generation|management|troubleshooting|deployment",
  "complexity": "simple|moderate|complex",
  "suggestedTools": ["tool1", "tool2"],
  "confidence": 0.85
}}"""


class IntentClassifier:
    """请求 → IntentAnalysis"""

    def __init__(self, executor: PromptExecutor, catalog: ToolCatalog | None = None):
        self.executor = executor
        self.catalog = catalog or create_default_catalog()

    async def analyze_intent(
        self,
        request: str,
        tool_capabilities: dict[str, str] | None = None,
    ) -> IntentAnalysis:
        """
        分析用户意图，永不因 AI 故障抛错。

        Args:
            request: 自然语言请求
            tool_capabilities: 工具名 → 能力描述；不传则使用工具目录
        """
        capabilities = tool_capabilities or self.catalog.capabilities()

        if not self.executor.is_available():
            log.info("AI 不可用，意图分析使用关键词兜底")
            return self._sanitize(match_keywords(request), capabilities)

        system_prompt = _INTENT_SYSTEM_PROMPT.format(
            tool_lines="\n".join(f"- {name}: {desc}" for name, desc in capabilities.items())
        )
        options = ExecutionOptions(
            temperature=0.1,
            max_tokens=INTENT_MAX_TOKENS,
            system_prompt=system_prompt,
        )
        if self.executor.get_config().provider == "openrouter":
            options.model = get_recommended_model("quick-analysis", cost_sensitive=True)

        try:
            result = await self.executor.execute_structured_prompt(
                f'分析这个请求: "{request}"',
                schema=IntentAnalysis,
                options=options,
            )
        except AIError as e:
            log.warning("AI 意图分析失败，降级为关键词匹配", error_code=e.code, error=str(e))
            return self._sanitize(match_keywords(request), capabilities)

        analysis = self._sanitize(result.data, capabilities)
        log.info(
            "意图分析完成",
            category=analysis.category,
            complexity=analysis.complexity,
            tools=analysis.suggested_tools,
            confidence=analysis.confidence,
        )
        return analysis

    async def suggest_tools(self, request: str) -> list[ToolSuggestion]:
        """意图分析的精简视图：建议工具 + 能力描述"""
        capabilities = self.catalog.capabilities()
        analysis = await self.analyze_intent(request, capabilities)
        return [
            ToolSuggestion(tool=name, capability=capabilities.get(name, ""))
            for name in analysis.suggested_tools
        ]

    @staticmethod
    def _sanitize(analysis: IntentAnalysis, capabilities: dict[str, str]) -> IntentAnalysis:
        """剔除词表外工具，保序去重并截断"""
        known = [t for t in analysis.suggested_tools if t in capabilities]
        dropped = [t for t in analysis.suggested_tools if t not in capabilities]
        if dropped:
            log.warning("意图分析返回了未知工具，已剔除", dropped=dropped)
        return analysis.model_copy(update={"suggested_tools": dedupe_and_cap(known)})
