"""
关键词兜底意图分析：AI 不可用或调用失败时使用，结果确定、零网络
"""

from tool_orchestrator.intent.schemas import Complexity, IntentAnalysis, IntentCategory

MAX_SUGGESTED_TOOLS = 5
MATCHED_CONFIDENCE = 0.7
UNMATCHED_CONFIDENCE = 0.3

# 关键词 → 建议工具（按表顺序累加）
KEYWORD_TOOL_MAP: dict[str, list[str]] = {
    "analyze": ["analyze_project_ecosystem", "analyze_content_security"],
    "generate": ["generate_adrs_from_prd", "generate_adr_todo", "generate_deployment_guidance"],
    "todo": ["manage_todo", "generate_adr_todo"],
    "adr": ["suggest_adrs", "generate_adrs_from_prd", "compare_adr_progress"],
    "deploy": ["generate_deployment_guidance", "smart_git_push"],
    "score": ["smart_score"],
    "troubleshoot": ["troubleshoot_guided_workflow"],
    "security": ["analyze_content_security", "security_audit"],
}

# (触发词, 类别, 复杂度)，先命中先用，都不命中则为 analysis / simple
_CATEGORY_RULES: list[tuple[tuple[str, ...], IntentCategory, Complexity]] = [
    (("generate", "create"), "generation", "moderate"),
    (("troubleshoot", "debug"), "troubleshooting", "complex"),
    (("deploy", "release"), "deployment", "complex"),
]


def dedupe_and_cap(tools: list[str], limit: int = MAX_SUGGESTED_TOOLS) -> list[str]:
    """保序去重后截断"""
    return list(dict.fromkeys(tools))[:limit]


def match_keywords(request: str) -> IntentAnalysis:
    text = request.lower()

    suggested: list[str] = []
    for keyword, tools in KEYWORD_TOOL_MAP.items():
        if keyword in text:
            suggested.extend(tools)

    category: IntentCategory = "analysis"
    complexity: Complexity = "simple"
    for triggers, rule_category, rule_complexity in _CATEGORY_RULES:
        if any(t in text for t in triggers):
            category, complexity = rule_category, rule_complexity
            break

    if "analyze" in text:
        verb = "分析"
    elif "generate" in text:
        verb = "生成"
    else:
        verb = "管理"

    return IntentAnalysis(
        intent=f"用户希望{verb}项目相关内容",
        category=category,
        complexity=complexity,
        suggested_tools=dedupe_and_cap(suggested),
        confidence=MATCHED_CONFIDENCE if suggested else UNMATCHED_CONFIDENCE,
    )
