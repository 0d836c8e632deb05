"""意图分析的数据契约"""

from typing import Literal

from pydantic import Field

from tool_orchestrator.schemas import CamelModel

IntentCategory = Literal["analysis", "generation", "management", "troubleshooting", "deployment"]
Complexity = Literal["simple", "moderate", "complex"]


class IntentAnalysis(CamelModel):
    intent: str
    category: IntentCategory
    complexity: Complexity
    suggested_tools: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)


class ToolSuggestion(CamelModel):
    tool: str
    capability: str
