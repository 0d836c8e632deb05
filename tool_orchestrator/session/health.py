"""
会话健康监测：启发式判断 AI 会话是否陷入循环 / 出现幻觉

纯计算、无网络。加分项：
- 对话轮数 > 20：+2
- 每个被调用超过 3 次的工具：+1
- 请求中每出现一个困惑关键词：+1
- 宿主标记卡在某个任务上：+3

总分 ≥5 为 high，≥2 为 medium，否则 low。
权重与阈值是经验值，未经数据校准，集中放在 RiskScoringRules 里便于调整。
"""

from collections import Counter
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, Field

from tool_orchestrator.schemas import SessionContext

RiskLevel = Literal["low", "medium", "high"]
SessionStatus = Literal["healthy", "concerning", "critical"]

CONFUSION_KEYWORDS = (
    "confused",
    "not working",
    "stuck",
    "help",
    "what should",
    "don't know",
    "error",
    "failed",
)

FRESH_START_STEP = "丢弃当前计划上下文，使用 analyze_project_ecosystem 重新加载项目上下文后开启新会话"


@dataclass(frozen=True)
class RiskScoringRules:
    long_conversation_threshold: int = 20
    long_conversation_weight: int = 2
    repetition_threshold: int = 3  # 同一工具调用次数超过该值视为重复
    repetition_weight_per_tool: int = 1
    confusion_keywords: tuple[str, ...] = CONFUSION_KEYWORDS
    confusion_weight_per_keyword: int = 1
    stuck_weight: int = 3
    medium_threshold: int = 2
    high_threshold: int = 5
    long_session_notice: int = 15  # 超过该轮数时在指引中提示总结进度


class RiskAssessment(BaseModel):
    hallucination_risk: RiskLevel
    risk_score: int
    confusion_indicators: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    suggested_actions: list[str] = Field(default_factory=list)
    reported_indicators: list[str] = Field(default_factory=list)  # 宿主上报，不计分


class SessionGuidance(BaseModel):
    session_status: SessionStatus
    guidance: list[str]
    recommended_next_step: str
    human_intervention_needed: bool
    assessment: RiskAssessment


_SUGGESTED_ACTIONS: dict[str, list[str]] = {
    "high": [
        "立即：使用 analyze_project_ecosystem 开启新会话，重新加载上下文",
        "暂停 AI 规划，改用预定义的任务模板",
        "考虑重置对话上下文",
    ],
    "medium": [
        "关键任务使用预定义的任务模板",
        "AI 规划仅限于简单操作",
        "持续关注困惑信号是否增多",
    ],
    "low": [
        "继续使用 AI 辅助规划",
        "持续关注会话中的困惑信号",
        "保留人工接管作为后备",
    ],
}


class SessionHealthMonitor:
    """会话健康评估（同步、无副作用）"""

    def __init__(self, rules: RiskScoringRules | None = None):
        self.rules = rules or RiskScoringRules()

    def perform_reality_check(
        self,
        session_context: SessionContext | None,
        request: str,
    ) -> RiskAssessment:
        rules = self.rules
        ctx = session_context or SessionContext()
        text = request.lower()

        score = 0
        indicators: list[str] = []
        recommendations: list[str] = []

        if ctx.conversation_length and ctx.conversation_length > rules.long_conversation_threshold:
            score += rules.long_conversation_weight
            indicators.append(f"对话过长（{ctx.conversation_length} 轮），困惑可能在累积")
            recommendations.append("考虑在人工介入下重新开始")

        counts = Counter(ctx.previous_actions)
        repeated = [(tool, n) for tool, n in counts.items() if n > rules.repetition_threshold]
        if repeated:
            score += len(repeated) * rules.repetition_weight_per_tool
            detail = ", ".join(f"{tool}({n}x)" for tool, n in repeated)
            indicators.append(f"工具被过度重复调用: {detail}")
            recommendations.append("通过人工接管或换一种思路打破重复循环")

        found = [kw for kw in rules.confusion_keywords if kw in text]
        if found:
            score += len(found) * rules.confusion_weight_per_keyword
            indicators.append(f"请求中出现困惑关键词: {', '.join(found)}")
            recommendations.append("AI 表现出不确定性，建议人工接管")

        if ctx.stuck_on_task:
            score += rules.stuck_weight
            indicators.append(f"卡在任务上: {ctx.stuck_on_task}")
            recommendations.append("使用人工接管强制推进卡住的任务")

        if score >= rules.high_threshold:
            risk: RiskLevel = "high"
        elif score >= rules.medium_threshold:
            risk = "medium"
        else:
            risk = "low"

        return RiskAssessment(
            hallucination_risk=risk,
            risk_score=score,
            confusion_indicators=indicators,
            recommendations=recommendations,
            suggested_actions=list(_SUGGESTED_ACTIONS[risk]),
            reported_indicators=list(ctx.confusion_indicators),
        )

    def generate_session_guidance(
        self,
        session_context: SessionContext | None,
        request: str,
    ) -> SessionGuidance:
        assessment = self.perform_reality_check(session_context, request)
        ctx = session_context or SessionContext()

        guidance: list[str] = []
        human_intervention_needed = False

        if assessment.hallucination_risk == "high":
            status: SessionStatus = "critical"
            human_intervention_needed = True
            next_step = FRESH_START_STEP
            guidance += [
                "严重：检测到高幻觉风险",
                "AI 似乎陷入困惑或循环",
                "强烈建议重新加载上下文后开启新会话，不要在当前计划上继续增量推进",
            ]
        elif assessment.hallucination_risk == "medium":
            status = "concerning"
            next_step = "关键任务考虑开启新会话"
            guidance += [
                "警告：会话出现困惑迹象",
                "密切观察，随时准备用新的上下文重新开始",
            ]
        else:
            status = "healthy"
            next_step = "继续当前方案"
            guidance += ["会话状态健康", "可以继续 AI 规划"]

        if ctx.conversation_length and ctx.conversation_length > self.rules.long_session_notice:
            guidance.append(f"会话较长（{ctx.conversation_length} 轮），建议总结当前进度")

        if ctx.last_successful_action:
            guidance.append(f"最近一次成功的操作: {ctx.last_successful_action}")
            guidance.append("优先在这次成功的基础上推进，而不是尝试新思路")

        return SessionGuidance(
            session_status=status,
            guidance=guidance,
            recommended_next_step=next_step,
            human_intervention_needed=human_intervention_needed,
            assessment=assessment,
        )
