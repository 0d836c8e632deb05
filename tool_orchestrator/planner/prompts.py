"""
工具链规划 Prompt 模板

系统提示词：工具词表 + 能力描述 + 项目上下文 + 输出 Schema
用户提示词：请求原文 + 附加说明 + 约束条件
"""

from tool_orchestrator.schemas import PlanConstraints, ProjectContext

_PLAN_SYSTEM_TEMPLATE = """你是资深软件架构师，同时负责 MCP 工具编排。你的任务是理解用户请求，生成可执行的工具调用计划。

## 可用 MCP 工具
{tool_lines}

## 项目上下文
- 项目路径: {project_path}
- ADR 目录: {adr_directory}
- TODO 路径: {todo_path}
- 已有 ADR: {has_adrs}
- 已有 TODO: {has_todo}
- 项目类型: {project_type}

## 规划要求
1. 准确理解用户意图
2. 选择最合适的工具顺序，toolName 只能使用上面列出的工具
3. 为每个步骤提供明确的参数
4. 用 dependsOn 标明步骤之间的依赖（只能引用已有的 stepId）
5. 提供 fallbackSteps 作为备用方案

## 输出格式
严格按以下 JSON 结构输出：
{{
  "planId": "unique-plan-id",
  "userIntent": "对用户意图的理解",
  "confidence": 0.95,
  "estimatedDuration": "2-5 minutes",
  "steps": [
    {{
      "stepId": "step1",
      "toolName": "tool_name",
      "parameters": {{"param": "value"}},
      "description": "这一步完成什么",
      "dependsOn": [],
      "conditional": false,
      "retryable": true
    }}
  ],
  "fallbackSteps": [],
  "prerequisites": [],
  "expectedOutputs": ["output1", "output2"]
}}"""


def _yes_no(flag: bool | None) -> str:
    return "是" if flag else "否"


def build_system_prompt(capabilities: dict[str, str], project_context: ProjectContext) -> str:
    return _PLAN_SYSTEM_TEMPLATE.format(
        tool_lines="\n".join(f"- {name}: {desc}" for name, desc in capabilities.items()),
        project_path=project_context.project_path,
        adr_directory=project_context.adr_directory,
        todo_path=project_context.todo_path,
        has_adrs=_yes_no(project_context.has_adrs),
        has_todo=_yes_no(project_context.has_todo),
        project_type=project_context.project_type or "未知",
    )


def build_user_prompt(
    request: str,
    constraints: PlanConstraints | None = None,
    custom_instructions: str | None = None,
) -> str:
    sections = [f'用户请求: "{request}"']

    if custom_instructions:
        sections.append(f"附加说明: {custom_instructions}")

    if constraints is not None:
        sections.append(
            "约束条件:\n"
            f"- 最大步骤数: {constraints.max_steps}\n"
            f"- 时间限制: {constraints.time_limit or '无'}\n"
            f"- 排除工具: {', '.join(constraints.exclude_tools) or '无'}\n"
            f"- 优先速度: {_yes_no(constraints.prioritize_speed)}"
        )

    sections.append("请生成最优的工具执行计划。")
    return "\n\n".join(sections)
