"""
工具链规划

组件：
- generator: AI 生成计划 + 参数校验
- safety: 纯函数安全校验（具名异常）
- prompts: 规划 Prompt 模板
"""
