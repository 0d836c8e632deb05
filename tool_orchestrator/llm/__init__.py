"""AI 执行链路：供应商配置 → 适配器 → 执行器（缓存 / 重试 / 结构化输出）→ 降级边界"""
