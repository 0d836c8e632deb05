"""
结构化日志配置：structlog + contextvars 自动注入 request_id / operation
- 开发环境：彩色文本输出
- 生产环境：JSON 输出（便于 Loki/ELK 解析）

日志一律写 stderr：stdout 留给宿主进程的协议响应，不能混入诊断输出。
"""

import logging
import sys

import structlog


def setup_logging(env: str = "development", level: str = "INFO") -> None:
    """初始化结构化日志"""
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    # 共享处理器链
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,  # 自动合并 request_id 等上下文
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if env == "production":
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # 让 LiteLLM / redis 的标准库日志也走 stderr
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )
    # LiteLLM 默认日志较啰嗦，只保留告警以上
    logging.getLogger("LiteLLM").setLevel(max(log_level, logging.WARNING))
