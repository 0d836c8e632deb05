"""
全局配置模块：通过 pydantic-settings 读取 .env / 环境变量

- get_settings()：进程级单例（宿主进程启动时使用）
- load_settings()：每次重新读取环境变量（执行器检测配置漂移时使用）
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """编排器全局配置，从 .env 文件和环境变量加载"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── AI 供应商选择 ──
    AI_PROVIDER: str = "openrouter"  # openrouter | azure | openai
    AI_MODEL: str | None = None  # 覆盖供应商默认模型
    EXECUTION_MODE: str = "full"  # full | prompt-only

    # ── OpenRouter ──
    OPENROUTER_API_KEY: str = ""
    SITE_URL: str = "https://github.com/tosin2013/mcp-adr-analysis-server"
    SITE_NAME: str = "MCP ADR Analysis Server"

    # ── OpenAI ──
    OPENAI_API_KEY: str = ""

    # ── Azure OpenAI ──
    AZURE_OPENAI_API_KEY: str = ""
    AZURE_OPENAI_ENDPOINT: str = ""
    AZURE_OPENAI_DEPLOYMENT: str = ""
    AZURE_OPENAI_API_VERSION: str = "2024-08-01-preview"

    # ── 调用参数 ──
    AI_TIMEOUT: int = 60000  # 单次请求超时（毫秒）
    AI_MAX_RETRIES: int = 3
    AI_TEMPERATURE: float = 0.1  # 偏低，保证输出稳定
    AI_MAX_TOKENS: int = 4000

    # ── 响应缓存 ──
    AI_CACHE_ENABLED: bool = True
    AI_CACHE_TTL: int = 3600  # 秒
    CACHE_BACKEND: str = "memory"  # memory | redis（多线程宿主建议 redis）
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 10

    # ── 应用 ──
    ENV: str = "development"  # development | production
    LOG_LEVEL: str = "INFO"


def load_settings() -> Settings:
    """重新读取环境变量（不走缓存）"""
    return Settings()


@lru_cache
def get_settings() -> Settings:
    """单例获取配置（带缓存）"""
    return Settings()
